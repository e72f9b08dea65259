"""统一业务异常模型。

客户端对外只返回 ServiceResult，这里的异常主要有两种用途：

1. 调用方通过 ``ServiceResult.unwrap()`` 选择以异常形式处理失败。
2. 少数属于编程错误的情况（如非流式请求调用流式接口）直接抛出。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "INVALID_MODEL"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 error_type）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败（模型不在白名单、缺少 API Key 等）。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """上游返回非 2xx 状态码时使用。"""


class DecodeError(BusinessError):
    """响应体或流式行无法解析为预期的 JSON 结构。"""


class StreamUsageError(BusinessError):
    """对未设置 stream=True 的请求调用流式接口。属于编程错误，立即抛出。"""
