"""对话请求与响应的数据模型。

本模块只定义结构，不负责 JSON 转换：

- Message / ChatRequest: 请求侧，创建后不可变。
- ChatResponse / Choice / Delta / Usage: 响应侧，由 decoder 解析生成。
- ErrorInfo / ServiceResult: 统一的成功/失败结果包装。

JSON ⇄ 模型的转换集中在 providers.request_builder 与 providers.decoder。
"""

from dataclasses import dataclass, field
from typing import Generic, List, Literal, Optional, Tuple, TypeVar

from deepseek_core.domain.exceptions import (
    ApiError,
    DecodeError,
    NetworkError,
    ValidationError,
)


# 与 DeepSeek API 的 role 字段对应
Role = Literal["system", "user", "assistant"]

T = TypeVar("T")


@dataclass(frozen=True)
class Message:
    """一条对话消息。历史记录的顺序即对话顺序。"""

    role: Role
    content: str


@dataclass(frozen=True)
class ChatRequest:
    """一次完整的 chat/completions 请求。

    可选字段为 None 时不会出现在请求体里。
    """

    model: str
    messages: Tuple[Message, ...]
    temperature: float = 0.7
    max_tokens: int = 4096
    stream: bool = False
    top_p: Optional[float] = None
    # "text" 或 "json_object"，序列化为 {"type": ...}
    response_format: Optional[str] = None
    stop: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class Delta:
    """流式返回中的增量片段，首个分片通常只带 role。"""

    role: Optional[Role] = None
    content: Optional[str] = None


@dataclass(frozen=True)
class UsageDetails:
    reasoning_tokens: int = 0
    cached_tokens: int = 0


@dataclass(frozen=True)
class Usage:
    """token 统计信息，缺失的计数按 0 处理。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_cache_hit_tokens: int = 0
    prompt_cache_miss_tokens: int = 0
    details: Optional[UsageDetails] = None


@dataclass(frozen=True)
class Choice:
    """单个候选回答。

    非流式响应填充 message，流式分片填充 delta。
    """

    index: int
    message: Optional[Message] = None
    delta: Optional[Delta] = None
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class ChatResponse:
    """一次完整响应或一个流式分片。"""

    id: str
    choices: List[Choice] = field(default_factory=list)
    usage: Optional[Usage] = None
    created: int = 0
    model: Optional[str] = None
    object: Optional[str] = None


UNKNOWN_CODE = "UNKNOWN"
UNKNOWN_MESSAGE = "Unknown error occurred"
UNKNOWN_TYPE = "unknown"


@dataclass(frozen=True)
class ErrorInfo:
    """错误详情。上游任一字段缺失时使用占位值而不是 None。"""

    code: str = UNKNOWN_CODE
    message: str = UNKNOWN_MESSAGE
    type: str = UNKNOWN_TYPE


_ERROR_TYPES = {
    "ValidationError": ValidationError,
    "ClientException": NetworkError,
    "NetworkError": NetworkError,
    "DecodeError": DecodeError,
}


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """成功/失败二选一的结果。

    data 与 error 有且只有一个非空，is_success 由此推导，不单独存储。
    请使用 ``ServiceResult.success`` / ``ServiceResult.failure`` 构造。
    """

    status_code: int
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.error is None):
            raise ValueError("ServiceResult requires exactly one of data or error")

    @classmethod
    def success(cls, data: T, status_code: int = 200) -> "ServiceResult[T]":
        return cls(status_code=status_code, data=data)

    @classmethod
    def failure(cls, error: ErrorInfo, status_code: int) -> "ServiceResult[T]":
        return cls(status_code=status_code, error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """成功时返回 data，失败时抛出对应的 BusinessError 子类。"""
        if self.error is None:
            return self.data  # type: ignore[return-value]
        exc_cls = _ERROR_TYPES.get(self.error.type, ApiError)
        raise exc_cls(
            code=self.error.code,
            message=self.error.message,
            http_status=self.status_code,
            error_type=self.error.type,
        )
