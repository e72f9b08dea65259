"""响应解析层。

本模块负责把 DeepSeek 返回的原始数据转换为 ServiceResult：

1. decode_whole: 非流式响应，整体解析 JSON。
2. decode_stream / adecode_stream: 流式响应，逐行解析 ``data: <json>`` 帧，
   遇到 ``data: [DONE]`` 立即结束。
3. failure_from_exception: 把传输层异常转换为失败结果。

所有解析错误都在这里转换为失败的 ServiceResult，不会以异常形式抛给调用方。
流式解析中单行 JSON 错误只影响该行，后续行继续处理。
"""

import json
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Dict,
    Iterable,
    Iterator,
    Optional,
    Union,
)

import httpx

from deepseek_core.domain.exceptions import BusinessError, StreamUsageError
from deepseek_core.domain.models import (
    ChatRequest,
    ChatResponse,
    Choice,
    Delta,
    ErrorInfo,
    Message,
    ServiceResult,
    Usage,
    UsageDetails,
    UNKNOWN_CODE,
    UNKNOWN_MESSAGE,
    UNKNOWN_TYPE,
)
from deepseek_core.infrastructure.cancellation import CancellationToken, CancelledError
from deepseek_core.infrastructure.logging.logger import logger

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# 客户端侧故障统一使用的合成状态码
CLIENT_FAULT_STATUS = 500

_DONE = object()

# json 接受 Infinity / 1e400，转 int 时抛 OverflowError；过深的嵌套抛 RecursionError
_PARSE_ERRORS = (ValueError, TypeError, OverflowError, RecursionError)

Body = Union[str, bytes, None]


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


# ---- JSON -> 模型 ----


def parse_chat_response(data: Any) -> ChatResponse:
    """将响应 JSON（dict）解析为 ChatResponse，结构不符时抛 ValueError。"""

    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    raw_choices = data.get("choices") or []
    if not isinstance(raw_choices, list):
        raise ValueError("'choices' must be a list")
    choices = [_parse_choice(ch, i) for i, ch in enumerate(raw_choices)]
    usage_raw = data.get("usage")
    return ChatResponse(
        id=str(data.get("id") or ""),
        choices=choices,
        usage=_parse_usage(usage_raw) if usage_raw else None,
        created=int(data.get("created") or 0),
        model=data.get("model"),
        object=data.get("object"),
    )


def _parse_choice(payload: Any, position: int) -> Choice:
    if not isinstance(payload, dict):
        raise ValueError(f"choice #{position} must be an object")
    message = payload.get("message")
    delta = payload.get("delta")
    return Choice(
        index=int(payload.get("index", position)),
        message=_parse_message(message) if isinstance(message, dict) else None,
        delta=_parse_delta(delta) if isinstance(delta, dict) else None,
        finish_reason=payload.get("finish_reason"),
    )


def _parse_message(payload: Dict[str, Any]) -> Message:
    return Message(role=payload.get("role") or "assistant", content=payload.get("content") or "")


def _parse_delta(payload: Dict[str, Any]) -> Delta:
    return Delta(role=payload.get("role"), content=payload.get("content"))


def _parse_usage(payload: Any) -> Usage:
    if not isinstance(payload, dict):
        raise ValueError("'usage' must be an object")
    details_raw = payload.get("prompt_tokens_details")
    details = None
    if isinstance(details_raw, dict):
        details = UsageDetails(
            reasoning_tokens=int(details_raw.get("reasoning_tokens") or 0),
            cached_tokens=int(details_raw.get("cached_tokens") or 0),
        )
    return Usage(
        prompt_tokens=int(payload.get("prompt_tokens") or 0),
        completion_tokens=int(payload.get("completion_tokens") or 0),
        total_tokens=int(payload.get("total_tokens") or 0),
        prompt_cache_hit_tokens=int(payload.get("prompt_cache_hit_tokens") or 0),
        prompt_cache_miss_tokens=int(payload.get("prompt_cache_miss_tokens") or 0),
        details=details,
    )


def parse_error_info(body: Body) -> ErrorInfo:
    """解析错误响应体，无法解析时返回通用的 "Unknown error occurred"。

    DeepSeek 通常把错误包在 ``{"error": {...}}`` 里，这里两种形式都接受。
    """

    if not body:
        return ErrorInfo()
    try:
        data = json.loads(body)
    except (ValueError, RecursionError):
        return ErrorInfo()
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        data = data["error"]
    if not isinstance(data, dict):
        return ErrorInfo()
    code = data.get("code")
    return ErrorInfo(
        code=str(code) if code is not None else UNKNOWN_CODE,
        message=data.get("message") or UNKNOWN_MESSAGE,
        type=data.get("type") or UNKNOWN_TYPE,
    )


# ---- 非流式 ----


def decode_whole(raw_body: Body, http_status: int) -> ServiceResult[ChatResponse]:
    """解析完整响应体。

    - 非 2xx：解析 ErrorInfo，返回携带原状态码的失败结果。
    - 2xx：解析 ChatResponse，失败时返回 RESPONSE_PARSE_ERROR。
    """

    if not is_success_status(http_status):
        return ServiceResult.failure(parse_error_info(raw_body), http_status)
    try:
        response = parse_chat_response(json.loads(raw_body or ""))
    except _PARSE_ERRORS as e:
        return ServiceResult.failure(
            ErrorInfo(
                code="RESPONSE_PARSE_ERROR",
                message=f"Error parsing API response: {e}",
                type="DecodeError",
            ),
            CLIENT_FAULT_STATUS,
        )
    return ServiceResult.success(response, http_status)


def failure_from_exception(exc: Exception) -> ServiceResult[ChatResponse]:
    """把传输/解析过程中的异常映射为失败结果（状态码 500）。"""

    if isinstance(exc, BusinessError):
        return ServiceResult.failure(
            ErrorInfo(code=exc.code, message=exc.message, type=type(exc).__name__),
            exc.http_status,
        )
    if isinstance(exc, CancelledError):
        message = "Request cancelled"
    elif isinstance(exc, httpx.TimeoutException):
        message = "Request timed out"
    elif isinstance(exc, httpx.InvalidURL):
        message = "Invalid request URL"
    elif isinstance(exc, httpx.HTTPError):
        message = "Network error occurred"
    elif isinstance(exc, ValueError):
        message = "Error parsing API response"
    else:
        message = "Unexpected client error"
    return ServiceResult.failure(
        ErrorInfo(code=type(exc).__name__, message=message, type="ClientException"),
        CLIENT_FAULT_STATUS,
    )


# ---- 流式 ----


def decode_stream_error(body: Body, http_status: int) -> ServiceResult[ChatResponse]:
    """流式请求的初始状态码即为失败时，整体解析一次错误体。"""

    return ServiceResult.failure(parse_error_info(body), http_status)


def decode_line(line: str, http_status: int) -> Any:
    """解析单行。

    返回 None 表示跳过，返回 ``_DONE`` 表示流结束，否则返回 ServiceResult。
    """

    if not line or not line.strip():
        return None
    if not line.startswith(DATA_PREFIX):
        # 注释或 keep-alive 行
        return None
    data_str = line[len(DATA_PREFIX):].strip()
    if data_str == DONE_SENTINEL:
        return _DONE
    try:
        chunk = parse_chat_response(json.loads(data_str))
    except _PARSE_ERRORS as e:
        logger.warning(
            "Failed to parse stream line",
            extra={"extra": {"error": str(e), "line_length": len(data_str)}},
        )
        return ServiceResult.failure(
            ErrorInfo(
                code="JSON_PARSE_ERROR",
                message=f"Error parsing streaming response: {e}",
                type="DecodeError",
            ),
            http_status,
        )
    return ServiceResult.success(chunk, http_status)


def decode_stream(
    lines: Iterable[str],
    http_status: int,
    *,
    error_body: Body = None,
    request: Optional[ChatRequest] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Iterator[ServiceResult[ChatResponse]]:
    """逐行解析流式响应，返回惰性的 ServiceResult 迭代器。

    ``request`` 给出且未设置 stream=True 时立即抛出 StreamUsageError，
    而不是在迭代时才报错。``lines`` 若提供 close()，无论以何种方式结束都会被调用。
    """

    ensure_stream_request(request)
    return _iter_stream(lines, http_status, error_body, cancel_token)


def _iter_stream(
    lines: Iterable[str],
    http_status: int,
    error_body: Body,
    cancel_token: Optional[CancellationToken],
) -> Iterator[ServiceResult[ChatResponse]]:
    try:
        if not is_success_status(http_status):
            yield decode_stream_error(error_body, http_status)
            return
        iterator = iter(lines)
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                _log_cancelled(cancel_token)
                return
            try:
                line = next(iterator)
            except StopIteration:
                return
            outcome = decode_line(line, http_status)
            if outcome is _DONE:
                return
            if outcome is not None:
                yield outcome
    finally:
        close = getattr(lines, "close", None)
        if callable(close):
            close()


def adecode_stream(
    lines: AsyncIterable[str],
    http_status: int,
    *,
    error_body: Body = None,
    request: Optional[ChatRequest] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> AsyncIterator[ServiceResult[ChatResponse]]:
    """decode_stream 的异步版本，每次读取行都是一个挂起点。

    asyncio 任务被取消时 CancelledError 照常向上传播，``lines.aclose()`` 仍会执行。
    """

    ensure_stream_request(request)
    return _aiter_stream(lines, http_status, error_body, cancel_token)


async def _aiter_stream(
    lines: AsyncIterable[str],
    http_status: int,
    error_body: Body,
    cancel_token: Optional[CancellationToken],
) -> AsyncIterator[ServiceResult[ChatResponse]]:
    try:
        if not is_success_status(http_status):
            yield decode_stream_error(error_body, http_status)
            return
        iterator = lines.__aiter__()
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                _log_cancelled(cancel_token)
                return
            try:
                line = await iterator.__anext__()
            except StopAsyncIteration:
                return
            outcome = decode_line(line, http_status)
            if outcome is _DONE:
                return
            if outcome is not None:
                yield outcome
    finally:
        aclose = getattr(lines, "aclose", None)
        if callable(aclose):
            await aclose()


def ensure_stream_request(request: Optional[ChatRequest]) -> None:
    if request is not None and not request.stream:
        raise StreamUsageError(
            code="STREAM_NOT_ENABLED",
            message="Stream must be set to true for streaming requests",
        )


def _log_cancelled(token: CancellationToken) -> None:
    logger.info("Stream cancelled", extra={"extra": {"reason": token.reason}})
