"""请求构造与校验。

负责：

1. 在发出任何网络请求之前，校验模型是否在白名单内。
2. 用会话历史和参数构造不可变的 ChatRequest。
3. 将 ChatRequest 转成 DeepSeek chat/completions 的请求 JSON（snake_case，省略 None）。
"""

from typing import Any, Dict, Iterable, Optional, Sequence

from deepseek_core.domain.constants import ResponseFormat
from deepseek_core.domain.exceptions import ValidationError
from deepseek_core.domain.models import ChatRequest, ErrorInfo, Message
from deepseek_core.providers.registry import DEEPSEEK_CONFIG

RESPONSE_FORMATS = (ResponseFormat.TEXT, ResponseFormat.JSON_OBJECT)


def validate_model(model: str, allowed_models: Optional[Iterable[str]] = None) -> Optional[ErrorInfo]:
    """模型合法时返回 None，否则返回 ErrorInfo。"""

    allowed = tuple(allowed_models) if allowed_models is not None else DEEPSEEK_CONFIG.allowed_models
    if model in allowed:
        return None
    return ErrorInfo(code="INVALID_MODEL", message=f"Invalid model: {model}", type="ValidationError")


def build_request(
    model: str,
    messages: Sequence[Message],
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    stream: bool = False,
    *,
    allowed_models: Optional[Iterable[str]] = None,
    top_p: Optional[float] = None,
    response_format: Optional[str] = None,
    stop: Optional[Sequence[str]] = None,
) -> ChatRequest:
    """校验并构造 ChatRequest。

    temperature / max_tokens 为 None 时取 registry 中该模型的默认值
    （0.7 / 4096）。模型不在白名单或 response_format 不是
    text / json_object 时抛出 ValidationError。
    """

    error = validate_model(model, allowed_models)
    if error is not None:
        raise ValidationError(code=error.code, message=error.message)
    if response_format is not None and response_format not in RESPONSE_FORMATS:
        raise ValidationError(
            code="INVALID_RESPONSE_FORMAT",
            message=f"Invalid response_format: {response_format}",
        )
    model_cfg = DEEPSEEK_CONFIG.models.get(model)
    default_temperature = model_cfg.default_temperature if model_cfg else 0.7
    default_max_tokens = model_cfg.max_tokens if model_cfg else 4096
    return ChatRequest(
        model=model,
        messages=tuple(messages),
        temperature=default_temperature if temperature is None else temperature,
        max_tokens=default_max_tokens if max_tokens is None else max_tokens,
        stream=stream,
        top_p=top_p,
        response_format=response_format,
        stop=tuple(stop) if stop is not None else None,
    )


def to_payload(req: ChatRequest) -> Dict[str, Any]:
    """将 ChatRequest 转成请求 JSON。"""

    payload: Dict[str, Any] = {
        "model": req.model,
        "messages": [_message_to_payload(m) for m in req.messages],
        "temperature": req.temperature,
        "max_tokens": req.max_tokens,
        "stream": req.stream,
    }
    if req.top_p is not None:
        payload["top_p"] = req.top_p
    if req.response_format is not None:
        payload["response_format"] = {"type": req.response_format}
    if req.stop is not None:
        payload["stop"] = list(req.stop)
    return payload


def request_from_payload(payload: Dict[str, Any]) -> ChatRequest:
    """to_payload 的逆过程，主要用于日志回放与测试。"""

    response_format = payload.get("response_format")
    if isinstance(response_format, dict):
        response_format = response_format.get("type")
    stop = payload.get("stop")
    if isinstance(stop, str):
        stop = [stop]
    return ChatRequest(
        model=payload["model"],
        messages=tuple(
            Message(role=m["role"], content=m.get("content") or "")
            for m in payload.get("messages", [])
        ),
        temperature=payload.get("temperature", 0.7),
        max_tokens=payload.get("max_tokens", 4096),
        stream=bool(payload.get("stream", False)),
        top_p=payload.get("top_p"),
        response_format=response_format,
        stop=tuple(stop) if stop is not None else None,
    )


def _message_to_payload(message: Message) -> Dict[str, Any]:
    return {"role": message.role, "content": message.content}
