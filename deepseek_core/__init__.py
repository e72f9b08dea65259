"""DeepSeek Core 顶层包。

该包提供 DeepSeek chat/completions 接口的客户端实现，
包括配置加载、请求构造与校验、完整/流式响应解析以及统一的结果模型。
"""

from deepseek_core.domain.models import ChatRequest, ChatResponse, ErrorInfo, Message, ServiceResult
from deepseek_core.providers import create_client
from deepseek_core.providers.deepseek_client import AsyncDeepSeekClient, DeepSeekClient
from deepseek_core.providers.request_builder import build_request

__all__ = [
    "AsyncDeepSeekClient",
    "ChatRequest",
    "ChatResponse",
    "DeepSeekClient",
    "ErrorInfo",
    "Message",
    "ServiceResult",
    "build_request",
    "create_client",
]
