"""DeepSeek 相关常量：模型 ID、角色、响应格式与默认接入点。"""

from typing import Tuple


DEFAULT_BASE_URL = "https://api.deepseek.com/v1"


class DeepSeekModels:
    CHAT = "deepseek-chat"
    CODER = "deepseek-coder"
    REASONER = "deepseek-reasoner"


class RoleType:
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ResponseFormat:
    TEXT = "text"
    JSON_OBJECT = "json_object"


# 默认白名单不含 reasoner，需要时通过 DEEPSEEK_ALLOWED_MODELS 放开
DEFAULT_ALLOWED_MODELS: Tuple[str, ...] = (DeepSeekModels.CHAT, DeepSeekModels.CODER)

USER_AGENT = "deepseek-core/0.1"
