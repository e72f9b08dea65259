"""DeepSeek 集成层。

该包下的模块负责：
- 定义客户端协议 (base)。
- 维护接入点与模型配置 (registry)。
- 构造与校验请求 (request_builder)。
- 解析完整响应与流式响应 (decoder)。
- 提供同步/异步客户端实现 (deepseek_client)。
"""

from typing import Union

from deepseek_core.config.settings import settings
from deepseek_core.providers.base import ChatClient
from deepseek_core.providers.deepseek_client import AsyncDeepSeekClient, DeepSeekClient


def create_client(async_mode: bool = False) -> Union[ChatClient, AsyncDeepSeekClient]:
    """根据当前配置创建客户端，缺少 DEEPSEEK_API_KEY 时抛出 ValidationError。"""

    if async_mode:
        return AsyncDeepSeekClient(settings)
    return DeepSeekClient(settings)
