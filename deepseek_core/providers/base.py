"""客户端抽象接口。

调用方（例如交互式对话循环）只依赖此协议，便于在测试中替换为桩实现。
"""

from typing import Iterator, Optional, Protocol

from deepseek_core.domain.models import ChatRequest, ChatResponse, ServiceResult
from deepseek_core.infrastructure.cancellation import CancellationToken


class ChatClient(Protocol):
    """chat/completions 客户端协议。

    - chat(req): 非流式调用，返回单个 ServiceResult。
    - chat_stream(req): 流式调用，逐步产出 ServiceResult。
    """

    name: str

    def chat(
        self, req: ChatRequest, cancel_token: Optional[CancellationToken] = None
    ) -> ServiceResult[ChatResponse]:
        ...

    def chat_stream(
        self, req: ChatRequest, cancel_token: Optional[CancellationToken] = None
    ) -> Iterator[ServiceResult[ChatResponse]]:
        """req.stream 必须为 True。"""

        ...
