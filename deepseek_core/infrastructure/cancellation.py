"""协作式取消令牌。

流式读取在处理每一行之前检查令牌，调用方（例如 UI 线程）调用
``cancel()`` 后，解码器停止产出并释放底层连接。
"""

from threading import Lock
from typing import Optional


class CancelledError(RuntimeError):
    """观察到取消请求的操作可以抛出此异常。"""


class CancellationToken:
    """线程安全的取消令牌，只支持一次性从未取消变为已取消。"""

    def __init__(self) -> None:
        self._lock = Lock()
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancelledError(self._reason or "operation cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"
