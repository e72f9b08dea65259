"""DeepSeek Provider 客户端。

本模块负责：

1. 请求前校验模型白名单（不合法时不发起任何网络请求）。
2. 通过 httpx 以 Bearer Token 调用 ``{base_url}/chat/completions``。
3. 把响应交给 decoder，统一返回 ServiceResult。

提供同步的 DeepSeekClient 与基于 httpx.AsyncClient 的 AsyncDeepSeekClient，
两者行为一致。每次调用都新建 httpx 客户端，并发调用之间不共享任何缓冲区。
"""

import logging
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, Optional

import httpx

from deepseek_core.config.settings import settings
from deepseek_core.domain.constants import USER_AGENT
from deepseek_core.domain.models import ChatRequest, ChatResponse, ServiceResult
from deepseek_core.infrastructure.cancellation import CancellationToken, CancelledError
from deepseek_core.infrastructure.logging.logger import logger
from deepseek_core.providers.decoder import (
    adecode_stream,
    decode_stream,
    decode_whole,
    ensure_stream_request,
    failure_from_exception,
    is_success_status,
)
from deepseek_core.providers.request_builder import to_payload, validate_model

VALIDATION_STATUS = 400

# InvalidURL 不是 HTTPError 的子类，需要单独列出
_CALL_FAULTS = (httpx.HTTPError, httpx.InvalidURL, CancelledError)


class _DeepSeekClientBase:
    """同步/异步客户端共用的配置与请求准备逻辑。"""

    name = "deepseek"

    def __init__(
        self,
        cfg=settings,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        allowed_models: Optional[Iterable[str]] = None,
    ):
        self._settings = cfg
        # 缺少 API Key 属于启动期错误，构造时直接抛出
        self._api_key = api_key or cfg.require_api_key()
        self._base_url = (base_url or cfg.deepseek_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else cfg.http_timeout
        self._allowed_models = tuple(allowed_models) if allowed_models is not None else tuple(cfg.allowed_models)
        self._default_model = cfg.default_model

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def allowed_models(self) -> tuple:
        return self._allowed_models

    @property
    def default_model(self) -> str:
        return self._default_model

    def _url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _precheck(self, req: ChatRequest) -> Optional[ServiceResult[ChatResponse]]:
        """模型不在白名单时返回失败结果，调用方应直接返回而不发请求。"""

        error = validate_model(req.model, self._allowed_models)
        if error is None:
            return None
        self._log(logging.WARNING, "Rejected request", model=req.model, code=error.code)
        return ServiceResult.failure(error, VALIDATION_STATUS)

    def _log_request(self, req: ChatRequest) -> None:
        self._log(
            logging.INFO,
            "Chat request",
            model=req.model,
            stream=req.stream,
            message_count=len(req.messages),
        )

    def _log_fault(self, exc: Exception, req: ChatRequest) -> None:
        self._log(
            logging.ERROR,
            "Chat request failed",
            model=req.model,
            stream=req.stream,
            error=type(exc).__name__,
            detail=str(exc),
        )

    @staticmethod
    def _log(level: int, message: str, **fields: Any) -> None:
        logger.log(level, message, extra={"extra": {"provider": "deepseek", **fields}})


class DeepSeekClient(_DeepSeekClientBase):
    """同步客户端。"""

    def chat(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ServiceResult[ChatResponse]:
        """执行一次非流式调用，任何错误都以失败的 ServiceResult 返回。"""

        rejected = self._precheck(req)
        if rejected is not None:
            return rejected
        self._log_request(req)
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(self._url(), json=to_payload(req), headers=self._headers())
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self._log(logging.INFO, "Chat response", model=req.model, status=resp.status_code)
            return decode_whole(resp.text, resp.status_code)
        except _CALL_FAULTS as e:
            self._log_fault(e, req)
            return failure_from_exception(e)

    def chat_stream(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ServiceResult[ChatResponse]]:
        """执行一次流式调用，返回惰性的 ServiceResult 迭代器。

        req.stream 为 False 时立即抛出 StreamUsageError；提前停止迭代
        （break 或 close()）会立即释放底层连接。
        """

        ensure_stream_request(req)
        rejected = self._precheck(req)
        if rejected is not None:
            return iter([rejected])
        return self._stream(req, cancel_token)

    def _stream(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken],
    ) -> Iterator[ServiceResult[ChatResponse]]:
        self._log_request(req)
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                with client.stream("POST", self._url(), json=to_payload(req), headers=self._headers()) as resp:
                    self._log(logging.INFO, "Chat stream opened", model=req.model, status=resp.status_code)
                    error_body = None
                    if not is_success_status(resp.status_code):
                        error_body = resp.read()
                    yield from decode_stream(
                        resp.iter_lines(),
                        resp.status_code,
                        error_body=error_body,
                        cancel_token=cancel_token,
                    )
        except _CALL_FAULTS as e:
            self._log_fault(e, req)
            yield failure_from_exception(e)


class AsyncDeepSeekClient(_DeepSeekClientBase):
    """异步客户端，网络读取均为挂起点，不阻塞事件循环。"""

    async def chat(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ServiceResult[ChatResponse]:
        rejected = self._precheck(req)
        if rejected is not None:
            return rejected
        self._log_request(req)
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(self._url(), json=to_payload(req), headers=self._headers())
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self._log(logging.INFO, "Chat response", model=req.model, status=resp.status_code)
            return decode_whole(resp.text, resp.status_code)
        except _CALL_FAULTS as e:
            self._log_fault(e, req)
            return failure_from_exception(e)

    def chat_stream(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ServiceResult[ChatResponse]]:
        """返回异步迭代器，用法：``async for result in client.chat_stream(req)``。

        校验在调用时立即完成，不会推迟到第一次迭代。
        """

        ensure_stream_request(req)
        rejected = self._precheck(req)
        if rejected is not None:
            return _single(rejected)
        return self._astream(req, cancel_token)

    async def _astream(
        self,
        req: ChatRequest,
        cancel_token: Optional[CancellationToken],
    ) -> AsyncIterator[ServiceResult[ChatResponse]]:
        self._log_request(req)
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST", self._url(), json=to_payload(req), headers=self._headers()
                ) as resp:
                    self._log(logging.INFO, "Chat stream opened", model=req.model, status=resp.status_code)
                    error_body = None
                    if not is_success_status(resp.status_code):
                        error_body = await resp.aread()
                    results = adecode_stream(
                        resp.aiter_lines(),
                        resp.status_code,
                        error_body=error_body,
                        cancel_token=cancel_token,
                    )
                    try:
                        async for result in results:
                            yield result
                    finally:
                        await results.aclose()
        except _CALL_FAULTS as e:
            self._log_fault(e, req)
            yield failure_from_exception(e)


async def _single(result: ServiceResult[ChatResponse]) -> AsyncIterator[ServiceResult[ChatResponse]]:
    yield result
