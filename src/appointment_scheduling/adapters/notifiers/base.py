import time
from http import HTTPStatus

import backoff
import httpx
import structlog

from clinic_core.adapters.observability.metrics import CALENDAR_REQUEST_SECONDS

logger = structlog.get_logger(__name__)

RETRYABLE_STATUSES = {HTTPStatus.BAD_GATEWAY, HTTPStatus.SERVICE_UNAVAILABLE, HTTPStatus.GATEWAY_TIMEOUT}


def _is_permanent(exc: Exception) -> bool:
    """Só 5xx de gateway e falhas de transporte merecem nova tentativa."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code not in RETRYABLE_STATUSES
    return False


class BaseNotifier:
    """Cliente HTTP assíncrono com retry/backoff e métrica de latência por ação."""
    DEFAULT_TIMEOUT = 10

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout or self.DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @backoff.on_exception(
        backoff.expo,
        (httpx.TransportError, httpx.HTTPStatusError),
        max_tries=3,
        jitter=None,
        giveup=_is_permanent,
    )
    async def _request(self, action: str, method: str, url: str, **kw) -> httpx.Response:
        start = time.perf_counter()
        try:
            resp = await self._client.request(method, url, **kw)
            if resp.status_code >= HTTPStatus.BAD_REQUEST:
                raise httpx.HTTPStatusError("Bad status", request=resp.request, response=resp)
            return resp
        finally:
            CALENDAR_REQUEST_SECONDS.labels(action).observe(time.perf_counter() - start)
