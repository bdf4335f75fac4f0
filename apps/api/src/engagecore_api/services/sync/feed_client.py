"""HTTP client for a brand's external transaction feed."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping

import httpx
from loguru import logger

from engagecore_api.core.settings import settings
from engagecore_api.schemas.brand import SyncWindowConfig

FEED_MODULE = "/transactions/getAllTransactions"
SUCCESS_STATUS = "SUCCESS"

_METADATA_KEYS = {
    "totalCount": "total_count",
    "totalAmount": "total_amount",
    "totalPage": "total_page",
    "totalDeposit": "total_deposit",
    "netDeposit": "net_deposit",
}


class TransientProviderError(RuntimeError):
    """Raised for transport failures, non-2xx responses and non-success payloads."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        attempt: int | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.attempt = attempt
        self.status_code = status_code


@dataclass
class FeedFetchResult:
    success: bool
    transactions: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    attempts: int = 0


def build_request_form(config: SyncWindowConfig) -> Dict[str, str]:
    return {
        "accessId": config.access_id,
        "module": FEED_MODULE,
        "accessToken": config.access_token,
        "sDate": config.query_start_date,
        "eDate": config.query_end_date,
    }


def _extract_metadata(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {target: data.get(source) for source, target in _METADATA_KEYS.items()}


class ExternalFeedClient:
    """Fetches one window of transactions, retrying with a fixed delay."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        user_agent: str | None = None,
        proxy_url: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = http_client
        self._owns_client = http_client is None
        self._user_agent = user_agent or settings.external_api_user_agent
        self._proxy_url = proxy_url if proxy_url is not None else settings.external_api_proxy_url
        self._sleep = sleep

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=settings.external_api_timeout_seconds,
                proxy=self._proxy_url or None,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, config: SyncWindowConfig) -> FeedFetchResult:
        """Return the window's transactions; exhausted retries yield ``success=False``."""

        retries = config.effective_retries
        delay = config.effective_retry_delay
        last_error: str | None = None

        for attempt in range(1, retries + 1):
            try:
                result = await self._request_once(config, attempt=attempt)
            except TransientProviderError as exc:
                last_error = str(exc)
                logger.warning(
                    "External feed request failed",
                    url=exc.url,
                    attempt=attempt,
                    max_attempts=retries,
                    status_code=exc.status_code,
                    error=last_error,
                )
                if attempt < retries and delay > 0:
                    await self._sleep(delay)
                continue

            logger.info(
                "Fetched external transactions",
                url=config.url,
                attempt=attempt,
                count=len(result.transactions),
                window_start=config.query_start_date,
                window_end=config.query_end_date,
            )
            return result

        return FeedFetchResult(success=False, transactions=[], metadata={}, error=last_error, attempts=retries)

    async def _request_once(self, config: SyncWindowConfig, *, attempt: int) -> FeedFetchResult:
        client = self._ensure_client()
        headers = {"Accept": "application/json", "User-Agent": self._user_agent}
        try:
            response = await client.post(
                config.url,
                data=build_request_form(config),
                headers=headers,
                timeout=config.effective_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise TransientProviderError(
                str(exc),
                url=config.url,
                attempt=attempt,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.InvalidURL as exc:
            raise TransientProviderError(f"Invalid provider URL: {exc}", url=config.url, attempt=attempt) from exc
        except httpx.HTTPError as exc:
            raise TransientProviderError(str(exc) or type(exc).__name__, url=config.url, attempt=attempt) from exc
        except ValueError as exc:
            raise TransientProviderError(f"Provider returned invalid JSON: {exc}", url=config.url, attempt=attempt) from exc

        if not isinstance(body, Mapping):
            raise TransientProviderError("Provider returned a non-object payload", url=config.url, attempt=attempt)
        status = body.get("status")
        if status != SUCCESS_STATUS:
            raise TransientProviderError(
                f"API returned non-success status: {status}",
                url=config.url,
                attempt=attempt,
                status_code=response.status_code,
            )

        data = body.get("data") if isinstance(body.get("data"), Mapping) else {}
        transactions = data.get("transactions") or []
        if not isinstance(transactions, list):
            raise TransientProviderError("Provider transactions field is not a list", url=config.url, attempt=attempt)

        return FeedFetchResult(
            success=True,
            transactions=list(transactions),
            metadata=_extract_metadata(data),
            attempts=attempt,
        )


__all__ = [
    "ExternalFeedClient",
    "FEED_MODULE",
    "FeedFetchResult",
    "TransientProviderError",
    "build_request_form",
]
