from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .errors import DaikinApiError, DaikinAuthError
from .tokens import TokenSet, TokenStore

logger = logging.getLogger("daikin_exporter.onecta")

DEVICES_PATH = "/v1/gateway-devices"
TOKEN_PATH = "/v1/oidc/token"
USER_AGENT = "daikin-cloud-exporter/0.1.0"


def _header_int(headers: Mapping[str, str], name: str) -> Optional[int]:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    limit_minute: Optional[int] = None
    remaining_minute: Optional[int] = None
    limit_day: Optional[int] = None
    remaining_day: Optional[int] = None
    retry_after: Optional[int] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitStatus":
        return cls(
            limit_minute=_header_int(headers, "X-RateLimit-Limit-minute"),
            remaining_minute=_header_int(headers, "X-RateLimit-Remaining-minute"),
            limit_day=_header_int(headers, "X-RateLimit-Limit-day"),
            remaining_day=_header_int(headers, "X-RateLimit-Remaining-day"),
            retry_after=_header_int(headers, "Retry-After"),
        )

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.limit_minute,
                self.remaining_minute,
                self.limit_day,
                self.remaining_day,
                self.retry_after,
            )
        )


class DaikinCloudClient:
    """Read-only Onecta client authenticated with a stored OIDC token set.

    The interactive authorization-code flow happens out of band; this client
    only refreshes the stored token set and fetches device details.
    """

    def __init__(
        self,
        *,
        client_id: Optional[str],
        client_secret: Optional[str],
        token_store: TokenStore,
        api_base_url: str = "https://api.onecta.daikineurope.com",
        idp_base_url: str = "https://idp.onecta.daikineurope.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_store = token_store
        self._api_base_url = api_base_url.rstrip("/")
        self._idp_base_url = idp_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._tokens: Optional[TokenSet] = None
        self._token_lock = asyncio.Lock()
        self.last_rate_limit: Optional[RateLimitStatus] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_cloud_device_details(self) -> List[Dict[str, Any]]:
        response = await self._authorized_get(DEVICES_PATH)
        try:
            payload = response.json()
        except ValueError as exc:
            raise DaikinApiError("Onecta device list is not valid JSON", status_code=response.status_code) from exc
        if not isinstance(payload, list):
            raise DaikinApiError("Onecta device list must be a JSON array", status_code=response.status_code)
        logger.info("Fetched %d device(s) from Onecta", len(payload))
        return payload

    async def _authorized_get(self, path: str) -> httpx.Response:
        client = await self._get_client()
        url = f"{self._api_base_url}{path}"

        tokens = await self._access_token()
        response = await client.get(url, headers={"Authorization": f"Bearer {tokens.access_token}"})
        self._record_rate_limit(response)
        if response.status_code == 401:
            logger.info("Onecta rejected the access token; refreshing and retrying once")
            tokens = await self._access_token(force_refresh=True)
            response = await client.get(url, headers={"Authorization": f"Bearer {tokens.access_token}"})
            self._record_rate_limit(response)

        if response.status_code == 429:
            retry_after = self.last_rate_limit.retry_after if self.last_rate_limit else None
            raise DaikinApiError(
                f"Onecta rate limit exceeded (retry after {retry_after}s)",
                status_code=response.status_code,
            )
        if response.is_error:
            raise DaikinApiError(
                f"Onecta request {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _access_token(self, *, force_refresh: bool = False) -> TokenSet:
        async with self._token_lock:
            if self._tokens is None:
                self._tokens = self._token_store.load()
            if force_refresh or self._tokens.is_expired():
                self._tokens = await self._refresh(self._tokens)
            return self._tokens

    async def _refresh(self, current: TokenSet) -> TokenSet:
        if not current.refresh_token:
            raise DaikinAuthError("Access token expired and no refresh_token is available; re-authorize")
        if not self._client_id or not self._client_secret:
            raise DaikinAuthError("oidc_client_id and oidc_client_secret are required to refresh tokens")

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self._idp_base_url}{TOKEN_PATH}",
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": current.refresh_token,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DaikinAuthError("Unable to refresh Onecta access token") from exc

        if isinstance(payload, dict) and "refresh_token" not in payload:
            payload = {**payload, "refresh_token": current.refresh_token}
        tokens = TokenSet.from_payload(payload)
        self._token_store.save(tokens)
        logger.info("Refreshed Onecta access token")
        return tokens

    def _record_rate_limit(self, response: httpx.Response) -> None:
        status = RateLimitStatus.from_headers(response.headers)
        if status.is_empty():
            return
        self.last_rate_limit = status
        logger.info(
            "Rate limit status: %s/%s per minute, %s/%s per day remaining",
            status.remaining_minute,
            status.limit_minute,
            status.remaining_day,
            status.limit_day,
        )


__all__ = ["DaikinCloudClient", "RateLimitStatus"]
