"""Settlement client for the blockchain transfer gateway.

The gateway is a black box that moves funds on chain: it reports balances
and executes a transfer to an address, returning a settlement reference
(the transaction hash). Transfers are irreversible. Callers await each
transfer to completion; the client's own ``httpx.Timeout`` is the only bound
and a timeout there surfaces as SettlementError like any other failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from remit_chat.core.settings import settings
from remit_chat.services.errors import SettlementError

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201
SETTLEMENT_STATUS_SUCCESS = "success"


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a transfer reported by the gateway."""

    reference: str | None
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == SETTLEMENT_STATUS_SUCCESS


class SettlementProvider(Protocol):
    """Contract consumed by the payment saga."""

    async def get_balance(self, address: str) -> Decimal: ...

    async def transfer(self, to_address: str, amount: Decimal) -> SettlementResult: ...


@dataclass(frozen=True)
class SettlementConfig:
    """Immutable configuration for settlement gateway calls."""

    base_url: str | None
    api_key: str | None
    timeout_seconds: float


def load_settlement_config() -> SettlementConfig:
    """Build configuration object from global settings."""
    return SettlementConfig(
        base_url=settings.settlement_base_url,
        api_key=settings.settlement_api_key,
        timeout_seconds=float(settings.settlement_timeout_seconds),
    )


class HttpSettlementClient:
    """HTTP client wrapper for the settlement gateway."""

    def __init__(
        self,
        config: SettlementConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_settlement_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.config.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise SettlementError("Settlement gateway is not configured")

        async with self._client_lock:
            if self._client is None:
                headers = {}
                if self.config.api_key:
                    headers["Authorization"] = f"Bearer {self.config.api_key}"
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url or "",
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def _request(self, method: str, path: str, json_data: Any | None = None) -> dict[str, Any]:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, json=json_data)
        except httpx.HTTPError as exc:
            raise SettlementError(f"Settlement request failed: {exc}") from exc

        if response.status_code not in (HTTP_OK, HTTP_CREATED):
            raise SettlementError(f"Settlement gateway responded with {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SettlementError("Settlement gateway returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise SettlementError("Settlement gateway returned an unexpected payload")
        return payload

    async def get_balance(self, address: str) -> Decimal:
        """Return the spendable balance of ``address``."""
        payload = await self._request("GET", f"/balances/{address}")
        try:
            return Decimal(str(payload["balance"]))
        except (KeyError, InvalidOperation) as exc:
            raise SettlementError("Settlement gateway returned no usable balance") from exc

    async def transfer(self, to_address: str, amount: Decimal) -> SettlementResult:
        """Send ``amount`` to ``to_address`` and wait for the receipt."""
        payload = await self._request(
            "POST",
            "/transfers",
            json_data={"to": to_address, "amount": str(amount)},
        )
        result = SettlementResult(
            reference=payload.get("txHash") or payload.get("reference"),
            status=str(payload.get("status") or "").lower(),
        )
        logger.info("Settlement to %s finished with status %s", to_address, result.status)
        return result

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _SettlementClientSingleton:
    """Singleton wrapper for HttpSettlementClient."""

    _instance: HttpSettlementClient | None = None

    @classmethod
    def get_instance(cls) -> HttpSettlementClient:
        if cls._instance is None:
            cls._instance = HttpSettlementClient()
        return cls._instance


def get_settlement_client() -> HttpSettlementClient:
    """Return a singleton settlement client instance."""
    return _SettlementClientSingleton.get_instance()
