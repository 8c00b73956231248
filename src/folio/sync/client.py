"""HTTP client for the server-of-record.

Maps transport failures onto the two sync outcomes the engine cares about:
SyncUnavailable (unreachable, timed out, 5xx, 429 -- retry later) and
SyncRejected (any other 4xx -- the server refused the request).
"""

from typing import Any

import httpx

from folio.config import SyncSettings
from folio.exceptions import SyncRejected, SyncUnavailable
from folio.logging import get_logger
from folio.models import Asset, IdMap, SyncState, Wallet
from folio.sync.wire import (
    asset_from_wire,
    asset_to_wire,
    id_map_from_wire,
    state_from_wire,
    state_to_wire,
    wallet_from_wire,
    wallet_to_wire,
)

logger = get_logger(__name__)


class SyncClient:
    """Thin async client over the server-of-record HTTP API.

    Args:
        settings: Sync settings (base URL and timeouts).
        client: Optional pre-built httpx.AsyncClient, e.g. bound to an
            ASGI transport in tests. Closed by the caller when given.
    """

    def __init__(
        self,
        settings: SyncSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        timeout: float | None = None,
    ) -> dict:
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                timeout=timeout if timeout is not None else self._settings.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise SyncUnavailable(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise SyncUnavailable(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status >= 500 or status == 429:
            raise SyncUnavailable(f"{method} {path} returned {status}")

        try:
            body = response.json()
        except ValueError as e:
            if status >= 400:
                raise SyncRejected(f"{method} {path} returned {status}", status) from e
            raise SyncUnavailable(f"{method} {path} returned invalid JSON") from e

        if status >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            raise SyncRejected(error or f"{method} {path} returned {status}", status)
        if not isinstance(body, dict):
            raise SyncUnavailable(f"{method} {path} returned an unexpected body")
        return body

    async def health(self) -> bool:
        """Check the server is up, using the short health timeout."""
        try:
            await self._request("GET", "/health", timeout=self._settings.health_timeout)
        except (SyncUnavailable, SyncRejected) as e:
            logger.debug("sync_health_check_failed", error=str(e))
            return False
        return True

    async def fetch_state(self) -> SyncState:
        body = await self._request("GET", "/api/sync")
        return state_from_wire(body.get("data", body))

    async def push_state(self, state: SyncState) -> IdMap:
        """Replace the server's state wholesale. Returns the server's id map."""
        body = await self._request("POST", "/api/sync", json=state_to_wire(state))
        return id_map_from_wire(body.get("idMap") or body.get("id_map"))

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        payload = wallet_to_wire(wallet)
        payload.pop("id")
        body = await self._request("POST", "/api/wallets", json=payload)
        return wallet_from_wire(body.get("data"))

    async def update_wallet(self, wallet_id: int, changes: dict) -> None:
        await self._request("PUT", f"/api/wallets/{wallet_id}", json=changes)

    async def delete_wallet(self, wallet_id: int) -> None:
        await self._request("DELETE", f"/api/wallets/{wallet_id}")

    async def create_asset(self, asset: Asset) -> Asset:
        payload = asset_to_wire(asset)
        payload.pop("id")
        body = await self._request("POST", "/api/assets", json=payload)
        return asset_from_wire(body.get("data"))

    async def update_asset(self, asset_id: int, changes: dict) -> None:
        await self._request("PUT", f"/api/assets/{asset_id}", json=changes)

    async def delete_asset(self, asset_id: int) -> None:
        await self._request("DELETE", f"/api/assets/{asset_id}")
