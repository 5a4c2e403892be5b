"""httpx clients for the identity server and the Stellar Horizon API."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import VerifierConfig
from ..errors import TransportError
from ..types import AnchorRecord, Sha256Hash

logger = logging.getLogger(__name__)


class _BaseClient:
    def __init__(self, config: Optional[VerifierConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or VerifierConfig()
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.request_timeout,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._client

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._get_client()
        logger.debug("GET %s %s", url, params or {})
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"request to {url} failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"response from {url} is not JSON") from e
        if not isinstance(data, dict):
            raise TransportError(f"response from {url} is not a JSON object")
        return data

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class KeybaseClient(_BaseClient):
    """Read-only client for the merkle, signature and key lookup endpoints."""

    def _url(self, endpoint: str) -> str:
        return self.config.api_server_uri.rstrip("/") + "/" + endpoint

    async def fetch_path_and_sigs(
        self,
        uid: Optional[str] = None,
        username: Optional[str] = None,
        start_hash256: Optional[str] = None,
        last: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not uid and not username:
            raise ValueError("need a uid or a username")
        params: Dict[str, Any] = {"uid": uid} if uid else {"username": username}
        if start_hash256:
            params["start_hash256"] = start_hash256
        if last is not None:
            params["last"] = str(last)
        params["load_reset_chain"] = "1"
        data = await self._get_json(self._url("merkle/path.json"), params)
        status = data.get("status") or {}
        if status.get("code", 0) != 0:
            raise TransportError(f"error fetching user: {status.get('desc')}")
        return data

    async def fetch_sig_chain(self, uid: str) -> List[Dict[str, Any]]:
        data = await self._get_json(self._url("sig/get.json"), {"uid": uid})
        status = data.get("status") or {}
        if status.get("code", 0) != 0:
            raise TransportError(f"error fetching sigchain: {status.get('desc')}")
        return list(data.get("sigs") or [])

    async def fetch_public_keys(self, uid: str) -> List[str]:
        data = await self._get_json(self._url("user/lookup.json"), {"uid": uid})
        try:
            return list(data["them"]["public_keys"]["all_bundles"])
        except (KeyError, TypeError) as e:
            raise TransportError(f"no public keys in lookup response for {uid}") from e


class HorizonClient(_BaseClient):
    """Finds the newest root commitment in the Keybase Stellar account's memos."""

    async def fetch_latest_anchor(self) -> AnchorRecord:
        url = "{}/accounts/{}/transactions".format(
            self.config.horizon_server_uri.rstrip("/"), self.config.stellar_address
        )
        data = await self._get_json(url, {"order": "desc", "limit": "1"})
        records = ((data.get("_embedded") or {}).get("records")) or []
        if not records:
            raise TransportError("did not find any transactions")
        rec = records[0]
        if rec.get("memo_type") != "hash":
            raise TransportError("needed a hash type of memo")
        try:
            buf = base64.b64decode(rec.get("memo") or "")
        except (binascii.Error, ValueError) as e:
            raise TransportError("memo is not base64") from e
        if len(buf) != 32:
            raise TransportError("need a 32-byte SHA2 hash")
        anchor = AnchorRecord(
            hash=Sha256Hash(buf.hex()),
            ledger=rec.get("ledger") or rec.get("ledger_attr"),
            created_at=rec.get("created_at"),
        )
        logger.info("latest anchor in ledger %s (%s)", anchor.ledger, anchor.created_at)
        return anchor


__all__ = ["KeybaseClient", "HorizonClient"]
