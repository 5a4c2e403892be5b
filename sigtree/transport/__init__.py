"""
Network collaborators.

The pipeline depends only on the two protocols below; KeybaseClient and
HorizonClient are the httpx implementations used in production.
"""

from typing import Any, Dict, List, Optional, Protocol

from ..types import AnchorRecord
from .client import HorizonClient, KeybaseClient


class KeybaseAPI(Protocol):
    async def fetch_path_and_sigs(
        self,
        uid: Optional[str] = None,
        username: Optional[str] = None,
        start_hash256: Optional[str] = None,
        last: Optional[int] = None,
    ) -> Dict[str, Any]: ...

    async def fetch_sig_chain(self, uid: str) -> List[Dict[str, Any]]: ...

    async def fetch_public_keys(self, uid: str) -> List[str]: ...


class AnchorSource(Protocol):
    async def fetch_latest_anchor(self) -> AnchorRecord: ...

__all__ = ["KeybaseAPI", "AnchorSource", "KeybaseClient", "HorizonClient"]
