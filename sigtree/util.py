"""Hashing and encoding helpers shared by the pipeline stages."""

import hashlib
import json
import re
from typing import Any, Union

from .errors import SigChainIntegrityError
from .types import Sha256Hash, Sha512Hash, SigId, SigIdMapKey

UID_RE = re.compile(r"^[0-9a-f]{30}(00|19)$")

_SIG_ID_SUFFIXES = ("0f", "22")


def _as_bytes(b: Union[bytes, str]) -> bytes:
    if isinstance(b, str):
        return b.encode("utf-8")
    return b


def sha256(b: Union[bytes, str]) -> Sha256Hash:
    """Return the hex SHA-256 of b (str is hashed as its UTF-8 bytes)."""
    return Sha256Hash(hashlib.sha256(_as_bytes(b)).hexdigest())


def sha512(b: Union[bytes, str]) -> Sha512Hash:
    """Return the hex SHA-512 of b (str is hashed as its UTF-8 bytes)."""
    return Sha512Hash(hashlib.sha512(_as_bytes(b)).hexdigest())


def canonical_json(obj: Any) -> str:
    """Deterministic JSON: sorted keys, no insignificant whitespace."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sig_id_to_map_key(s: SigId) -> SigIdMapKey:
    """Strip the optional type suffix from a sig id so it can index a map."""
    tmp = str(s)
    if len(tmp) == 66 and tmp[64:66] in _SIG_ID_SUFFIXES:
        tmp = tmp[:64]
    if len(tmp) != 64:
        raise SigChainIntegrityError(f"bad sig ID found {tmp}")
    return SigIdMapKey(tmp)


def is_uid(s: str) -> bool:
    return UID_RE.match(s) is not None


__all__ = [
    "UID_RE",
    "sha256",
    "sha512",
    "canonical_json",
    "sig_id_to_map_key",
    "is_uid",
]
