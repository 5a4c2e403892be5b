"""
Public key ring for one user.

Keys are either NaCl signing keys, verified here with Ed25519, or PGP keys,
whose primitives come from an injected PgpBackend. A PGP key id may have
several historical versions of key material; pgp_update links pick which one
is authoritative.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, Tuple, Union

from ..crypto.nacl import is_nacl_enc_kid, is_nacl_sig_kid, kid_to_public_key, verify_sig
from ..errors import SigChainIntegrityError, SignatureInvalid
from ..reporter import Reporter, new_reporter
from ..types import Kid, Sha256Hash, SigId, Uid
from ..util import sha256

logger = logging.getLogger(__name__)


class PgpKeyHandle(Protocol):
    """An imported PGP public key."""
    kid: str

    def verify(self, sig: str) -> Tuple[bytes, bytes]:
        """Return (payload, raw signature bytes) or raise SignatureInvalid."""
        ...


class PgpBackend(Protocol):
    def import_key(self, armored: str) -> PgpKeyHandle: ...


class PgpKey:
    def __init__(self, handle: PgpKeyHandle, raw: str):
        self.raw = raw
        self.handle = handle
        self.full_hash = sha256(raw)

    def verify(self, sig: str) -> Tuple[bytes, bytes]:
        return self.handle.verify(sig)


class PgpKeySet:
    """All known versions of one PGP key id."""

    def __init__(self, handle: PgpKeyHandle, raw: str):
        self.kid = Kid(handle.kid)
        self.by_full_hash: Dict[Sha256Hash, PgpKey] = {}
        self.last: Optional[PgpKey] = None
        self.current: Optional[Sha256Hash] = None
        self.insert(PgpKey(handle, raw))

    def insert(self, key: PgpKey) -> None:
        self.by_full_hash[key.full_hash] = key
        self.last = key

    def select(self, full_hash: Sha256Hash) -> None:
        if full_hash not in self.by_full_hash:
            raise SigChainIntegrityError(f"cannot select PGP key {full_hash} in update, didn't have it in keyring", key=self.kid)
        self.current = full_hash

    def export_key(self) -> str:
        key = self.by_full_hash[self.current] if self.current else self.last
        return key.raw

    def verify(self, sig: str) -> Tuple[bytes, bytes]:
        if self.current:
            return self.by_full_hash[self.current].verify(sig)
        for key in self.by_full_hash.values():
            try:
                return key.verify(sig)
            except SignatureInvalid:
                continue
        raise SignatureInvalid(f"could not verify with given PGP keys for {self.kid}")


class NaClKey:
    def __init__(self, kid: Kid):
        kid_to_public_key(kid)
        self.kid = kid

    def verify(self, sig: str) -> Tuple[bytes, bytes]:
        return verify_sig(self.kid, sig)


GenericKey = Union[PgpKeySet, NaClKey]


class KeyRing:
    """Every public key the server claims a user has ever had, indexed by kid."""

    def __init__(self, uid: Uid, pgp_backend: Optional[PgpBackend] = None, reporter: Optional[Reporter] = None):
        self.uid = uid
        self.pgp_backend = pgp_backend
        self.reporter = new_reporter(reporter)
        self.by_kid: Dict[Kid, GenericKey] = {}
        self.pgp_keys: Dict[Kid, PgpKeySet] = {}

    def select_pgp_key(self, kid: Kid, full_hash: Sha256Hash) -> None:
        key = self.pgp_keys.get(kid)
        if key is None:
            raise SigChainIntegrityError("cannot select PGP key, KID not found", key=kid)
        key.select(full_hash)

    def add_pgp_key(self, handle: PgpKeyHandle, raw: str) -> None:
        kid = Kid(handle.kid)
        existing = self.pgp_keys.get(kid)
        if existing is not None:
            existing.insert(PgpKey(handle, raw))
            return
        key_set = PgpKeySet(handle, raw)
        self.pgp_keys[kid] = key_set
        self.by_kid[kid] = key_set

    def export_pgp_key(self, kid: Kid) -> Optional[str]:
        key = self.pgp_keys.get(kid)
        if key is None:
            return None
        return key.export_key()

    def add_key(self, raw: str) -> None:
        """Import one key bundle: a NaCl kid or an armored PGP key."""
        bundle = raw.strip()
        if is_nacl_sig_kid(bundle):
            key = NaClKey(Kid(bundle))
            self.by_kid[key.kid] = key
            return
        if is_nacl_enc_kid(bundle):
            logger.debug("skipping encryption-only key %s", bundle)
            return
        if self.pgp_backend is None:
            logger.warning("no PGP backend configured; skipping PGP key bundle for %s", self.uid)
            return
        self.add_pgp_key(self.pgp_backend.import_key(raw), raw)

    def verify(self, kid: Kid, sig: str) -> Tuple[bytes, SigId]:
        """Verify sig with the key kid; return the payload and the sig id."""
        key = self.by_kid.get(kid)
        if key is None:
            raise SignatureInvalid(f"key {kid} not found in keyring")
        payload, raw = key.verify(sig)
        return payload, SigId(sha256(raw))

    async def fetch(self, api) -> None:
        """Load all of the user's public keys from the identity server."""
        step = self.reporter.step("fetch all public keys from keybase")
        step.start(f"uid {self.uid}")
        bundles = await api.fetch_public_keys(self.uid)
        for raw in bundles:
            self.add_key(raw)
        step.success(f"got {len(bundles)} keys")


__all__ = [
    "PgpKeyHandle",
    "PgpBackend",
    "PgpKey",
    "PgpKeySet",
    "NaClKey",
    "GenericKey",
    "KeyRing",
]
