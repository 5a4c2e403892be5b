"""
Key family state machine.

A KeyFamily is the set of currently active keys under one eldest key. Each key
has exactly one KeyRecord; the device map, the PGP set and the per-user key are
views kept in step with the records, so revoking a key is one removal that
also cleans up every view that mentions it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import SigChainIntegrityError
from ..freshness import ChainMaxes
from ..types import Device, DeviceId, EncSigPair, Kid, PerUserKey, SigId, SigIdMapKey, Uid
from ..util import sig_id_to_map_key

logger = logging.getLogger(__name__)


class KeyRole(str, Enum):
    SIBKEY = "sibkey"
    SUBKEY = "subkey"
    PGP = "pgp"
    PUK_SIG = "puk_sig"
    PUK_ENC = "puk_enc"


# Roles whose keys may sign sigchain links
SIGNING_ROLES = {KeyRole.SIBKEY, KeyRole.PGP}


@dataclass
class KeyRecord:
    kid: Kid
    role: KeyRole
    sig_id: Optional[SigIdMapKey] = None
    device_id: Optional[DeviceId] = None


class KeyFamily:
    def __init__(self, uid: Uid, eldest: Kid):
        self.uid = uid
        self.eldest = eldest
        self._records: Dict[Kid, KeyRecord] = {}
        self._devices: Dict[DeviceId, Device] = {}
        self._by_sig: Dict[SigIdMapKey, List[Kid]] = {}
        self._puk: Optional[PerUserKey] = None
        self._puk_generation = 0

    # Views

    @property
    def devices(self) -> Dict[DeviceId, Device]:
        return dict(self._devices)

    @property
    def pgp_kids(self) -> List[Kid]:
        return [r.kid for r in self._records.values() if r.role == KeyRole.PGP]

    @property
    def puk(self) -> Optional[PerUserKey]:
        return self._puk

    def record(self, kid: Kid) -> Optional[KeyRecord]:
        return self._records.get(kid)

    def is_active(self, kid: Kid) -> bool:
        rec = self._records.get(kid)
        return rec is not None and rec.role in SIGNING_ROLES

    # Additions

    def _index_sig(self, sig_id: Optional[SigId], kids: List[Kid]) -> Optional[SigIdMapKey]:
        if not sig_id:
            return None
        key = sig_id_to_map_key(sig_id)
        self._by_sig[key] = list(kids)
        return key

    def add_nacl_sibkey(self, kid: Kid, sig_id: Optional[SigId], device_json: Optional[Dict[str, Any]]) -> None:
        device = Device.from_json(device_json, kid)
        # keys from before device sections each get a slot of their own
        slot = device.id or DeviceId(kid)
        old = self._devices.get(slot)
        if old is not None:
            for k in (old.keys.sig, old.keys.enc):
                if k and k != kid:
                    self._remove(k)
        map_key = self._index_sig(sig_id, [kid])
        self._records[kid] = KeyRecord(kid=kid, role=KeyRole.SIBKEY, sig_id=map_key, device_id=slot)
        self._devices[slot] = device

    def add_nacl_subkey(
        self,
        kid: Kid,
        sig_id: Optional[SigId],
        parent_kid: Optional[Kid],
        device_json: Optional[Dict[str, Any]],
    ) -> None:
        """Attach an encryption key to the device owning parent_kid."""
        device_id: Optional[DeviceId] = None
        parent = self._records.get(parent_kid) if parent_kid else None
        if parent is not None and parent.role == KeyRole.SIBKEY:
            device_id = parent.device_id
        elif device_json and device_json.get("id") in self._devices:
            device_id = DeviceId(device_json["id"])
        if device_id is None:
            raise SigChainIntegrityError(f"subkey {kid} has no active parent device", key=kid)
        device = self._devices[device_id]
        if device.keys.enc and device.keys.enc != kid:
            self._remove(device.keys.enc)
        device.keys.enc = kid
        map_key = self._index_sig(sig_id, [kid])
        self._records[kid] = KeyRecord(kid=kid, role=KeyRole.SUBKEY, sig_id=map_key, device_id=device_id)

    def add_pgp_sibkey(self, kid: Kid, sig_id: Optional[SigId]) -> None:
        map_key = self._index_sig(sig_id, [kid])
        self._records[kid] = KeyRecord(kid=kid, role=KeyRole.PGP, sig_id=map_key)

    def add_pgp_eldest_key(self, kid: Kid) -> None:
        self._records[kid] = KeyRecord(kid=kid, role=KeyRole.PGP)

    def add_per_user_key(self, puk: PerUserKey, sig_id: Optional[SigId]) -> None:
        """Install puk as the single active per-user key."""
        if puk.generation <= self._puk_generation:
            raise SigChainIntegrityError(
                f"per-user key generation {puk.generation} does not supersede {self._puk_generation}",
                key=puk.sig,
            )
        if self._puk is not None:
            self._drop_puk()
        map_key = self._index_sig(sig_id, [puk.sig, puk.enc])
        self._records[puk.sig] = KeyRecord(kid=puk.sig, role=KeyRole.PUK_SIG, sig_id=map_key)
        self._records[puk.enc] = KeyRecord(kid=puk.enc, role=KeyRole.PUK_ENC, sig_id=map_key)
        self._puk = puk
        self._puk_generation = puk.generation

    # Revocation

    def _drop_puk(self) -> None:
        puk = self._puk
        self._puk = None
        if puk is not None:
            self._records.pop(puk.sig, None)
            self._records.pop(puk.enc, None)

    def _remove(self, kid: Kid) -> None:
        rec = self._records.pop(kid, None)
        if rec is None:
            return
        if rec.role == KeyRole.SIBKEY:
            device = self._devices.get(rec.device_id) if rec.device_id is not None else None
            if device is not None and device.keys.sig == kid:
                del self._devices[rec.device_id]
                # the device's encryption key goes with it
                if device.keys.enc:
                    self._records.pop(device.keys.enc, None)
        elif rec.role == KeyRole.SUBKEY:
            device = self._devices.get(rec.device_id) if rec.device_id is not None else None
            if device is not None and device.keys.enc == kid:
                device.keys.enc = None
        elif rec.role in (KeyRole.PUK_SIG, KeyRole.PUK_ENC):
            self._drop_puk()

    def revoke_key(self, kid: Kid) -> None:
        self._remove(kid)

    def revoke_sig(self, sig_id: SigId) -> None:
        map_key = sig_id_to_map_key(sig_id)
        kids = self._by_sig.pop(map_key, None)
        for kid in kids or []:
            self._remove(kid)

    def revoke_batch(self, revocation) -> None:
        """Apply a link's revocation section (a sigchain.links.Revocation, or None)."""
        if revocation is None:
            return
        for sig_id in revocation.sig_ids:
            self.revoke_sig(sig_id)
        for kid in revocation.kids:
            self.revoke_key(kid)

    def summary(self) -> str:
        return "; ".join([
            f"PUK generation: {self._puk.generation if self._puk else 'n/a'}",
            f"live devices: {len(self._devices)}",
            f"live PGP keys: {len(self.pgp_kids)}",
        ])

    def snapshot(self, keyring, maxes: Optional[ChainMaxes] = None) -> "UserKeys":
        """Freeze the family into a UserKeys export.

        maxes carries the freshness counters of the chain that was replayed.
        """
        devices = tuple(
            Device(id=d.id, type=d.type, name=d.name, keys=EncSigPair(sig=d.keys.sig, enc=d.keys.enc))
            for d in self._devices.values()
        )
        pgp_keys = []
        for kid in self.pgp_kids:
            raw = keyring.export_pgp_key(kid)
            if raw is None:
                logger.warning("active PGP key %s has no key material in the keyring", kid)
                continue
            pgp_keys.append(raw)
        return UserKeys(uid=self.uid, eldest=self.eldest, puk=self._puk, devices=devices, pgp_keys=tuple(pgp_keys), maxes=maxes)


@dataclass(frozen=True)
class UserKeys:
    """Immutable export of a user's currently active keys."""
    uid: Uid
    eldest: Kid
    puk: Optional[PerUserKey]
    devices: Tuple[Device, ...]
    pgp_keys: Tuple[str, ...]
    maxes: Optional[ChainMaxes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "eldest": self.eldest,
            "puk": self.puk.to_dict() if self.puk else None,
            "devices": [d.to_dict() for d in self.devices],
            "pgp_keys": list(self.pgp_keys),
            "maxes": self.maxes.to_dict() if self.maxes else None,
        }


__all__ = ["KeyRole", "KeyRecord", "KeyFamily", "UserKeys"]
