"""
Core data types for tree and sigchain verification.

Nominal string types keep UIDs, KIDs and the different digest widths apart;
the dataclasses below are parsed, immutable views of the identity server's
JSON payloads.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, NewType, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .freshness import ChainMaxes
    from .sigchain.links import ChainLinkBundle

Uid = NewType("Uid", str)
Kid = NewType("Kid", str)
Username = NewType("Username", str)
Sha256Hash = NewType("Sha256Hash", str)
Sha512Hash = NewType("Sha512Hash", str)
SigId = NewType("SigId", str)
SigIdMapKey = NewType("SigIdMapKey", str)
DeviceId = NewType("DeviceId", str)


@dataclass(frozen=True)
class PathNode:
    """One step of a merkle path from the root towards a leaf."""
    prefix: str
    hash: str
    val: str
    type: int

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "PathNode":
        node = obj.get("node") or {}
        return cls(
            prefix=obj.get("prefix", ""),
            hash=node.get("hash", ""),
            val=node.get("val", ""),
            type=int(node.get("type", 0)),
        )


@dataclass(frozen=True)
class TreeRoots:
    """The signed payload committing to the main and legacy merkle roots."""
    seqno: int
    root: Sha512Hash
    legacy_uid_root: Optional[Sha256Hash]
    skips: Dict[int, Sha256Hash]
    raw: str = field(repr=False)

    @classmethod
    def from_string(cls, raw: str) -> "TreeRoots":
        body = json.loads(raw)["body"]
        skips = {int(k): Sha256Hash(v) for k, v in (body.get("skips") or {}).items()}
        return cls(
            seqno=int(body["seqno"]),
            root=Sha512Hash(body["root"]),
            legacy_uid_root=body.get("legacy_uid_root"),
            skips=skips,
            raw=raw,
        )


@dataclass(frozen=True)
class SigChainTail:
    """Pointer to the newest link a merkle leaf commits to."""
    seqno: int
    link_hash: Sha256Hash
    sig_hash: str


@dataclass(frozen=True)
class ResetChainTail:
    count: int
    head_hash: Optional[Sha512Hash]


@dataclass(frozen=True)
class ChainTails:
    """Leaf payload for a uid: [version, sig tail, reserved, eldest kid, reset tail]."""
    version: int
    sig_tail: SigChainTail
    eldest_kid: Optional[Kid]
    reset_tail: Optional[ResetChainTail]

    @classmethod
    def from_json(cls, leaf: List[Any]) -> "ChainTails":
        tail = leaf[1]
        eldest = leaf[3] if len(leaf) > 3 else None
        reset = leaf[4] if len(leaf) > 4 else None
        return cls(
            version=int(leaf[0]),
            sig_tail=SigChainTail(seqno=int(tail[0]), link_hash=Sha256Hash(tail[1]), sig_hash=tail[2] if len(tail) > 2 else ""),
            eldest_kid=Kid(eldest) if eldest else None,
            reset_tail=ResetChainTail(count=int(reset[0]), head_hash=reset[1]) if reset else None,
        )


@dataclass(frozen=True)
class ResetChainLink:
    """One account reset or delete event."""
    reset_seqno: int
    type: str
    prev_reset_hash: Optional[Sha512Hash]
    prev_public_seqno: int
    prev_eldest_kid: Optional[Kid]
    ctime: int = 0

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "ResetChainLink":
        prev = obj.get("prev") or {}
        return cls(
            reset_seqno=int(obj["reset_seqno"]),
            type=obj["type"],
            prev_reset_hash=prev.get("reset"),
            prev_public_seqno=int(prev.get("public_seqno") or 0),
            prev_eldest_kid=prev.get("eldest_kid"),
            ctime=int(obj.get("ctime") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reset_seqno": self.reset_seqno,
            "type": self.type,
            "prev": {
                "reset": self.prev_reset_hash,
                "public_seqno": self.prev_public_seqno,
                "eldest_kid": self.prev_eldest_kid,
            },
            "ctime": self.ctime,
        }


@dataclass(frozen=True)
class PathAndSigs:
    """Response of the merkle path endpoint."""
    uid: Uid
    username: Optional[str]
    root_seqno: int
    root_sigs: Dict[str, str]
    path: List[PathNode]
    uid_proof_path: List[PathNode]
    skips: List[str]
    reset_chain: Optional[List[str]]

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "PathAndSigs":
        root = obj.get("root") or {}
        sigs = {kid: entry["sig"] for kid, entry in (root.get("sigs") or {}).items()}
        return cls(
            uid=Uid(obj.get("uid", "")),
            username=obj.get("username"),
            root_seqno=int(root.get("seqno") or 0),
            root_sigs=sigs,
            path=[PathNode.from_json(p) for p in obj.get("path") or []],
            uid_proof_path=[PathNode.from_json(p) for p in obj.get("uid_proof_path") or []],
            skips=list(obj.get("skips") or []),
            reset_chain=obj.get("reset_chain"),
        )


@dataclass(frozen=True)
class RawLink:
    """A signed link as served by the signature endpoint."""
    seqno: int
    payload_json: str
    sig: str
    sig_version: int
    kid: Kid
    sig_id: Optional[SigId] = None

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "RawLink":
        return cls(
            seqno=int(obj.get("seqno") or 0),
            payload_json=obj["payload_json"],
            sig=obj["sig"],
            sig_version=int(obj.get("sig_version") or 1),
            kid=Kid(obj["kid"]),
            sig_id=obj.get("sig_id"),
        )


@dataclass
class EncSigPair:
    sig: Optional[Kid] = None
    enc: Optional[Kid] = None


@dataclass
class Device:
    id: DeviceId
    type: str
    name: Optional[str]
    keys: EncSigPair

    @classmethod
    def from_json(cls, d: Optional[Dict[str, Any]], kid: Kid) -> "Device":
        d = d or {}
        return cls(
            id=DeviceId(d.get("id", "")),
            type=d.get("type", ""),
            name=d.get("name"),
            keys=EncSigPair(sig=kid),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "keys": {"sig": self.keys.sig, "enc": self.keys.enc},
        }


@dataclass(frozen=True)
class PerUserKey:
    generation: int
    sig: Kid
    enc: Kid

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "PerUserKey":
        return cls(
            generation=int(obj["generation"]),
            sig=Kid(obj["signing_kid"]),
            enc=Kid(obj["encryption_kid"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"generation": self.generation, "keys": {"sig": self.sig, "enc": self.enc}}


@dataclass(frozen=True)
class AnchorRecord:
    """A root commitment published on the blockchain."""
    hash: Sha256Hash
    ledger: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class UserSigChain:
    """Verified result of walking the tree down to a user and fetching their sigchain."""
    uid: Uid
    eldest: Optional[Kid]
    links: List["ChainLinkBundle"]
    resets: Optional[List[ResetChainLink]]
    maxes: "ChainMaxes"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "eldest": self.eldest,
            "links": [b.to_dict() for b in self.links],
            "resets": [r.to_dict() for r in self.resets] if self.resets is not None else None,
            "maxes": self.maxes.to_dict(),
        }
