"""
Sigchain link parsing and hash-chain verification.

Both signature versions carry the link as a JSON "inner" payload. Version 1
signs the inner payload directly. Version 2 signs a compact msgpack "outer"
envelope that points at the inner payload by hash::

    [version, seqno, prev, inner_hash, link_type, seqno_type, ignore_if_unsupported, ...]

Links are checked newest first: each verified link yields the hash its
predecessor must have.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import msgpack

from ..crypto.nacl import decode_sig_packet
from ..errors import SigChainIntegrityError, SignatureInvalid
from ..types import Kid, PerUserKey, RawLink, Sha256Hash, SigChainTail, SigId, Uid
from ..util import canonical_json, sha256

logger = logging.getLogger(__name__)

LINK_TYPE_ELDEST = "eldest"
LINK_TYPE_SIBKEY = "sibkey"
LINK_TYPE_SUBKEY = "subkey"
LINK_TYPE_PGP_UPDATE = "pgp_update"
LINK_TYPE_PER_USER_KEY = "per_user_key"


@dataclass(frozen=True)
class Revocation:
    """A batch of sig ids and kids a link revokes."""
    sig_ids: Tuple[SigId, ...] = ()
    kids: Tuple[Kid, ...] = ()

    @classmethod
    def from_json(cls, obj: Optional[Dict[str, Any]]) -> Optional["Revocation"]:
        if not obj:
            return None
        sig_ids = ([obj["sig_id"]] if obj.get("sig_id") else []) + list(obj.get("sig_ids") or [])
        kids = ([obj["kid"]] if obj.get("kid") else []) + list(obj.get("kids") or [])
        if not sig_ids and not kids:
            return None
        return cls(sig_ids=tuple(SigId(s) for s in sig_ids), kids=tuple(Kid(k) for k in kids))


@dataclass(frozen=True)
class EldestBody:
    kid: Kid
    device: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class SibkeyBody:
    kid: Kid
    reverse_sig: Optional[str]
    device: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class SubkeyBody:
    kid: Kid
    parent_kid: Optional[Kid]
    device: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PgpUpdateBody:
    kid: Kid
    full_hash: Sha256Hash


@dataclass(frozen=True)
class PerUserKeyBody:
    puk: PerUserKey
    reverse_sig: Optional[str]


@dataclass(frozen=True)
class OtherBody:
    """Any link type that does not change the key family beyond revocations."""
    type: str


LinkBody = Union[EldestBody, SibkeyBody, SubkeyBody, PgpUpdateBody, PerUserKeyBody, OtherBody]


def _section(body: Dict[str, Any], name: str) -> Dict[str, Any]:
    sec = body.get(name)
    if not isinstance(sec, dict):
        raise SigChainIntegrityError(f"missing {name} section")
    return sec


def _parse_body(link_type: str, body: Dict[str, Any], signer: Kid) -> LinkBody:
    device = body.get("device")
    if link_type == LINK_TYPE_ELDEST:
        return EldestBody(kid=signer, device=device)
    if link_type == LINK_TYPE_SIBKEY:
        sec = _section(body, "sibkey")
        return SibkeyBody(kid=Kid(sec["kid"]), reverse_sig=sec.get("reverse_sig"), device=device)
    if link_type == LINK_TYPE_SUBKEY:
        sec = _section(body, "subkey")
        return SubkeyBody(kid=Kid(sec["kid"]), parent_kid=sec.get("parent_kid"), device=device)
    if link_type == LINK_TYPE_PGP_UPDATE:
        sec = _section(body, "pgp_update")
        return PgpUpdateBody(kid=Kid(sec["kid"]), full_hash=Sha256Hash(sec["full_hash"]))
    if link_type == LINK_TYPE_PER_USER_KEY:
        sec = _section(body, "per_user_key")
        return PerUserKeyBody(puk=PerUserKey.from_json(sec), reverse_sig=sec.get("reverse_sig"))
    return OtherBody(type=link_type)


@dataclass(frozen=True)
class ChainLink:
    """The parsed inner payload of one sigchain link."""
    seqno: int
    prev: Optional[Sha256Hash]
    ctime: int
    type: str
    sig_version: int
    uid: Uid
    kid: Kid
    declared_eldest_kid: Optional[Kid]
    body: LinkBody
    revoke: Optional[Revocation]
    payload: Dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "ChainLink":
        try:
            body = obj["body"]
            key = body.get("key") or {}
            link_type = body["type"]
            kid = Kid(key.get("kid", ""))
            return cls(
                seqno=int(obj["seqno"]),
                prev=obj.get("prev"),
                ctime=int(obj.get("ctime") or 0),
                type=link_type,
                sig_version=int(body.get("version") or 1),
                uid=Uid(key.get("uid", "")),
                kid=kid,
                declared_eldest_kid=key.get("eldest_kid"),
                body=_parse_body(link_type, body, kid),
                revoke=Revocation.from_json(body.get("revoke")),
                payload=obj,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SigChainIntegrityError(f"malformed link: {e}", seqno=obj.get("seqno") if isinstance(obj, dict) else None) from e

    @property
    def eldest_kid(self) -> Kid:
        """The eldest key this link was made under.

        The oldest links predate the eldest_kid field; their signing key is
        assumed to be the eldest.
        """
        return self.declared_eldest_kid or self.kid

    @property
    def is_eldest(self) -> bool:
        return self.type == LINK_TYPE_ELDEST

    @property
    def device(self) -> Optional[Dict[str, Any]]:
        return self.payload["body"].get("device")

    def payload_with_nulled_reverse_sig(self, section: str) -> str:
        """Canonical payload a reverse signature covers: this link with its own reverse_sig nulled."""
        sec = self.payload.get("body", {}).get(section)
        if not isinstance(sec, dict) or not sec.get("reverse_sig"):
            raise SigChainIntegrityError("no reverse sig slot to null out", seqno=self.seqno)
        obj = copy.deepcopy(self.payload)
        obj["body"][section]["reverse_sig"] = None
        return canonical_json(obj)


@dataclass(frozen=True)
class OuterLink:
    """Decoded v2 outer envelope."""
    version: int
    seqno: int
    prev: Optional[str]
    inner_hash: str
    link_type: int
    seqno_type: int
    ignore_if_unsupported: bool

    @classmethod
    def decode(cls, buf: bytes) -> "OuterLink":
        try:
            arr = msgpack.unpackb(buf, raw=False)
            return cls(
                version=int(arr[0]),
                seqno=int(arr[1]),
                prev=arr[2].hex() if arr[2] else None,
                inner_hash=arr[3].hex(),
                link_type=int(arr[4]),
                seqno_type=int(arr[5]) if len(arr) > 5 else 0,
                ignore_if_unsupported=bool(arr[6]) if len(arr) > 6 else False,
            )
        except (ValueError, TypeError, IndexError, AttributeError) as e:
            raise SignatureInvalid(f"cannot decode v2 outer link: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "seqno": self.seqno,
            "prev": self.prev,
            "inner_hash": self.inner_hash,
            "link_type": self.link_type,
            "seqno_type": self.seqno_type,
            "ignore_if_unsupported": self.ignore_if_unsupported,
        }


@dataclass(frozen=True)
class ChainLinkBundle:
    """A hash-verified link with the signature it came with."""
    inner: ChainLink
    outer: Optional[OuterLink]
    sig: str = field(repr=False)
    kid: Kid
    payload_hash: Sha256Hash

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inner": self.inner.payload,
            "outer": self.outer.to_dict() if self.outer else None,
            "sig": self.sig,
            "kid": self.kid,
            "payload_hash": self.payload_hash,
        }


def check_link(raw: RawLink, expected_hash: Optional[Sha256Hash], i: int) -> Tuple[ChainLinkBundle, Optional[Sha256Hash]]:
    """Check that raw is link number i and hashes to expected_hash.

    expected_hash may be None only for the newest link of a fetch. Returns the
    bundle and the hash the previous link must have.
    """
    inner_string = raw.payload_json
    try:
        inner_obj = json.loads(inner_string)
    except ValueError as e:
        raise SigChainIntegrityError(f"unparseable payload at position {i}", seqno=i) from e
    inner = ChainLink.from_json(inner_obj)
    inner_hash = sha256(inner_string)
    got_hash = inner_hash
    outer: Optional[OuterLink] = None

    if raw.sig_version == 2:
        outer_buf = decode_sig_packet(raw.sig).payload
        got_hash = sha256(outer_buf)
        outer = OuterLink.decode(outer_buf)
        if outer.prev != inner.prev:
            raise SigChainIntegrityError(f"bad prev/prev mismatch at position {i}", seqno=i)
        if outer.inner_hash != inner_hash:
            raise SigChainIntegrityError(f"bad inner mismatch at position {i}", seqno=i)
        if outer.seqno != i:
            raise SigChainIntegrityError(f"expected seqno {i} on outer link; got {outer.seqno}", seqno=i)
    elif raw.sig_version != 1:
        raise SigChainIntegrityError(f"unknown sig version {raw.sig_version} at position {i}", seqno=i)

    if expected_hash and got_hash != expected_hash:
        raise SigChainIntegrityError(f"bad sigchain link at {i} ({got_hash} != {expected_hash})", seqno=i)
    if inner.seqno != i:
        raise SigChainIntegrityError(f"bad seqno {inner.seqno} at position {i}", seqno=i)

    bundle = ChainLinkBundle(inner=inner, outer=outer, sig=raw.sig, kid=raw.kid, payload_hash=got_hash)
    return bundle, inner.prev


def check_chain_growth(latest: SigChainTail, historical: SigChainTail) -> Dict[int, Sha256Hash]:
    """Cross-check the live and anchored leaves; return seqno -> asserted link hash."""
    if latest.seqno < historical.seqno:
        raise SigChainIntegrityError("chain grew backwards between two merkle fetches", seqno=latest.seqno)
    if latest.seqno == historical.seqno and latest.link_hash != historical.link_hash:
        raise SigChainIntegrityError("two merkle fetches disagree on the same link", seqno=latest.seqno)
    ret: Dict[int, Sha256Hash] = {}
    if historical.seqno > 0:
        ret[historical.seqno] = historical.link_hash
    if latest.seqno > 0:
        ret[latest.seqno] = latest.link_hash
    return ret


def check_chain_links(raw_links: List[RawLink], assertions: Dict[int, Sha256Hash]) -> List[ChainLinkBundle]:
    """Verify a full fetched sigchain against the tree's seqno -> hash assertions.

    raw_links are oldest first; the result is oldest first too.
    """
    num_sigs = len(raw_links)
    if assertions and max(assertions) > num_sigs:
        raise SigChainIntegrityError(
            f"server returned {num_sigs} links but the tree commits to {max(assertions)}",
            seqno=max(assertions),
        )

    # The newest link may have landed after the tree fetch, so it might not be
    # asserted by the tree. Every older link is pinned by its successor.
    expected_hash = assertions.get(num_sigs)
    ret: List[ChainLinkBundle] = []
    for seqno in range(num_sigs, 0, -1):
        asserted = assertions.get(seqno)
        if asserted and expected_hash != asserted:
            raise SigChainIntegrityError(f"got wrong expected hash (via tree) at {seqno}", seqno=seqno)
        if expected_hash is None and seqno != num_sigs:
            raise SigChainIntegrityError(f"link {seqno + 1} has no prev hash", seqno=seqno + 1)
        bundle, prev = check_link(raw_links[seqno - 1], expected_hash, seqno)
        expected_hash = prev
        ret.append(bundle)
    ret.reverse()
    return ret


__all__ = [
    "LINK_TYPE_ELDEST",
    "LINK_TYPE_SIBKEY",
    "LINK_TYPE_SUBKEY",
    "LINK_TYPE_PGP_UPDATE",
    "LINK_TYPE_PER_USER_KEY",
    "Revocation",
    "EldestBody",
    "SibkeyBody",
    "SubkeyBody",
    "PgpUpdateBody",
    "PerUserKeyBody",
    "OtherBody",
    "LinkBody",
    "ChainLink",
    "OuterLink",
    "ChainLinkBundle",
    "check_link",
    "check_chain_growth",
    "check_chain_links",
]
