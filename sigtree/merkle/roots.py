"""Verification of the signed merkle roots against the blockchain anchor."""

import logging
from typing import Optional, Tuple

from ..crypto.nacl import decode_sig_packet, verify_sig
from ..errors import SignatureInvalid, TreeIntegrityError
from ..types import PathAndSigs, Sha256Hash, TreeRoots
from ..util import sha256

logger = logging.getLogger(__name__)


def check_root_sigs(
    path_and_sigs: PathAndSigs,
    expected_hash: Optional[Sha256Hash],
    root_kid: str,
) -> Tuple[TreeRoots, Sha256Hash]:
    """Check the root signature and return the signed roots and their hash.

    expected_hash is the anchor published on the blockchain. It is None for a
    live fetch that is newer than the latest anchor; the signature is still
    checked in that case.
    """
    sig = path_and_sigs.root_sigs.get(root_kid)
    if not sig:
        raise TreeIntegrityError(f"no root signature from {root_kid}")

    packet = decode_sig_packet(sig)
    got_hash = sha256(packet.raw)
    if expected_hash and expected_hash != got_hash:
        raise TreeIntegrityError("hash mismatch for root sig and stellar memo")

    payload, _ = verify_sig(root_kid, sig)
    # verify_sig already checked this; the payload is what the roots hash covers
    if payload != packet.payload:
        raise SignatureInvalid("verified payload differs from the packet payload")

    try:
        raw = payload.decode("utf-8")
        roots = TreeRoots.from_string(raw)
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise TreeIntegrityError("cannot parse signed tree roots") from e

    logger.debug("root seqno %d verified (%s)", roots.seqno, "anchored" if expected_hash else "live")
    return roots, sha256(payload)


__all__ = ["check_root_sigs"]
