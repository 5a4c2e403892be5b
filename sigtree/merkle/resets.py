"""
Account reset chain verification.

The merkle leaf commits to ``(count, head_hash)`` of a hash chain of reset and
delete events. The server sends the serialized events oldest first; each one
names the SHA-512 hash of its predecessor.
"""

import json
import logging
from typing import List, Optional

from ..errors import ResetChainIntegrityError
from ..types import ChainTails, ResetChainLink, Uid
from ..util import sha512

logger = logging.getLogger(__name__)

RESET_TYPE_RESET = "reset"
RESET_TYPE_DELETE = "delete"


def check_reset_chain(
    reset_chain: Optional[List[str]],
    chain_tails: ChainTails,
    uid: Optional[Uid] = None,
) -> Optional[List[ResetChainLink]]:
    """Verify the served reset chain against the leaf's reset tail.

    Returns the parsed chain oldest first, or None when the leaf records no
    resets.
    """
    tail = chain_tails.reset_tail
    if tail is None or tail.count == 0:
        return None
    if not reset_chain:
        raise ResetChainIntegrityError("expected a reset chain but didn't find one", key=uid)
    if len(reset_chain) != tail.count:
        raise ResetChainIntegrityError(
            f"reset chain tail is wrong length ({len(reset_chain)} != {tail.count})", key=uid
        )

    hash_expected = tail.head_hash
    i = len(reset_chain)
    ret: List[ResetChainLink] = []
    for raw in reversed(reset_chain):
        got = sha512(raw)
        if got != hash_expected:
            raise ResetChainIntegrityError("hash mismatch in reset chain", seqno=i, key=uid)
        try:
            link = ResetChainLink.from_json(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise ResetChainIntegrityError("unparseable reset chain link", seqno=i, key=uid) from e
        if link.reset_seqno != i:
            raise ResetChainIntegrityError(f"bad reset chain seqno {link.reset_seqno}, expected {i}", seqno=i, key=uid)
        if link.type not in (RESET_TYPE_RESET, RESET_TYPE_DELETE):
            raise ResetChainIntegrityError(f"unknown reset type {link.type!r}", seqno=i, key=uid)
        if ret and link.type == RESET_TYPE_DELETE:
            raise ResetChainIntegrityError("can't have a delete in the middle of the reset chain", seqno=i, key=uid)
        ret.append(link)
        hash_expected = link.prev_reset_hash
        i -= 1

    if hash_expected:
        raise ResetChainIntegrityError("reset chain didn't start with a null prev hash", key=uid)

    ret.reverse()
    logger.debug("reset chain for %s verified with %d links", uid, len(ret))
    return ret


__all__ = ["check_reset_chain", "RESET_TYPE_RESET", "RESET_TYPE_DELETE"]
