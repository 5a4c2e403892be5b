"""
Skip-chain freshness proofs.

Every signed root carries a skip table mapping earlier root seqnos
``seqno - 2**k`` to the hash of that root. Connecting a fresh root back to an
older anchored one therefore takes one hop per set bit of the seqno distance.
"""

import logging
from typing import List, Optional

from ..errors import SkipChainIntegrityError
from ..reporter import Step
from ..types import Sha256Hash, TreeRoots
from ..util import sha256

logger = logging.getLogger(__name__)


def generate_log_sequence(n: int) -> List[int]:
    """Decompose n into its powers of two, largest first (13 -> [8, 4, 1])."""
    ret: List[int] = []
    step = 1
    while n > 0:
        if n & 0x1:
            ret.append(step)
        n >>= 1
        step <<= 1
    ret.reverse()
    return ret


def check_skips(
    latest_roots: TreeRoots,
    historical_seqno: int,
    historical_roots_hash: Sha256Hash,
    intermediate_roots: List[str],
    step: Optional[Step] = None,
) -> int:
    """Prove latest_roots descends from the anchored root at historical_seqno.

    intermediate_roots are the serialized roots at each stop between the two,
    in hop order. Returns the number of hops taken.
    """
    curr_seqno = latest_roots.seqno
    diff = curr_seqno - historical_seqno
    if diff < 0:
        raise SkipChainIntegrityError(
            f"latest root {curr_seqno} is older than anchored root {historical_seqno}",
            seqno=curr_seqno,
        )
    if diff == 0:
        return 0

    curr = latest_roots
    last_hash: Optional[Sha256Hash] = None
    hops = 0
    i = 0
    for jump in generate_log_sequence(diff):
        next_seqno = curr_seqno - jump
        next_hash = curr.skips.get(next_seqno)
        if not next_hash:
            raise SkipChainIntegrityError(f"server did not return a skip for seqno {next_seqno}", seqno=next_seqno)
        hops += 1
        if next_seqno == historical_seqno:
            last_hash = next_hash
            break
        if i >= len(intermediate_roots):
            raise SkipChainIntegrityError(f"server did not return the root at seqno {next_seqno}", seqno=next_seqno)
        encoded = intermediate_roots[i]
        computed = sha256(encoded)
        if computed != next_hash:
            raise SkipChainIntegrityError(
                f"root block hash mismatch at {next_seqno} {computed} != {next_hash}",
                seqno=next_seqno,
            )
        try:
            nxt = TreeRoots.from_string(encoded)
        except (ValueError, KeyError, TypeError) as e:
            raise SkipChainIntegrityError(f"unparseable root at seqno {next_seqno}", seqno=next_seqno) from e
        if nxt.seqno != next_seqno:
            raise SkipChainIntegrityError(f"root claims seqno {nxt.seqno}, expected {next_seqno}", seqno=next_seqno)
        if step is not None:
            step.update(f"skipped to {next_seqno}")
        curr = nxt
        curr_seqno = next_seqno
        i += 1

    if not last_hash:
        raise SkipChainIntegrityError(f"didn't end at final sequence {historical_seqno}", seqno=historical_seqno)
    if last_hash != historical_roots_hash:
        raise SkipChainIntegrityError(f"hash mismatch at final step {historical_seqno}", seqno=historical_seqno)
    logger.debug("skip chain %d <- %d verified in %d hops", latest_roots.seqno, historical_seqno, hops)
    return hops


__all__ = ["generate_log_sequence", "check_skips"]
