"""
Merkle path verification.

A path is the list of nodes from a committed root down to the leaf holding a
key. Each node is a JSON document ``{"tab": {...}, ...}``: interior nodes map
the next key prefix to the child's hash, leaves map full keys to payloads. The
hash of each node's serialized value must equal what its parent declared.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from ..constants import NODE_TYPE_LEAF
from ..errors import TreeIntegrityError
from ..reporter import Step
from ..types import ChainTails, PathAndSigs, PathNode, Sha256Hash, Sha512Hash, Uid
from ..util import sha256, sha512

logger = logging.getLogger(__name__)

Hasher = Callable[[str], str]


def _children_table(val: str, prefix: str) -> Dict[str, Any]:
    try:
        tab = json.loads(val)["tab"]
    except (ValueError, KeyError, TypeError) as e:
        raise TreeIntegrityError(f"unparseable node at prefix {prefix}", prefix=prefix) from e
    if not isinstance(tab, dict):
        raise TreeIntegrityError(f"node at prefix {prefix} has no table", prefix=prefix)
    return tab


def walk_path(
    path: List[PathNode],
    key: str,
    expected_hash: str,
    hasher: Hasher,
    step: Optional[Step] = None,
) -> Any:
    """Walk path from a trusted root hash to the leaf entry for key.

    Returns the leaf table's value for key. Raises TreeIntegrityError on any
    hash or prefix mismatch, or if the path ends before reaching a leaf.
    """
    for i, node in enumerate(path, start=1):
        prefix = key[:i]
        if not key.startswith(node.prefix):
            raise TreeIntegrityError(f"wrong prefix {node.prefix!r} on path to {key}", prefix=node.prefix, key=key)

        got_hash = hasher(node.val)
        if got_hash != expected_hash:
            raise TreeIntegrityError(f"hash mismatch at prefix {prefix}", prefix=prefix, key=key)
        if node.hash and node.hash != got_hash:
            raise TreeIntegrityError(f"node hash disagrees with node value at prefix {prefix}", prefix=prefix, key=key)

        if step is not None:
            step.update(f"ok at {prefix} / {got_hash}")

        table = _children_table(node.val, prefix)
        if node.type == NODE_TYPE_LEAF:
            if key not in table:
                raise TreeIntegrityError(f"leaf at prefix {prefix} does not contain {key}", prefix=prefix, key=key)
            return table[key]

        child = table.get(prefix)
        if not child:
            raise TreeIntegrityError(f"no child for prefix {prefix}", prefix=prefix, key=key)
        expected_hash = child

    raise TreeIntegrityError("walked off the end of the tree", key=key)


def walk_path_to_leaf(
    path_and_sigs: PathAndSigs,
    expected_hash: Sha512Hash,
    uid: Uid,
    step: Optional[Step] = None,
) -> ChainTails:
    """Walk the main (SHA-512) tree to the leaf for uid and parse its chain tails."""
    leaf = walk_path(path_and_sigs.path, uid, expected_hash, sha512, step)
    try:
        tails = ChainTails.from_json(leaf)
    except (IndexError, TypeError, ValueError) as e:
        raise TreeIntegrityError(f"malformed leaf for {uid}", key=uid) from e
    logger.debug("leaf for %s: tail seqno %d hash %s", uid, tails.sig_tail.seqno, tails.sig_tail.link_hash)
    return tails


def username_hash(username: str) -> Sha256Hash:
    return sha256(username.lower())


def candidate_uid(username: str) -> Uid:
    """The uid a username maps to under the modern hash-derived scheme."""
    return Uid(username_hash(username)[:30] + "19")


# Some of the earliest accounts had random uids unrelated to their usernames,
# which let the server lie about the mapping. Later uids are derived from the
# username, but the legacy mappings are still committed to by a static tree.
def check_uid_against_legacy_tree(
    usernm_hash: Sha256Hash,
    uid: Uid,
    uid_proof_path: List[PathNode],
    expected_hash: Sha256Hash,
) -> None:
    found = walk_path(uid_proof_path, usernm_hash, expected_hash, sha256)
    if found != uid:
        raise TreeIntegrityError("bad UID found in legacy UID tree", key=usernm_hash)


def extract_uid(
    username: str,
    path_and_sigs: PathAndSigs,
    legacy_uid_root_hash: Optional[Sha256Hash],
    step: Optional[Step] = None,
) -> Uid:
    """Prove the server-claimed uid belongs to username."""
    claimed = path_and_sigs.uid
    if candidate_uid(username) == claimed:
        if step is not None:
            step.success(f"map to {claimed} via hash")
        return claimed
    if not legacy_uid_root_hash:
        raise TreeIntegrityError(f"uid {claimed} is not derived from {username} and there is no legacy tree", key=username)
    check_uid_against_legacy_tree(username_hash(username), claimed, path_and_sigs.uid_proof_path, legacy_uid_root_hash)
    if step is not None:
        step.success(f"map to {claimed} via legacy tree")
    return claimed


__all__ = [
    "walk_path",
    "walk_path_to_leaf",
    "username_hash",
    "candidate_uid",
    "check_uid_against_legacy_tree",
    "extract_uid",
]
