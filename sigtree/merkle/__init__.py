"""Merkle tree, root signature, skip chain and reset chain verification."""

from .path import (
    candidate_uid,
    check_uid_against_legacy_tree,
    extract_uid,
    username_hash,
    walk_path,
    walk_path_to_leaf,
)
from .resets import check_reset_chain
from .roots import check_root_sigs
from .skips import check_skips, generate_log_sequence

__all__ = [
    "candidate_uid",
    "check_uid_against_legacy_tree",
    "extract_uid",
    "username_hash",
    "walk_path",
    "walk_path_to_leaf",
    "check_reset_chain",
    "check_root_sigs",
    "check_skips",
    "generate_log_sequence",
]
