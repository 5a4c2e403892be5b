"""Sigchain link verification and replay."""

from .links import (
    ChainLink,
    ChainLinkBundle,
    OuterLink,
    Revocation,
    check_chain_growth,
    check_chain_links,
    check_link,
)
from .player import (
    Player,
    check_subchain_against_reset_chain,
    crop_to_rightmost_subchain,
    is_subchain_start,
)

__all__ = [
    "ChainLink",
    "ChainLinkBundle",
    "OuterLink",
    "Revocation",
    "check_chain_growth",
    "check_chain_links",
    "check_link",
    "Player",
    "check_subchain_against_reset_chain",
    "crop_to_rightmost_subchain",
    "is_subchain_start",
]
