"""
sigtree

Verifies a Keybase-style identity from a blockchain-anchored merkle root down
to the user's currently active keys.
"""

__version__ = "0.1.0"

from .config import VerifierConfig
from .errors import (
    IntegrityError,
    ResetChainIntegrityError,
    SigChainIntegrityError,
    SignatureInvalid,
    SigtreeError,
    SkipChainIntegrityError,
    TransportError,
    TreeIntegrityError,
)
from .freshness import ChainMaxes
from .keys import KeyFamily, KeyRing, UserKeys
from .reporter import LoggingReporter, NullReporter
from .runner import Runner, RunOptions, verify_user
from .sigchain import Player
from .types import UserSigChain
from .walker import TreeWalker

__all__ = [
    "VerifierConfig",
    "SigtreeError",
    "IntegrityError",
    "TreeIntegrityError",
    "ResetChainIntegrityError",
    "SigChainIntegrityError",
    "SkipChainIntegrityError",
    "SignatureInvalid",
    "TransportError",
    "ChainMaxes",
    "KeyFamily",
    "KeyRing",
    "UserKeys",
    "LoggingReporter",
    "NullReporter",
    "Runner",
    "RunOptions",
    "verify_user",
    "Player",
    "UserSigChain",
    "TreeWalker",
]
