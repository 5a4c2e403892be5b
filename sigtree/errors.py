"""
Error taxonomy for the verification pipeline.

Every error is fatal: the pipeline either produces a fully verified result or
raises one of these.
"""

from typing import Optional


class SigtreeError(Exception):
    """Base class for all verification failures."""


class IntegrityError(SigtreeError):
    """A committed structure did not match what was served."""

    def __init__(
        self,
        message: str,
        *,
        seqno: Optional[int] = None,
        prefix: Optional[str] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.seqno = seqno
        self.prefix = prefix
        self.key = key


class TreeIntegrityError(IntegrityError):
    """Hash or prefix mismatch while walking a merkle path."""


class ResetChainIntegrityError(IntegrityError):
    """Malformed or contradictory account reset chain."""


class SigChainIntegrityError(IntegrityError):
    """Bad seqno, prev hash, v2 envelope, misplaced eldest link or inactive signer."""


class SkipChainIntegrityError(IntegrityError):
    """Missing or mismatched skip entry, or the hops missed the anchored root."""


class SignatureInvalid(SigtreeError):
    """A signature failed to verify or could not be decoded."""


class TransportError(SigtreeError):
    """A network collaborator failed or returned an error status."""


__all__ = [
    "SigtreeError",
    "IntegrityError",
    "TreeIntegrityError",
    "ResetChainIntegrityError",
    "SigChainIntegrityError",
    "SkipChainIntegrityError",
    "SignatureInvalid",
    "TransportError",
]
