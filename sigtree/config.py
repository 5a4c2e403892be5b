"""Configuration for the verification pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Optional

from .constants import (
    HORIZON_SERVER_URI,
    KEYBASE_API_SERVER_URI,
    KEYBASE_ROOT_KID,
    KEYBASE_STELLAR_ADDRESS,
)

logger = logging.getLogger(__name__)


@dataclass
class VerifierConfig:
    """Where to fetch from, and which keys to trust."""
    api_server_uri: str = KEYBASE_API_SERVER_URI
    horizon_server_uri: str = HORIZON_SERVER_URI
    stellar_address: str = KEYBASE_STELLAR_ADDRESS
    root_kid: str = KEYBASE_ROOT_KID
    request_timeout: float = 30.0
    user_agent: str = "sigtree/0.1.0"

    @classmethod
    def from_env(cls, prefix: str = "SIGTREE_", environ: Optional[dict] = None) -> "VerifierConfig":
        """Build a config, overriding defaults with ``{prefix}{FIELD_NAME}`` variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.name == "request_timeout":
                try:
                    overrides[f.name] = float(raw)
                except ValueError:
                    raise ValueError(f"{prefix}{f.name.upper()} must be a number, got {raw!r}")
            else:
                overrides[f.name] = raw
        if overrides:
            logger.debug("Config overrides from environment: %s", sorted(overrides))
        return cls(**overrides)


__all__ = ["VerifierConfig"]
