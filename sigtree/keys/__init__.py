"""Key ring and key family."""

from .family import KeyFamily, KeyRecord, KeyRole, UserKeys
from .keyring import GenericKey, KeyRing, NaClKey, PgpBackend, PgpKeyHandle, PgpKeySet

__all__ = [
    "KeyFamily",
    "KeyRecord",
    "KeyRole",
    "UserKeys",
    "GenericKey",
    "KeyRing",
    "NaClKey",
    "PgpBackend",
    "PgpKeyHandle",
    "PgpKeySet",
]
