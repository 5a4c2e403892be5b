"""
Signature primitives behind a uniform ``verify(key, sig) -> payload`` contract.

Only NaCl (Ed25519) packets are implemented here; PGP verification is supplied
by the caller through sigtree.keys.keyring.PgpBackend.
"""

from .nacl import (
    SigPacket,
    decode_sig_packet,
    is_nacl_enc_kid,
    is_nacl_sig_kid,
    is_pgp_kid,
    kid_to_public_key,
    public_key_to_kid,
    sign_packet,
    verify_sig,
)

__all__ = [
    "SigPacket",
    "decode_sig_packet",
    "is_nacl_enc_kid",
    "is_nacl_sig_kid",
    "is_pgp_kid",
    "kid_to_public_key",
    "public_key_to_kid",
    "sign_packet",
    "verify_sig",
]
