"""
Keybase NaCl signature packets.

A packet is a msgpack map::

    {"body": {"detached": bool, "hash_type": 10, "key": <binary kid>,
              "payload": <bytes>, "sig": <64 bytes>, "sig_type": 32},
     "tag": 514, "version": 1}

transported base64-encoded. The Ed25519 signature covers ``payload`` directly.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Tuple, Union

import msgpack
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from ..errors import SignatureInvalid
from ..types import Kid

logger = logging.getLogger(__name__)

KID_VERSION = "01"
KID_TYPE_EDDSA = "20"
KID_TYPE_DH = "21"
KID_SUFFIX = "0a"

PACKET_TAG_SIGNATURE = 514
PACKET_VERSION = 1
HASH_TYPE_SHA512 = 10
SIG_TYPE_EDDSA = 32


def is_nacl_sig_kid(kid: str) -> bool:
    return kid[:4] == KID_VERSION + KID_TYPE_EDDSA


def is_nacl_enc_kid(kid: str) -> bool:
    return kid[:4] == KID_VERSION + KID_TYPE_DH


def is_pgp_kid(kid: str) -> bool:
    return not (is_nacl_sig_kid(kid) or is_nacl_enc_kid(kid))


def public_key_to_kid(public: Ed25519PublicKey) -> Kid:
    raw = public.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return Kid(KID_VERSION + KID_TYPE_EDDSA + raw.hex() + KID_SUFFIX)


def kid_to_public_key(kid: str) -> Ed25519PublicKey:
    """Import the Ed25519 verifying key embedded in a NaCl signing KID."""
    if not is_nacl_sig_kid(kid) or len(kid) != 70 or not kid.endswith(KID_SUFFIX):
        raise SignatureInvalid(f"not a NaCl signing KID: {kid}")
    try:
        return Ed25519PublicKey.from_public_bytes(bytes.fromhex(kid[4:68]))
    except ValueError as e:
        raise SignatureInvalid(f"bad NaCl KID {kid}: {e}") from e


@dataclass(frozen=True)
class SigPacket:
    kid: Kid
    payload: bytes
    sig: bytes
    detached: bool
    raw: bytes


def _b64decode(s: Union[str, bytes]) -> bytes:
    try:
        return base64.b64decode(s, validate=False)
    except (binascii.Error, ValueError) as e:
        raise SignatureInvalid(f"signature is not valid base64: {e}") from e


def decode_sig_packet(sig: Union[str, bytes]) -> SigPacket:
    """Decode a base64 (str) or binary (bytes) signature packet."""
    raw = _b64decode(sig) if isinstance(sig, str) else sig
    try:
        obj = msgpack.unpackb(raw, raw=False)
    except (msgpack.ExtraData, msgpack.FormatError, msgpack.StackError, ValueError, TypeError) as e:
        raise SignatureInvalid(f"cannot decode signature packet: {e}") from e
    if not isinstance(obj, dict) or not isinstance(obj.get("body"), dict):
        raise SignatureInvalid("signature packet has no body")
    if obj.get("tag") != PACKET_TAG_SIGNATURE or obj.get("version") != PACKET_VERSION:
        raise SignatureInvalid(f"unexpected packet tag/version {obj.get('tag')}/{obj.get('version')}")
    body = obj["body"]
    key, payload, signature = body.get("key"), body.get("payload"), body.get("sig")
    if not isinstance(key, bytes) or not isinstance(signature, bytes):
        raise SignatureInvalid("signature packet is missing key or sig")
    return SigPacket(
        kid=Kid(key.hex()),
        payload=payload or b"",
        sig=signature,
        detached=bool(body.get("detached")),
        raw=raw,
    )


def verify_sig(kid: str, sig: Union[str, bytes]) -> Tuple[bytes, bytes]:
    """Verify a packet under kid and return ``(payload, raw packet bytes)``."""
    packet = decode_sig_packet(sig)
    if packet.kid != kid:
        raise SignatureInvalid(f"signature made by {packet.kid}, expected {kid}")
    public = kid_to_public_key(kid)
    try:
        public.verify(packet.sig, packet.payload)
    except InvalidSignature as e:
        raise SignatureInvalid(f"bad signature from {kid}") from e
    return packet.payload, packet.raw


def sign_packet(private: Ed25519PrivateKey, payload: bytes) -> str:
    """Produce a base64 signature packet over payload."""
    kid = public_key_to_kid(private.public_key())
    obj = {
        "body": {
            "detached": False,
            "hash_type": HASH_TYPE_SHA512,
            "key": bytes.fromhex(kid),
            "payload": payload,
            "sig": private.sign(payload),
            "sig_type": SIG_TYPE_EDDSA,
        },
        "tag": PACKET_TAG_SIGNATURE,
        "version": PACKET_VERSION,
    }
    return base64.b64encode(msgpack.packb(obj, use_bin_type=True)).decode("ascii")


__all__ = [
    "SigPacket",
    "is_nacl_sig_kid",
    "is_nacl_enc_kid",
    "is_pgp_kid",
    "public_key_to_kid",
    "kid_to_public_key",
    "decode_sig_packet",
    "verify_sig",
    "sign_packet",
]
