"""
Per-holder private channel for commitment openings.

ECIES-style hybrid encryption:
    X25519(ephemeral, recipient) -> HKDF-SHA256 -> AES-256-GCM

Blob layout: ephemeral_public_key (32) || nonce (12) || ciphertext + tag
The plaintext is the compact JSON document {"v": "<value>", "r": "<blinding>"}.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from conf_errors import DecryptionFailure, MalformedData
from conf_group import RandomBytes

logger = logging.getLogger("conf_ledger.channel")

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
HKDF_SALT = b"salt"
HKDF_INFO = b"info"


@dataclass(frozen=True)
class Opening:
    """The (value, blinding) pair behind a commitment. Holder-private."""
    value: int
    blinding: int

    def __repr__(self) -> str:
        return "Opening(<hidden>)"

    def to_plaintext(self) -> bytes:
        doc = {"v": str(self.value), "r": str(self.blinding)}
        return json.dumps(doc, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_plaintext(cls, data: bytes) -> "Opening":
        doc = json.loads(data.decode("utf-8"))
        return cls(value=int(doc["v"]), blinding=int(doc["r"]))


@dataclass(frozen=True)
class HolderKeyPair:
    """
    X25519 encryption keys bound to a holder identifier.

    `signing_keys` carries an unrelated signing keypair through
    (de)serialization untouched; this core never uses it.
    """
    holder_id: str
    public_key: bytes
    private_key: bytes = field(repr=False)
    signing_keys: Optional[Dict[str, str]] = field(default=None, repr=False)


# ---- Keys --------------------------------------------------------------------

def _x25519_private(raw: bytes) -> X25519PrivateKey:
    return X25519PrivateKey.from_private_bytes(raw)


def _public_bytes(private: X25519PrivateKey) -> bytes:
    return private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def generate_keypair(holder_id: str, random_bytes: RandomBytes = secrets.token_bytes) -> HolderKeyPair:
    private = _x25519_private(random_bytes(KEY_SIZE))
    private_raw = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    logger.debug("generated encryption keypair for %s", holder_id)
    return HolderKeyPair(holder_id=holder_id, public_key=_public_bytes(private), private_key=private_raw)


def serialize_keypair(keypair: HolderKeyPair) -> Dict[str, Any]:
    """Storage form. Contains the private key: never log or publish it."""
    doc: Dict[str, Any] = {
        "id": keypair.holder_id,
        "encryptionKeys": {
            "publicKey": base64.b64encode(keypair.public_key).decode("ascii"),
            "privateKey": base64.b64encode(keypair.private_key).decode("ascii"),
        },
    }
    if keypair.signing_keys is not None:
        doc["signingKeys"] = dict(keypair.signing_keys)
    return doc


def deserialize_keypair(doc: Dict[str, Any]) -> HolderKeyPair:
    try:
        keys = doc["encryptionKeys"]
        holder_id = doc["id"]
        public_key = base64.b64decode(keys["publicKey"], validate=True)
        private_key = base64.b64decode(keys["privateKey"], validate=True)
    except (KeyError, TypeError, binascii.Error) as exc:
        raise MalformedData(f"invalid serialized keypair: {exc}") from exc
    if not isinstance(holder_id, str):
        raise MalformedData("keypair id must be a string")
    if len(public_key) != KEY_SIZE or len(private_key) != KEY_SIZE:
        raise MalformedData("encryption keys must be 32 bytes")
    if _public_bytes(_x25519_private(private_key)) != public_key:
        raise MalformedData("public key does not match private key")
    signing = doc.get("signingKeys")
    return HolderKeyPair(
        holder_id=holder_id,
        public_key=public_key,
        private_key=private_key,
        signing_keys=dict(signing) if isinstance(signing, dict) else None,
    )


# ---- ECIES -------------------------------------------------------------------

def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=HKDF_SALT,
        info=HKDF_INFO,
    ).derive(shared_secret)


def encrypt_opening(recipient_public_key: bytes,
                    opening: Opening,
                    random_bytes: RandomBytes = secrets.token_bytes) -> bytes:
    """Encrypt an opening so only the holder of the matching private key can read it."""
    try:
        recipient = X25519PublicKey.from_public_bytes(recipient_public_key)
    except (ValueError, TypeError) as exc:
        raise MalformedData(f"invalid recipient public key: {exc}") from exc

    ephemeral = _x25519_private(random_bytes(KEY_SIZE))
    key = _derive_key(ephemeral.exchange(recipient))
    nonce = random_bytes(NONCE_SIZE)
    if len(nonce) != NONCE_SIZE:
        raise ValueError("random source returned the wrong number of bytes")

    ciphertext = AESGCM(key).encrypt(nonce, opening.to_plaintext(), None)
    return _public_bytes(ephemeral) + nonce + ciphertext


def decrypt_opening(recipient_private_key: bytes, blob: bytes) -> Opening:
    """
    Inverse of encrypt_opening.

    Raises DecryptionFailure on a short blob, a bad key, a tag mismatch or an
    undecodable plaintext. A successful decryption is not proof the opening
    matches the stored commitment; check that with verify_opening.
    """
    if len(blob) < KEY_SIZE + NONCE_SIZE + TAG_SIZE:
        raise DecryptionFailure("encrypted opening too short")

    epk = blob[:KEY_SIZE]
    nonce = blob[KEY_SIZE:KEY_SIZE + NONCE_SIZE]
    ciphertext = blob[KEY_SIZE + NONCE_SIZE:]
    try:
        private = _x25519_private(recipient_private_key)
        shared = private.exchange(X25519PublicKey.from_public_bytes(epk))
        plaintext = AESGCM(_derive_key(shared)).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptionFailure("authentication tag mismatch") from exc
    except (ValueError, TypeError) as exc:
        raise DecryptionFailure(f"key agreement failed: {exc}") from exc

    try:
        return Opening.from_plaintext(plaintext)
    except (ValueError, KeyError, TypeError) as exc:
        raise DecryptionFailure(f"opening plaintext is malformed: {exc}") from exc
