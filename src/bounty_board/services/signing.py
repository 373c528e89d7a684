"""
Ed25519 identities and signed instruction envelopes.

An account id is the base64url (unpadded) encoding of the signer's raw
32-byte Ed25519 public key, so a signature can be checked without any
key registry. Instructions are compact JWS tokens (EdDSA) whose ``kid``
header is the signer's account id.
"""

from __future__ import annotations

import base64
import json
import uuid
from typing import TYPE_CHECKING, Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from joserfc import jws
from joserfc.errors import BadSignatureError
from joserfc.jwk import OKPKey

from bounty_board.core.exceptions import InvalidInstructionError

if TYPE_CHECKING:
    from pathlib import Path

_RAW_KEY_SIZE = 32


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def account_id_from_public_key(public_key: Ed25519PublicKey) -> str:
    return _b64url_encode(public_key.public_bytes_raw())


def public_key_from_account_id(account_id: str) -> Ed25519PublicKey:
    """
    Recover the verifying key embedded in an account id.

    Raises:
        ValueError: If the id does not decode to a 32-byte Ed25519 key.
    """
    try:
        raw = _b64url_decode(account_id)
    except (ValueError, TypeError) as exc:
        msg = "Account id is not valid base64url"
        raise ValueError(msg) from exc
    if len(raw) != _RAW_KEY_SIZE:
        msg = f"Account id must encode {_RAW_KEY_SIZE} bytes, got {len(raw)}"
        raise ValueError(msg)
    return Ed25519PublicKey.from_public_bytes(raw)


def generate_keypair(handle: str, keys_dir: Path) -> Ed25519PrivateKey:
    """Generate an Ed25519 key and persist it as {handle}.key (PKCS8 PEM)."""
    keys_dir.mkdir(parents=True, exist_ok=True)
    private_key = Ed25519PrivateKey.generate()
    (keys_dir / f"{handle}.key").write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return private_key


def load_private_key(path: Path) -> Ed25519PrivateKey:
    """
    Load an Ed25519 private key from a PEM file.

    Raises:
        FileNotFoundError: If the key file does not exist.
        ValueError: If the file does not contain an Ed25519 private key.
    """
    private_key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    if not isinstance(private_key, Ed25519PrivateKey):
        msg = f"Expected Ed25519 private key, got {type(private_key).__name__}"
        raise ValueError(msg)
    return private_key


class InstructionSigner:
    """Signs board instructions with one account's Ed25519 key."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        raw_private = private_key.private_bytes_raw()
        raw_public = private_key.public_key().public_bytes_raw()
        self._account_id = _b64url_encode(raw_public)
        self._key = OKPKey.import_key(
            {
                "kty": "OKP",
                "crv": "Ed25519",
                "d": _b64url_encode(raw_private),
                "x": self._account_id,
            }
        )

    @classmethod
    def generate(cls) -> InstructionSigner:
        return cls(Ed25519PrivateKey.generate())

    @property
    def account_id(self) -> str:
        return self._account_id

    def sign(
        self,
        action: str,
        params: dict[str, Any] | None = None,
        nonce: str | None = None,
    ) -> str:
        """
        Compact JWS over ``{"action": action, "nonce": nonce, **params}``.

        A fresh random nonce is used unless one is given.
        """
        payload = {
            "action": action,
            "nonce": nonce if nonce is not None else uuid.uuid4().hex,
            **(params or {}),
        }
        protected = {"alg": "EdDSA", "kid": self._account_id}
        payload_bytes = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
        return jws.serialize_compact(protected, payload_bytes, self._key, algorithms=["EdDSA"])


def verify_instruction(token: str) -> tuple[str, dict[str, Any]]:
    """
    Verify a signed instruction and return (signer account id, payload).

    Raises:
        InvalidInstructionError: INVALID_JWS for malformed tokens,
            INVALID_SIGNATURE when the signature does not match the kid.
    """
    if not isinstance(token, str) or token.count(".") != 2:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction is not a compact JWS", {}
        )

    try:
        header = json.loads(_b64url_decode(token.split(".", 1)[0]))
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction header is not valid base64url JSON", {}
        ) from exc
    if not isinstance(header, dict) or header.get("alg") != "EdDSA":
        raise InvalidInstructionError("INVALID_JWS", "Only EdDSA instructions are accepted", {})

    kid = header.get("kid")
    if not isinstance(kid, str) or not kid:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction header must name the signer in 'kid'", {}
        )
    try:
        public_key = public_key_from_account_id(kid)
    except ValueError as exc:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction 'kid' is not an account id", {"kid": kid}
        ) from exc

    verify_key = OKPKey.import_key(
        {"kty": "OKP", "crv": "Ed25519", "x": account_id_from_public_key(public_key)}
    )
    try:
        obj = jws.deserialize_compact(token, verify_key, algorithms=["EdDSA"])
    except BadSignatureError as exc:
        raise InvalidInstructionError(
            "INVALID_SIGNATURE", "Instruction signature does not verify", {"kid": kid}
        ) from exc
    except Exception as exc:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction verification failed", {"kid": kid}
        ) from exc

    try:
        payload = json.loads(obj.payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction payload is not valid JSON", {}
        ) from exc
    if not isinstance(payload, dict):
        raise InvalidInstructionError(
            "INVALID_JWS", "Instruction payload must be a JSON object", {}
        )
    return kid, payload
