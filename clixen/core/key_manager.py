from __future__ import annotations

import base64

import keyring
from keyring.errors import KeyringError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

_PRIVATE_KEY_LABEL = "ed25519:private"
_PUBLIC_KEY_LABEL = "ed25519:public"


class DispatchKeyManager:
    """Keeps the Ed25519 dispatch signing key in the OS keyring.

    The automation backend only ever receives the public half (PEM), which it
    uses to verify bearer tokens minted by ``DispatchTokenSigner``.
    """

    def __init__(self, service_name: str = "clixen") -> None:
        self._service_name = service_name

    def generate_keypair(self, owner_id: str) -> str:
        private_key = Ed25519PrivateKey.generate()
        private_key_raw = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_key_raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        public_key_hex = public_key_raw.hex()

        self._set_secret(owner_id, _PRIVATE_KEY_LABEL, base64.b64encode(private_key_raw).decode("utf-8"))
        self._set_secret(owner_id, _PUBLIC_KEY_LABEL, public_key_hex)
        return public_key_hex

    def has_keypair(self, owner_id: str) -> bool:
        return self._get_secret(owner_id, _PRIVATE_KEY_LABEL) is not None

    def load_private_key(self, owner_id: str) -> Ed25519PrivateKey:
        try:
            encoded_private_key = self._get_secret(owner_id, _PRIVATE_KEY_LABEL)
        except KeyringError as exc:
            raise KeyError(f"keyring unavailable for owner '{owner_id}': {exc}") from exc
        if encoded_private_key is None:
            raise KeyError(f"no private key found for owner '{owner_id}'")

        try:
            private_key_raw = base64.b64decode(encoded_private_key.encode("utf-8"), validate=True)
        except ValueError as exc:
            raise ValueError("stored private key is not valid base64") from exc

        try:
            return Ed25519PrivateKey.from_private_bytes(private_key_raw)
        except ValueError as exc:
            raise ValueError("stored private key has invalid format") from exc

    def public_key_pem(self, owner_id: str) -> str:
        public_key_hex = self._get_secret(owner_id, _PUBLIC_KEY_LABEL)
        if public_key_hex is not None:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        else:
            public_key = self.load_private_key(owner_id).public_key()
        return public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def _credential_name(self, owner_id: str, label: str) -> str:
        return f"{owner_id}:{label}"

    def _set_secret(self, owner_id: str, label: str, value: str) -> None:
        keyring.set_password(
            self._service_name,
            self._credential_name(owner_id, label),
            value,
        )

    def _get_secret(self, owner_id: str, label: str) -> str | None:
        return keyring.get_password(
            self._service_name,
            self._credential_name(owner_id, label),
        )


__all__ = ["DispatchKeyManager"]
