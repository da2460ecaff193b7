from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from clixen.errors import SigningError
from clixen.models.account import UserContext
from clixen.models.messages import utc_now

DEFAULT_ISSUER = "clixen-ai"
DEFAULT_AUDIENCE = "n8n-workflows"
_ALGORITHM = "EdDSA"


class DispatchTokenSigner:
    """Mints short-lived EdDSA bearer tokens scoped to one user context.

    The private key is fetched through ``private_key_loader`` on every call so
    a rotated keyring entry takes effect without a restart.
    """

    def __init__(
        self,
        private_key_loader: Callable[[], Ed25519PrivateKey],
        *,
        issuer: str = DEFAULT_ISSUER,
        audience: str = DEFAULT_AUDIENCE,
        ttl: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._load_private_key = private_key_loader
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl
        self._clock = clock

    def sign(self, context: UserContext) -> str:
        claims = context.token_claims()
        issued_at = self._clock()
        payload: dict[str, object] = {
            "sub": claims["account_id"],
            "profile_id": claims["profile_id"],
            "tier": claims["tier"],
            "permissions": claims["permissions"],
            "iss": self._issuer,
            "aud": self._audience,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        try:
            private_key = self._load_private_key()
        except Exception as exc:  # noqa: BLE001
            raise SigningError(f"could not load dispatch key: {exc}") from exc
        try:
            return jwt.encode(payload, private_key, algorithm=_ALGORITHM)
        except (KeyError, ValueError, TypeError, jwt.PyJWTError) as exc:
            raise SigningError(f"could not sign dispatch token: {exc}") from exc


def verify_dispatch_token(
    token: str,
    public_key: Ed25519PublicKey,
    *,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
) -> dict[str, object]:
    """Decode and validate a dispatch token the way the automation backend does.

    Raises ``jwt.PyJWTError`` on bad signature, expiry, or issuer/audience mismatch.
    """
    return jwt.decode(
        token,
        public_key,
        algorithms=[_ALGORITHM],
        audience=audience,
        issuer=issuer,
        options={"require": ["exp", "iat", "sub", "jti"]},
    )


__all__ = ["DEFAULT_AUDIENCE", "DEFAULT_ISSUER", "DispatchTokenSigner", "verify_dispatch_token"]
