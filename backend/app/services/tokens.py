"""Session tokens: signing, verification and revocation of bearer JWTs"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional

from jose import JWTError, jwt

from app.services.blacklist import TokenBlacklist
from app.services.errors import TokenBlacklisted, TokenExpired, TokenInvalid
from app.utils.auth import fingerprint
from app.utils.logger import logger


class Identity(NamedTuple):
    """Verified caller, attached to the request by the auth dependency."""
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime
    token: str


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class SessionTokenService:
    """Issues and verifies signed, self-contained bearer tokens.

    Claims: ``sub`` (user id), ``email``, ``iat``, ``exp``, ``iss``, ``aud`` and
    a random ``jti`` so two tokens minted in the same second still differ.

    ``verify`` checks, in this order:

    1. signature, structure, issuer and audience (no store access, so forged
       or malformed tokens are rejected before touching the database)
    2. the blacklist, by SHA-256 fingerprint of the raw token
    3. expiry

    A blacklist entry stops matching once the token's own expiry passes, so an
    expired token reports TokenExpired whether or not it was revoked.
    """

    def __init__(
        self,
        blacklist: TokenBlacklist,
        secret: str,
        ttl: timedelta = timedelta(hours=2),
        issuer: str = "movie-platform-app",
        audience: str = "movie-platform-users",
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utc_clock,
    ):
        self.blacklist = blacklist
        self.secret = secret
        self.ttl = ttl
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.clock = clock

    @property
    def expires_in(self) -> int:
        return int(self.ttl.total_seconds())

    def issue(self, user_id: str, email: str) -> str:
        """Sign and return a bearer token for the given identity"""
        now = int(self.clock().timestamp())
        payload: Dict[str, Any] = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + self.expires_in,
            "iss": self.issuer,
            "aud": self.audience,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def _decode(self, token: str) -> Dict[str, Any]:
        """Signature/structure check only; expiry is judged by the caller"""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug(f"JWT decode failed: {exc}")
            raise TokenInvalid() from exc

        if not isinstance(payload.get("sub"), str) or not isinstance(payload.get("email"), str):
            raise TokenInvalid()
        if not isinstance(payload.get("exp"), int) or not isinstance(payload.get("iat"), int):
            raise TokenInvalid()
        return payload

    def verify(self, token: str) -> Identity:
        """Return the embedded identity or raise TokenInvalid / TokenBlacklisted / TokenExpired"""
        payload = self._decode(token)
        now = self.clock()

        if self.blacklist.contains(fingerprint(token), now=now.astimezone(timezone.utc).replace(tzinfo=None)):
            raise TokenBlacklisted()

        if payload["exp"] <= int(now.timestamp()):
            raise TokenExpired()

        return Identity(
            user_id=payload["sub"],
            email=payload["email"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token=token,
        )

    def revoke(self, token: str, user_id: str, reason: str = "logout") -> Optional[datetime]:
        """Blacklist ``token`` until its own expiry.

        Returns the expiry the entry was stored with, or None when the token
        has already expired and needs no entry.
        """
        payload = self._decode(token)
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        if expires_at <= self.clock():
            return None

        self.blacklist.add(
            token_hash=fingerprint(token),
            user_id=user_id,
            reason=reason,
            expires_at=expires_at.replace(tzinfo=None),
        )
        return expires_at
