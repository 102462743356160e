from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.crm.errors import ExpiredToken, InvalidToken


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenPayload:
    sub: str
    email: str
    role: str
    exp: int


class TokenService:
    """
    Issues and verifies signed session tokens (HS256 JWT).

    Payload: ``sub`` (account id), ``email``, ``role``, ``iat`` and an absolute
    ``exp`` in Unix seconds. Expiry is checked against the injected clock, so a
    rotated secret or a past ``exp`` are both rejected deterministically.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _now,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl
        self._clock = clock

    def issue(self, subject_id: str, email: str, role: str) -> str:
        now = self._clock()
        payload: dict[str, Any] = {
            "sub": str(subject_id),
            "email": email,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenPayload:
        if not token:
            raise InvalidToken()
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            raise InvalidToken()

        exp = claims.get("exp")
        sub = claims.get("sub")
        if not isinstance(exp, int) or not sub:
            raise InvalidToken()
        if int(self._clock().timestamp()) > exp:
            raise ExpiredToken()
        return TokenPayload(
            sub=str(sub),
            email=str(claims.get("email") or ""),
            role=str(claims.get("role") or ""),
            exp=exp,
        )


def token_service_from_config(config: dict) -> TokenService:
    return TokenService(
        config["JWT_SECRET"],
        algorithm=config.get("JWT_ALGORITHM") or "HS256",
        ttl=timedelta(hours=int(config.get("TOKEN_TTL_HOURS") or 24)),
    )
