"""
catequesis_api.auth.jwt

JWT issuing and validation helpers.

Responsibilities:
- Issue access tokens at login/refresh (and dev convenience).
- Decode and validate JWTs with strict claim requirements (iss/aud/exp/iat/sub).
- Distinguish expired tokens from otherwise invalid ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from catequesis_api.settings import Settings


@dataclass(frozen=True, slots=True)
class JwtConfig:
    # Algorithm/issuer/audience are enforced during decoding.
    alg: str
    issuer: str
    audience: str
    secret: str
    ttl: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
            ttl=timedelta(minutes=settings.jwt_ttl_minutes),
        )


class JwtValidationError(Exception):
    pass


class JwtExpiredError(JwtValidationError):
    pass


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    claims: dict[str, Any] | None = None,
    ttl: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    issued_at = now or datetime.now(tz=UTC)
    # Only `sub` is trusted on the way back in; role/parish are re-read from the directory.
    payload: dict[str, Any] = dict(claims or {})
    payload.update(
        {
            "iss": cfg.issuer,
            "aud": cfg.audience,
            "sub": subject,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + (ttl or cfg.ttl)).timestamp()),
        }
    )
    return jwt.encode(payload, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(*, cfg: JwtConfig, token: str) -> dict[str, Any]:
    try:
        # Signature is checked before registered claims, so a forged expired token is "invalid".
        return jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={
                "require": ["exp", "iat", "iss", "aud", "sub"],
            },
        )
    except ExpiredSignatureError as e:
        raise JwtExpiredError(str(e)) from e
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e


# --- Module Notes -----------------------------------------------------------
# Token issuing is used by:
# - `api/routers/auth.py` (login / refresh)
# - `api/routers/dev_auth.py` (dev convenience)
