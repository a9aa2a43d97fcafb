from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from passlib.context import CryptContext

from .errors import InvalidToken

ALGORITHM = "HS256"
BCRYPT_ROUNDS = 8
RESET_TOKEN_TTL = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """Salted bcrypt hashing with a fixed cost factor."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        # bcrypt also verifies the $2a$ hashes stored by older clients
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, stored_hash: Optional[str]) -> bool:
        """
        Check a plaintext password against a stored hash.

        A missing hash belongs to an account without a local password and
        never verifies. Malformed hashes and non-string input return False
        instead of raising.
        """
        if not stored_hash:
            return False
        try:
            return self._context.verify(password, stored_hash)
        except (ValueError, TypeError):
            return False


class TokenService:
    """
    Issues and verifies the two JWT kinds used by the service.

    Session tokens are signed with the process secret. Reset tokens are signed
    with the user's current password hash, so replacing the hash invalidates
    every reset token issued before it.
    """

    def __init__(
        self,
        secret_key: str,
        session_ttl: timedelta,
        reset_ttl: timedelta = RESET_TOKEN_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self._session_ttl = session_ttl
        self._reset_ttl = reset_ttl
        self._clock = clock

    def _encode(self, user_id: int, key: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {"sub": str(user_id), "iat": now, "exp": now + ttl}
        return jwt.encode(payload, key, algorithm=ALGORITHM)

    def _decode(self, token: str, key: str) -> int:
        try:
            claims = jwt.decode(token, key, algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
        except jwt.InvalidTokenError as exc:
            raise InvalidToken() from exc
        return _subject(claims)

    def issue_session(self, user_id: int) -> str:
        return self._encode(user_id, self._secret_key, self._session_ttl)

    def verify_session(self, token: str) -> int:
        return self._decode(token, self._secret_key)

    def issue_reset_token(self, user_id: int, password_hash: str) -> str:
        if not password_hash:
            raise ValueError("a reset token needs the user's current password hash")
        return self._encode(user_id, password_hash, self._reset_ttl)

    def verify_reset_token(self, token: str, password_hash: Optional[str]) -> int:
        if not password_hash:
            raise InvalidToken()
        return self._decode(token, password_hash)

    @staticmethod
    def decode_unverified(token: str) -> Optional[dict]:
        """Read the claims without checking signature or expiry. None if not a JWT."""
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None


def _subject(claims: dict) -> int:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken() from exc
