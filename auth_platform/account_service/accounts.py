"""
Account use-cases: login, signup, token refresh, user update and the
password reset flow.

Passwords are hashed here, before they reach the directory.
"""
import logging
from typing import Optional

from .auth import PasswordHasher, TokenService
from .directory import UserDirectory
from .errors import Conflict, InvalidCredentials, InvalidToken, NotFound
from .models import User
from .notifications import PasswordResetNotifier
from .utils.event_logger import log_auth_event

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "USER,DRIVER"
# Largest id the users.id INTEGER column can hold
MAX_USER_ID = 2**63 - 1


class AccountService:
    def __init__(
        self,
        directory: UserDirectory,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: PasswordResetNotifier,
        default_role: str = DEFAULT_ROLE,
    ):
        self.directory = directory
        self.hasher = hasher
        self.tokens = tokens
        self.notifier = notifier
        self.default_role = default_role

    def build_auth_response(self, user: User) -> dict:
        return {"user": user.to_public_dict(), "token": self.tokens.issue_session(user.id)}

    def login(self, email: str, password: str) -> dict:
        user = self.directory.find_by_unique_field("email", email)
        if user is None:
            raise InvalidCredentials()

        if not user.enabled or not self.hasher.verify(password, user.password):
            log_auth_event("login_failure", user.id, user.email, enabled=user.enabled)
            raise InvalidCredentials()

        log_auth_event("login_success", user.id, user.email)
        return self.build_auth_response(user)

    def signup(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str] = None,
        address: Optional[dict] = None,
    ) -> dict:
        if self.directory.find_by_unique_field("email", email) is not None:
            raise Conflict("A user with this email already exists")
        if phone and self.directory.find_by_unique_field("phone", phone) is not None:
            raise Conflict("A user with this phone already exists")

        fields = {
            "email": email,
            "password": self.hasher.hash(password),
            "full_name": full_name,
            "phone": phone,
            "role": self.default_role,
        }
        if address:
            # Staged in the same transaction as the user row
            fields["address_id"] = self.directory.create_address(**address).id

        user = self.directory.create(**fields)
        log_auth_event("signup", user.id, user.email, address=user.address_id is not None)
        return self.build_auth_response(user)

    def refresh(self, user_id: int) -> dict:
        user = self.directory.find_by_id(user_id)
        if user is None:
            raise NotFound()
        return self.build_auth_response(user)

    def change_password(
        self,
        user_id: int,
        new_name: str,
        current_password: Optional[str] = None,
        new_password: Optional[str] = None,
    ) -> User:
        """
        Update the user's name and, when both passwords are given, the password.

        The current password must verify before the new hash is stored; on a
        mismatch nothing is written.
        """
        user = self.directory.find_by_id(user_id)
        if user is None:
            raise NotFound()

        changes = {"full_name": new_name}
        if current_password and new_password:
            if not self.hasher.verify(current_password, user.password):
                log_auth_event("login_failure", user.id, user.email, action="password_change")
                raise InvalidCredentials()
            changes["password"] = self.hasher.hash(new_password)

        user = self.directory.update(user.id, **changes)
        if "password" in changes:
            log_auth_event("password_change", user.id, user.email)
        return user

    def request_password_reset(self, email: str) -> None:
        """
        Send a reset link if the account exists.

        Returns the same way whether or not the email is registered, so the
        caller cannot learn which accounts exist.
        """
        user = self.directory.find_by_unique_field("email", email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        if not user.has_local_password:
            logger.info("Password reset requested for user_id=%s without a local password", user.id)
            return

        token = self.tokens.issue_reset_token(user.id, user.password)
        self.notifier.send_password_reset_email(user.email, user.full_name, token)
        log_auth_event("password_reset_request", user.id, user.email)

    def reset_password(self, token: str, new_password: str) -> None:
        claims = self.tokens.decode_unverified(token)
        if claims is None:
            raise InvalidToken()

        try:
            candidate_id = int(claims.get("sub"))
        except (TypeError, ValueError) as exc:
            raise InvalidToken() from exc
        if not 0 < candidate_id <= MAX_USER_ID:
            raise InvalidToken()

        user = self.directory.find_by_id(candidate_id)
        if user is None:
            raise InvalidToken()

        # Signed with the hash current at issue time; any later change breaks it
        user_id = self.tokens.verify_reset_token(token, user.password)

        self.directory.update(user_id, password=self.hasher.hash(new_password))
        log_auth_event("password_reset", user_id, user.email)
