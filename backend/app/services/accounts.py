"""Account flows: registration, login/logout, profile, password change and reset"""
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.middleware.monitoring import record_login, record_password_reset
from app.models.user import User
from app.services.authenticator import Authenticator, LocalAuthenticator
from app.services.errors import (
    AccountLocked,
    AccountNotFound,
    ConfirmationRequired,
    DuplicateAccount,
    EmailDeliveryFailed,
    InvalidCredentials,
    TokenResetInvalidOrExpired,
)
from app.services.login_attempts import LoginAttemptTracker
from app.services.mailer import EmailSender
from app.services.password_reset import PasswordResetStore
from app.services.passwords import PasswordHasher, check_password_policy
from app.services.tokens import Identity, SessionTokenService
from app.utils.auth import normalize_email
from app.utils.logger import logger, redact_email

DELETE_CONFIRMATION = "DELETE"


class AccountService:
    """Business flows over the credential store and the auth components.

    Each public method is one request's worth of work; nothing is kept
    between calls besides the injected collaborators.
    """

    def __init__(
        self,
        db: Session,
        hasher: PasswordHasher,
        tokens: SessionTokenService,
        attempts: LoginAttemptTracker,
        resets: PasswordResetStore,
        mailer: EmailSender,
        authenticator: Optional[Authenticator] = None,
    ):
        self.db = db
        self.hasher = hasher
        self.tokens = tokens
        self.attempts = attempts
        self.resets = resets
        self.mailer = mailer
        self.authenticator = authenticator or LocalAuthenticator(db, hasher)

    # ------------------------------------------------------------------
    # Registration and sessions
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, first_name: str, last_name: str, age: int) -> Tuple[User, str]:
        check_password_policy(password)
        email = normalize_email(email)

        if self.db.query(User.id).filter(User.email == email).first():
            raise DuplicateAccount()

        user = User(
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            age=age,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateAccount()
        self.db.refresh(user)

        logger.info("User registered", extra={"user_id": user.id, "action": "register"})
        return user, self.tokens.issue(user.id, user.email)

    def login(self, email: str, password: str, ip: str) -> Tuple[User, str]:
        """Authenticate from ``ip``.

        A locked IP is refused before the credential store is consulted.
        Unknown email and wrong password raise the same InvalidCredentials.
        """
        try:
            self.attempts.check(ip)
        except AccountLocked:
            record_login("locked")
            logger.warning("Login refused, IP locked out", extra={"ip": ip, "action": "login"})
            raise

        user = self.authenticator.authenticate(email, password)
        if user is None:
            self.attempts.record_failure(ip)
            record_login("invalid_credentials")
            logger.info("Login failed", extra={"ip": ip, "action": "login"})
            raise InvalidCredentials()

        self.attempts.record_success(ip)
        record_login("success")
        logger.info("User logged in", extra={"user_id": user.id, "ip": ip, "action": "login"})
        return user, self.tokens.issue(user.id, user.email)

    def logout(self, identity: Identity) -> None:
        self.tokens.revoke(identity.token, identity.user_id, reason="logout")
        logger.info("User logged out", extra={"user_id": identity.user_id, "action": "logout"})

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise AccountNotFound()
        return user

    def update_profile(self, identity: Identity, first_name: str, last_name: str, age: int, email: str) -> User:
        user = self.get_user(identity.user_id)
        email = normalize_email(email)

        if email != user.email:
            taken = self.db.query(User.id).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise DuplicateAccount("Email is already registered by another user")

        user.first_name = first_name
        user.last_name = last_name
        user.age = age
        user.email = email
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateAccount("Email is already registered by another user")
        self.db.refresh(user)

        logger.info("Profile updated", extra={"user_id": user.id, "action": "update_profile"})
        return user

    def change_password(self, identity: Identity, current_password: str, new_password: str) -> str:
        """Re-hash the password, revoke the presenting token and return a fresh one"""
        user = self.get_user(identity.user_id)
        if not self.hasher.verify(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        check_password_policy(new_password)

        user.password_hash = self.hasher.hash(new_password)
        self.db.commit()

        self.resets.invalidate_for_user(user.id)
        self.tokens.revoke(identity.token, user.id, reason="password_changed")

        logger.info("Password changed", extra={"user_id": user.id, "action": "change_password"})
        return self.tokens.issue(user.id, user.email)

    def delete_account(self, identity: Identity, password: str, confirm_text: str) -> None:
        if confirm_text != DELETE_CONFIRMATION:
            raise ConfirmationRequired(f"Type '{DELETE_CONFIRMATION}' to confirm")

        user = self.get_user(identity.user_id)
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentials("Password is incorrect")

        self.db.delete(user)
        self.db.commit()
        self.tokens.revoke(identity.token, identity.user_id, reason="security_revocation")

        logger.info("Account deleted", extra={"user_id": identity.user_id, "action": "delete_account"})

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> None:
        """Create and email a reset token if the account exists.

        Returns normally in both cases so the caller can answer identically.
        If the email cannot be sent the unsent token is deleted and
        EmailDeliveryFailed propagates.

        Status and body are identical, response time is not: a known address
        pays for the insert and the SMTP round trip. The send stays inline
        because a failed delivery has to reach the caller; the per-IP
        ``forgot_password`` rate limit bounds how fast addresses can be tested.
        """
        user = self.db.query(User).filter(User.email == normalize_email(email)).first()
        if user is None:
            record_password_reset("unknown_email")
            logger.info(
                "Password reset requested for unknown email",
                extra={"recipient": redact_email(email), "action": "forgot_password"},
            )
            return

        raw = self.resets.create(user.id)
        try:
            self.mailer.send_password_reset(user.email, raw, user.first_name)
        except EmailDeliveryFailed:
            self.resets.invalidate_for_user(user.id)
            record_password_reset("email_failed")
            raise

        record_password_reset("requested")
        logger.info("Password reset email sent", extra={"user_id": user.id, "action": "forgot_password"})

    def check_reset_token(self, raw: str) -> None:
        if self.resets.validate(raw) is None:
            raise TokenResetInvalidOrExpired()

    def reset_password(self, raw: str, new_password: str) -> None:
        # policy first so a weak password does not burn the token
        check_password_policy(new_password)

        try:
            record = self.resets.consume(raw)
        except TokenResetInvalidOrExpired:
            record_password_reset("rejected")
            raise

        user = self.db.query(User).filter(User.id == record.user_id).first()
        if user is None:
            record_password_reset("rejected")
            raise TokenResetInvalidOrExpired()

        user.password_hash = self.hasher.hash(new_password)
        self.db.commit()
        self.resets.invalidate_for_user(user.id)

        record_password_reset("completed")
        logger.info("Password reset completed", extra={"user_id": user.id, "action": "reset_password"})
