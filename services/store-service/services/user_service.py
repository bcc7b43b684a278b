"""User account service."""
import logging
import secrets
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from errors import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    SocialAccountLinkedError,
    SocialAuthError,
)
from models import User, UserRole
from monitoring import auth_attempts_counter, auth_failures_counter
from schemas import RegisterRequest
from services.social_auth_service import SocialIdentity

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Registration, login and account lookup."""

    def get_user(self, db: Session, user_id: int) -> Optional[User]:
        return db.get(User, user_id)

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def register(self, db: Session, data: RegisterRequest, role: UserRole = UserRole.CUSTOMER) -> User:
        """
        Create a customer account.

        Raises:
            EmailAlreadyRegisteredError: If the email already has an account
        """
        email = normalize_email(data.email)
        if self.get_by_email(db, email) is not None:
            raise EmailAlreadyRegisteredError(email)

        user = User(
            full_name=data.full_name,
            email=email,
            phone=data.phone,
            password_hash=hash_password(data.password),
            role=role
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise EmailAlreadyRegisteredError(email)
        db.refresh(user)

        logger.info("User registered", extra={"user_id": user.id, "role": user.role.value})
        return user

    def authenticate(self, db: Session, email: str, password: str) -> User:
        """
        Check credentials and record the login.

        Raises:
            InvalidCredentialsError: On unknown email, wrong password or a
                deactivated account
        """
        auth_attempts_counter.add(1, {"type": "login"})

        user = self.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed: Invalid credentials")
            raise InvalidCredentialsError()

        if not user.is_active:
            auth_failures_counter.add(1, {"reason": "deactivated"})
            logger.warning("Login failed: Deactivated account", extra={"user_id": user.id})
            raise InvalidCredentialsError("User account is deactivated")

        user.last_login = datetime.utcnow()
        db.commit()
        db.refresh(user)

        logger.info("User logged in successfully", extra={"user_id": user.id})
        return user

    def get_by_provider_id(self, db: Session, provider: str, subject: str) -> Optional[User]:
        return db.query(User).filter(getattr(User, f"{provider}_id") == subject).first()

    def social_login(self, db: Session, identity: SocialIdentity) -> User:
        """
        Sign in with a verified Google or Facebook identity.

        The account is looked up by provider ID, then by email. An account
        found by email gets the provider ID attached if it has none yet.
        Otherwise a new verified customer account is created with a random
        password, so it can only be reached through the provider until the
        password is reset.

        Raises:
            SocialAuthError: If the provider did not share an email address
            InvalidCredentialsError: If the account is deactivated
        """
        auth_attempts_counter.add(1, {"type": identity.provider})
        id_field = f"{identity.provider}_id"

        user = self.get_by_provider_id(db, identity.provider, identity.subject)
        if user is None:
            if not identity.email:
                auth_failures_counter.add(1, {"reason": "social_no_email"})
                raise SocialAuthError(
                    identity.provider,
                    f"{identity.provider.title()} account has no verified email address"
                )
            user = self.get_by_email(db, identity.email)

        if user is None:
            email = normalize_email(identity.email)
            user = User(
                full_name=(identity.name or email.split("@")[0])[:100],
                email=email,
                password_hash=hash_password(secrets.token_urlsafe(32)),
                role=UserRole.CUSTOMER,
                email_verified=True,
                avatar=identity.picture
            )
            setattr(user, id_field, identity.subject)
            db.add(user)
            logger.info("Creating account from social login", extra={"provider": identity.provider})
        elif getattr(user, id_field) is None:
            setattr(user, id_field, identity.subject)
            user.avatar = user.avatar or identity.picture
            logger.info("Social account linked on login", extra={
                "user_id": user.id,
                "provider": identity.provider
            })

        if user.is_active is False:
            auth_failures_counter.add(1, {"reason": "deactivated"})
            db.rollback()
            raise InvalidCredentialsError("User account is deactivated")

        user.last_login = datetime.utcnow()
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise EmailAlreadyRegisteredError(identity.email or "")
        db.refresh(user)

        logger.info("User logged in successfully", extra={
            "user_id": user.id,
            "provider": identity.provider
        })
        return user

    def link_social_account(self, db: Session, user: User, identity: SocialIdentity) -> User:
        """
        Attach a provider account to a signed-in user.

        Raises:
            SocialAccountLinkedError: If another user already owns the
                provider account
        """
        owner = self.get_by_provider_id(db, identity.provider, identity.subject)
        if owner is not None and owner.id != user.id:
            logger.warning("Social account already linked elsewhere", extra={
                "user_id": user.id,
                "provider": identity.provider
            })
            raise SocialAccountLinkedError(identity.provider)

        setattr(user, f"{identity.provider}_id", identity.subject)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise SocialAccountLinkedError(identity.provider)
        db.refresh(user)

        logger.info("Social account linked", extra={"user_id": user.id, "provider": identity.provider})
        return user

    def find_or_create_for_guest(
        self,
        db: Session,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str]
    ) -> User:
        """
        Resolve the account a guest order is being attached to.

        An existing account must be proven with its password; otherwise a new
        customer account is created (not committed, the caller owns the
        transaction).

        Raises:
            InvalidCredentialsError: If the email belongs to an account and the
                password does not match
        """
        user = self.get_by_email(db, email)
        if user is not None:
            if not user.is_active or not verify_password(password, user.password_hash):
                auth_failures_counter.add(1, {"reason": "guest_conversion"})
                raise InvalidCredentialsError()
            return user

        user = User(
            full_name=full_name,
            email=normalize_email(email),
            phone=phone or "",
            password_hash=hash_password(password),
            role=UserRole.CUSTOMER
        )
        db.add(user)
        db.flush()
        logger.info("User created from guest order", extra={"user_id": user.id})
        return user
