from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from config import Settings, get_settings
from mailer import Mailer
from models import AuthProvider, EmailVerificationToken, PasswordResetToken, User
from schemas import (
    ChangePasswordIn,
    LoginIn,
    ResetCodeIn,
    ResetPasswordIn,
    SignupIn,
)
from tokens import (
    generate_reset_code,
    generate_reset_token,
    generate_session_token,
    generate_verification_token,
)


logger = logging.getLogger(__name__)

VERIFICATION_TTL = timedelta(hours=24)
RESET_CODE_TTL = timedelta(minutes=15)
RESET_REQUESTED_MESSAGE = "If an account exists, a reset code has been sent."


class AuthError(ValueError):
    def __init__(
        self, message: str, status_code: int = 400, extra: Optional[dict] = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.extra = extra or {}


@dataclass
class AuthResult:
    user: User
    token: str


@dataclass
class ResetRequest:
    token: str
    message: str = field(default=RESET_REQUESTED_MESSAGE)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def fetch_google_profile(access_token: str, *, url: str, timeout: float) -> dict:
    req = Request(
        url,
        headers={
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        },
    )
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning(f"google_profile_failed: error={exc}")
        raise AuthError("Invalid Google token", status_code=401) from exc
    if not isinstance(payload, dict):
        raise AuthError("Invalid Google token", status_code=401)
    return payload


class AuthService:
    def __init__(
        self,
        session: Session,
        mailer: Optional[Mailer] = None,
        settings: Optional[Settings] = None,
        profile_fetcher: Optional[Callable[[str], dict]] = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.mailer = mailer or Mailer(self.settings)
        self.profile_fetcher = profile_fetcher or self._fetch_profile

    def _fetch_profile(self, credential: str) -> dict:
        return fetch_google_profile(
            credential,
            url=self.settings.google_userinfo_url,
            timeout=self.settings.google_timeout_secs,
        )

    def _user_by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.email == email))

    def _session_token(self, user: User) -> str:
        return generate_session_token(user.id, user.email)

    def _issue_verification(self, user: User) -> None:
        self.session.execute(
            delete(EmailVerificationToken).where(
                EmailVerificationToken.email == user.email
            )
        )
        token = generate_verification_token()
        self.session.add(
            EmailVerificationToken(
                email=user.email,
                token=token,
                expires_at=datetime.utcnow() + VERIFICATION_TTL,
            )
        )
        self.session.commit()
        url = f"{self.settings.frontend_url}/verify-email?token={token}"
        result = self.mailer.send_verification(user.email, url, user.name)
        if not result.success:
            logger.warning(
                f"verification_email_failed: email={user.email} error={result.error}"
            )

    def signup(self, data: SignupIn) -> User:
        email = str(data.email)
        if self._user_by_email(email):
            raise AuthError("User already exists")

        user = User(
            email=email,
            name=data.name,
            password_hash=hash_password(data.password),
            provider=AuthProvider.credentials,
            email_verified=False,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            # lost a race with a concurrent signup for the same email
            self.session.rollback()
            raise AuthError("User already exists") from exc
        self.session.refresh(user)
        logger.info(f"signup: user_id={user.id}")
        self._issue_verification(user)
        return user

    def login(self, data: LoginIn) -> AuthResult:
        user = self._user_by_email(str(data.email))
        if not user or not user.password_hash:
            raise AuthError("Invalid credentials", status_code=401)
        # password first, so a wrong guess never learns the verification state
        if not verify_password(data.password, user.password_hash):
            raise AuthError("Invalid credentials", status_code=401)
        if not user.email_verified:
            raise AuthError(
                "Email not verified",
                status_code=403,
                extra={"requiresVerification": True, "email": user.email},
            )
        return AuthResult(user=user, token=self._session_token(user))

    def google(self, credential: str) -> AuthResult:
        profile = self.profile_fetcher(credential)
        email = profile.get("email")
        if not email:
            raise AuthError("No email from Google", status_code=401)

        user = self._user_by_email(email)
        if not user:
            user = User(
                email=email,
                name=profile.get("name"),
                image=profile.get("picture"),
                provider=AuthProvider.google,
                provider_account_id=profile.get("sub"),
                email_verified=True,
            )
            self.session.add(user)
            logger.info("google_signup: new account")
        else:
            user.image = user.image or profile.get("picture")
            user.provider = user.provider or AuthProvider.google
            user.provider_account_id = user.provider_account_id or profile.get("sub")
            user.name = user.name or profile.get("name")
        self.session.commit()
        self.session.refresh(user)
        return AuthResult(user=user, token=self._session_token(user))

    def verify_email(self, token: str) -> User:
        if not token:
            raise AuthError("Token is required")
        record = self.session.scalar(
            select(EmailVerificationToken).where(EmailVerificationToken.token == token)
        )
        if not record:
            raise AuthError("Invalid verification link")
        if record.used:
            raise AuthError("This link has already been used")
        if record.expires_at < datetime.utcnow():
            raise AuthError("Verification link has expired")

        user = self._user_by_email(record.email)
        if not user:
            raise AuthError("Invalid verification link")
        user.email_verified = True
        record.used = True
        self.session.commit()
        logger.info(f"email_verified: user_id={user.id}")
        return user

    def resend_verification(self, email: str) -> None:
        user = self._user_by_email(email)
        if not user:
            return
        if user.email_verified:
            raise AuthError("Email is already verified")
        self._issue_verification(user)

    def me(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise AuthError("User not found", status_code=404)
        return user

    def forgot_password(self, email: str) -> ResetRequest:
        user = self._user_by_email(email)
        # unknown and password-less accounts get a decoy token
        if not user or not user.password_hash:
            return ResetRequest(token=generate_reset_token())

        self.session.execute(
            delete(PasswordResetToken).where(PasswordResetToken.email == email)
        )
        code = generate_reset_code()
        token = generate_reset_token()
        self.session.add(
            PasswordResetToken(
                email=email,
                token=token,
                code=code,
                expires_at=datetime.utcnow() + RESET_CODE_TTL,
            )
        )
        self.session.commit()

        result = self.mailer.send_password_reset(email, code, user.name)
        if not result.success:
            logger.error(f"reset_email_failed: user_id={user.id} error={result.error}")
            raise AuthError("Failed to send reset email", status_code=500)
        logger.info(f"reset_requested: user_id={user.id}")
        return ResetRequest(token=token)

    def resend_reset_code(self, token: str) -> None:
        record = self.session.scalar(
            select(PasswordResetToken).where(
                PasswordResetToken.token == token,
                PasswordResetToken.used.is_(False),
            )
        )
        if not record:
            raise AuthError("Invalid or expired reset link")
        user = self._user_by_email(record.email)
        if not user:
            raise AuthError("Invalid reset link")

        record.code = generate_reset_code()
        record.expires_at = datetime.utcnow() + RESET_CODE_TTL
        self.session.commit()

        result = self.mailer.send_password_reset(record.email, record.code, user.name)
        if not result.success:
            logger.error(f"reset_email_failed: user_id={user.id} error={result.error}")
            raise AuthError("Failed to send reset email", status_code=500)

    def _valid_reset_token(self, token: str, code: str) -> PasswordResetToken:
        record = self.session.scalar(
            select(PasswordResetToken).where(
                PasswordResetToken.token == token,
                PasswordResetToken.code == code,
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > datetime.utcnow(),
            )
        )
        if not record:
            raise AuthError("Invalid or expired code")
        return record

    def verify_reset_code(self, data: ResetCodeIn) -> None:
        self._valid_reset_token(data.token, data.code)

    def reset_password(self, data: ResetPasswordIn) -> None:
        record = self._valid_reset_token(data.token, data.code)
        user = self._user_by_email(record.email)
        if not user:
            raise AuthError("User not found", status_code=404)

        user.password_hash = hash_password(data.new_password)
        record.used = True
        self.session.flush()
        self.session.execute(
            delete(PasswordResetToken).where(PasswordResetToken.email == record.email)
        )
        self.session.commit()
        logger.info(f"password_reset: user_id={user.id}")

    def change_password(self, user_id: int, data: ChangePasswordIn) -> None:
        user = self.me(user_id)
        if not user.password_hash:
            raise AuthError("Cannot change password for accounts without a password")
        if not verify_password(data.current_password, user.password_hash):
            raise AuthError("Current password is incorrect")
        user.password_hash = hash_password(data.new_password)
        self.session.commit()
        logger.info(f"password_changed: user_id={user.id}")
