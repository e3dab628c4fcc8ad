from dataclasses import dataclass
from typing import Optional, List, Dict, Any
from uuid import UUID

import requests
from sqlalchemy.orm import Session
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.models import User, UserSession, AuthMethod
from app.schemas.auth import GoogleProfile, Identity, SendOtpRequest, SendOtpResponse, VerifyOtpRequest
from app.services.email_service import EmailService
from app.services.otp_service import OtpOutcome, OtpService
from app.services.user_service import UserService
from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    RequestValidationFailed,
    UpstreamError,
)
from app.core.logging import logger
from app.core.security import create_access_token, create_oauth_state, decode_access_token, verify_oauth_state
from app.utils.helpers import mask_email, normalize_phone_number, sanitize_input, validate_email


GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

GOOGLE_LOGIN_SCOPES: List[str] = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


@dataclass
class LoginResult:
    user: User
    token: str
    session: UserSession


@dataclass
class RequestContext:
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class AuthService:
    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.users = UserService(db)
        self.otps = OtpService(db)
        self.email_service = email_service or EmailService()
        self.settings = settings

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def complete_login(self, user: User, context: RequestContext) -> LoginResult:
        """Prune stale sessions, append a fresh one and sign a bearer token."""
        self.users.prune_expired_sessions(user)
        session = self.users.append_session(user)
        self.users.record_login(user, context.ip, context.user_agent)
        token = create_access_token(user)
        logger.info("User authenticated", user_id=str(user.id), auth_method=user.auth_method)
        return LoginResult(user=user, token=token, session=session)

    def refresh(self, user: User) -> LoginResult:
        self.users.prune_expired_sessions(user)
        session = self.users.append_session(user)
        token = create_access_token(user)
        logger.info("Bearer token refreshed", user_id=str(user.id))
        return LoginResult(user=user, token=token, session=session)

    def logout(self, user: User) -> None:
        # Only sessions already past expiry are dropped; the caller's own
        # session token stays valid until it expires.
        self.users.prune_expired_sessions(user)
        logger.info("User logged out", user_id=str(user.id), email=mask_email(user.email))

    def delete_account(self, user: User) -> None:
        # Threads and uploads keyed by this id are left in place.
        email = user.email
        self.users.delete_user(user)
        logger.info("User account deleted", email=mask_email(email))

    def get_current_user(self, token: str) -> User:
        payload = decode_access_token(token)
        try:
            user_id = UUID(str(payload.get("id") or payload.get("sub")))
        except ValueError:
            raise InvalidTokenError() from None

        user = self.users.get_by_id(user_id)
        if user is None:
            raise AuthenticationError(
                "The user associated with this token no longer exists",
                error="User not found",
                code="USER_NOT_FOUND",
            )
        return user

    @staticmethod
    def to_identity(user: User) -> Identity:
        return Identity(id=user.id, email=user.email, name=user.name, image=user.image)

    # ------------------------------------------------------------------
    # Google OAuth
    # ------------------------------------------------------------------

    def _build_flow(self) -> Flow:
        flow = Flow.from_client_config(
            {
                "web": {
                    "client_id": settings.GOOGLE_CLIENT_ID,
                    "client_secret": settings.GOOGLE_CLIENT_SECRET,
                    "auth_uri": GOOGLE_AUTH_URI,
                    "token_uri": GOOGLE_TOKEN_URI,
                    "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
                }
            },
            scopes=GOOGLE_LOGIN_SCOPES,
            autogenerate_code_verifier=False,
        )
        flow.redirect_uri = settings.GOOGLE_REDIRECT_URI
        return flow

    def create_google_auth_url(self) -> str:
        auth_url, _ = self._build_flow().authorization_url(
            access_type="online",
            prompt="select_account",
            state=create_oauth_state(),
        )
        return auth_url

    def exchange_google_code(self, code: str, state: str) -> GoogleProfile:
        if not verify_oauth_state(state):
            raise AuthenticationError(
                "OAuth state is invalid or expired",
                error="Authentication failed",
                code="INVALID_STATE",
            )

        try:
            token_data = self._manual_google_token_exchange(code)
            credentials = Credentials(
                token=token_data["access_token"],
                token_uri=GOOGLE_TOKEN_URI,
                client_id=settings.GOOGLE_CLIENT_ID,
                client_secret=settings.GOOGLE_CLIENT_SECRET,
                scopes=GOOGLE_LOGIN_SCOPES,
            )
            userinfo_service = build("oauth2", "v2", credentials=credentials, cache_discovery=False)
            user_info = userinfo_service.userinfo().get().execute()
        except (requests.RequestException, HttpError, KeyError, ValueError) as exc:
            logger.error("Google code exchange failed", error=str(exc))
            raise UpstreamError("Google authentication failed", code="OAUTH_EXCHANGE_FAILED") from exc

        email = user_info.get("email")
        return GoogleProfile(
            id=user_info.get("id"),
            emails=[email] if email else [],
            name=user_info.get("name"),
            picture=user_info.get("picture"),
        )

    def _manual_google_token_exchange(self, code: str) -> Dict[str, Any]:
        data = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        }

        response = requests.post(GOOGLE_TOKEN_URI, data=data)
        response.raise_for_status()
        return response.json()

    def login_with_google(self, profile: GoogleProfile, context: RequestContext) -> LoginResult:
        if not profile.id or not profile.emails:
            raise AuthenticationError(
                "Invalid profile data from Google",
                error="Authentication failed",
                code="INVALID_PROFILE",
            )

        email = validate_email(profile.emails[0])
        if email is None:
            raise AuthenticationError("Invalid email format", error="Authentication failed", code="INVALID_EMAIL")

        google_id = sanitize_input(profile.id)
        name = sanitize_input(profile.name or "User")
        image = profile.picture

        user = self.users.get_by_google_id(google_id)
        if user is not None:
            user = self.users.update_user(user, name=name, image=image)
        else:
            existing = self.users.get_by_email(email)
            if existing is not None and existing.google_id:
                raise ConflictError(
                    "Email already registered with different account",
                    code="EMAIL_ALREADY_REGISTERED",
                )
            if existing is not None:
                # A phone account registered with this address: attach the Google id.
                user = self.users.update_user(
                    existing,
                    google_id=google_id,
                    email_verified=True,
                    image=existing.image or image,
                )
                logger.info("Linked Google account to existing user", user_id=str(user.id))
            else:
                user = self.users.create_user(
                    google_id=google_id,
                    email=email,
                    email_verified=True,
                    name=name,
                    image=image,
                    auth_method=AuthMethod.GOOGLE.value,
                )

        return self.complete_login(user, context)

    # ------------------------------------------------------------------
    # Phone OTP
    # ------------------------------------------------------------------

    def _canonical_phone(self, raw: str) -> str:
        phone_number = normalize_phone_number(raw)
        if phone_number is None:
            raise RequestValidationFailed(
                "Please provide a valid phone number in international format, e.g. +15551234567",
                error="Invalid phone number",
                code="INVALID_PHONE",
            )
        return phone_number

    def _ensure_not_locked(self, user: Optional[User]) -> None:
        if user is not None and self.users.is_locked(user):
            raise AuthorizationError(
                "Too many failed attempts. Try again later.",
                error="Account locked",
                code="ACCOUNT_LOCKED",
            )

    def _resolve_target_email(self, phone_number: str, requested_email: Optional[str], resend: bool) -> str:
        if not requested_email and resend:
            pending = self.otps.get_active(phone_number)
            if pending is None:
                raise NotFoundError(
                    "No pending verification for this phone number. Request a new code.",
                    error="OTP not found",
                    code="OTP_NOT_FOUND",
                )
            return pending.email

        if not requested_email:
            raise RequestValidationFailed(
                "Email is required to create a new account",
                error="Email required",
                code="EMAIL_REQUIRED",
            )

        email = validate_email(requested_email)
        if email is None:
            raise RequestValidationFailed(
                "Please provide a valid email address",
                error="Invalid email",
                code="INVALID_EMAIL",
            )

        owner = self.users.get_by_email(email)
        if owner is not None and owner.phone_number and owner.phone_number != phone_number:
            raise ConflictError(
                "This email is already linked to another account",
                error="Email already registered",
                code="EMAIL_ALREADY_REGISTERED",
                status_code=400,
            )
        return email

    async def send_otp(
        self,
        payload: SendOtpRequest,
        context: RequestContext,
        *,
        resend: bool = False,
    ) -> SendOtpResponse:
        phone_number = self._canonical_phone(payload.phone_number)

        user = self.users.get_by_phone(phone_number)
        self._ensure_not_locked(user)
        if user is not None:
            # Existing accounts always receive the code at their stored address.
            target_email = user.email
        else:
            target_email = self._resolve_target_email(phone_number, payload.email, resend)

        issued = self.otps.issue(phone_number, target_email, context.ip, context.user_agent)

        if settings.is_production:
            try:
                await self.email_service.send_otp(target_email, issued.code)
            except UpstreamError:
                self.otps.consume(issued.record)
                raise
        else:
            logger.info("OTP delivery bypassed outside production", phone_number=phone_number, otp=issued.code)

        return SendOtpResponse(
            message="Verification code sent to your email",
            expires_in=settings.OTP_EXPIRE_MINUTES * 60,
            email=mask_email(target_email),
            can_resend_after=settings.OTP_RESEND_AFTER_SECONDS,
            otp=None if settings.is_production else issued.code,
        )

    def verify_otp(self, payload: VerifyOtpRequest, context: RequestContext) -> LoginResult:
        phone_number = self._canonical_phone(payload.phone_number)

        user = self.users.get_by_phone(phone_number)
        self._ensure_not_locked(user)

        result = self.otps.verify(phone_number, payload.otp)

        if result.outcome is OtpOutcome.NO_ACTIVE_RECORD:
            raise RequestValidationFailed(
                "No active verification code. Please request a new one.",
                error="OTP expired or not found",
                code="OTP_EXPIRED",
            )

        if result.outcome in (OtpOutcome.MISMATCH, OtpOutcome.EXHAUSTED):
            if user is not None:
                self.users.register_failed_attempt(user)
            if result.outcome is OtpOutcome.EXHAUSTED:
                raise RequestValidationFailed(
                    "Too many failed attempts. Please request a new code.",
                    error="Too many attempts",
                    code="OTP_ATTEMPTS_EXCEEDED",
                )
            raise RequestValidationFailed(
                "Invalid verification code",
                error="Invalid OTP",
                code="INVALID_OTP",
                extra={"attemptsRemaining": result.attempts_remaining},
            )

        record = result.record
        email = record.email

        if user is None:
            user = self.users.get_by_email(email)
            if user is not None:
                user = self.users.update_user(
                    user,
                    phone_number=phone_number,
                    phone_verified=True,
                    email_verified=True,
                )
                logger.info("Linked phone number to existing user", user_id=str(user.id))
            else:
                user = self.users.create_user(
                    phone_number=phone_number,
                    email=email,
                    phone_verified=True,
                    email_verified=True,
                    name=sanitize_input(email.split("@", 1)[0]),
                    auth_method=AuthMethod.MOBILE.value,
                )
        elif not user.phone_verified:
            user = self.users.update_user(user, phone_verified=True)

        # The record is only removed once the email has been read from it.
        self.otps.consume(record)

        return self.complete_login(user, context)
