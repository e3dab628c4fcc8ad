from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from typing import Optional
from urllib.parse import quote

from app.core.config import settings
from app.core.deps import get_auth_service, get_current_user, get_optional_identity, get_request_context
from app.core.exceptions import AppError
from app.core.logging import logger
from app.core.rate_limit import limiter
from app.models import User
from app.schemas.auth import (
    AuthStatusResponse,
    AuthUser,
    Identity,
    MessageResponse,
    ResendOtpRequest,
    SendOtpRequest,
    SendOtpResponse,
    TokenResponse,
    UserProfile,
    UserProfileResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from app.services.auth_service import AuthService, RequestContext

router = APIRouter()


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="strict" if settings.is_production else "lax",
        path="/",
    )


def _login_error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/login?error={quote(reason)}", status_code=302)


@router.get("/google")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def google_auth(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Redirect the browser to Google's consent screen."""
    auth_url = auth_service.create_google_auth_url()
    logger.info("Redirecting to Google OAuth")
    return RedirectResponse(url=auth_url, status_code=302)


@router.get("/google/callback")
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    auth_service: AuthService = Depends(get_auth_service),
    context: RequestContext = Depends(get_request_context),
):
    """Handle Google OAuth callback.

    Every outcome is a redirect back to the frontend, never a JSON error.
    """
    if error or not code or not state:
        logger.warning("Google OAuth callback rejected", provider_error=error)
        return _login_error_redirect(error or "auth_failed")

    try:
        profile = auth_service.exchange_google_code(code, state)
        result = auth_service.login_with_google(profile, context)
    except AppError as exc:
        logger.warning("Google OAuth callback failed", error=exc.message, code=exc.code)
        return _login_error_redirect(exc.message)
    except Exception as exc:
        logger.error("Google OAuth callback crashed", error=str(exc), exc_info=True)
        return _login_error_redirect("auth_failed")

    response = RedirectResponse(url=f"{settings.FRONTEND_URL}?auth=success", status_code=302)
    set_auth_cookie(response, result.token)
    logger.info("Google OAuth callback processed", user_id=str(result.user.id))
    return response


@router.post("/send-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def send_otp(
    request: Request,
    payload: SendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
    context: RequestContext = Depends(get_request_context),
):
    return await auth_service.send_otp(payload, context)


@router.post("/resend-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def resend_otp(
    request: Request,
    payload: ResendOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
    context: RequestContext = Depends(get_request_context),
):
    """Same rules as send-otp; a missing email reuses the pending code's address."""
    return await auth_service.send_otp(payload, context, resend=True)


@router.post("/verify-otp", response_model=VerifyOtpResponse)
@limiter.limit(settings.AUTH_RATE_LIMIT)
async def verify_otp(
    request: Request,
    response: Response,
    payload: VerifyOtpRequest,
    auth_service: AuthService = Depends(get_auth_service),
    context: RequestContext = Depends(get_request_context),
):
    result = auth_service.verify_otp(payload, context)
    set_auth_cookie(response, result.token)

    user = result.user
    return VerifyOtpResponse(
        token=result.token,
        user=AuthUser(
            id=user.id,
            phone_number=user.phone_number,
            email=user.email,
            name=user.name,
            image=user.image,
        ),
    )


@router.get("/user", response_model=UserProfileResponse)
async def get_user(current_user: User = Depends(get_current_user)):
    """Current user's profile; session tokens are never exposed."""
    return UserProfileResponse(user=UserProfile.model_validate(current_user))


@router.get("/status", response_model=AuthStatusResponse, response_model_exclude_none=True)
async def auth_status(identity: Optional[Identity] = Depends(get_optional_identity)):
    if identity is None:
        return AuthStatusResponse(authenticated=False)
    return AuthStatusResponse(authenticated=True, user=identity)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    response: Response,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    result = auth_service.refresh(current_user)
    set_auth_cookie(response, result.token)
    return TokenResponse(token=result.token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.logout(current_user)
    clear_auth_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    response: Response,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    auth_service.delete_account(current_user)
    clear_auth_cookie(response)
    return MessageResponse(message="Account deleted successfully")
