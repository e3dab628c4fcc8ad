from fastapi import Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.core.security import extract_token
from app.core.logging import logger
from app.models import User
from app.schemas.auth import Identity
from app.services.auth_service import AuthService, RequestContext
from app.services.chat_service import ThreadService
from app.services.upload_service import UploadService


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    """Get auth service instance"""
    return AuthService(db)


def get_thread_service(db: Session = Depends(get_db)) -> ThreadService:
    """Get thread service instance"""
    return ThreadService(db)


def get_upload_service(db: Session = Depends(get_db)) -> UploadService:
    """Get upload service instance"""
    return UploadService(db)


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_current_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer header (or cookie) to a user, or fail with 401."""
    token = extract_token(request)
    if not token:
        raise AuthenticationError("Authentication required", code="NO_TOKEN")
    return auth_service.get_current_user(token)


def get_optional_identity(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[Identity]:
    """Like ``get_current_user`` but yields None instead of failing."""
    token = extract_token(request)
    if not token:
        return None
    try:
        user = auth_service.get_current_user(token)
    except AuthenticationError as exc:
        logger.debug("Ignoring unusable credentials", code=exc.code)
        return None
    return AuthService.to_identity(user)
