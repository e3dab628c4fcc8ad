from .auth import (
    Identity, SendOtpRequest, ResendOtpRequest, VerifyOtpRequest, SendOtpResponse,
    AuthUser, VerifyOtpResponse, TokenResponse, UserProfile, UserProfileResponse,
    AuthStatusResponse, MessageResponse, GoogleProfile
)
from .chat import ThreadCreate, ThreadSummary, MessageRecord, ChatRequest, ChatResponse
from .upload import (
    UploadSummary, UploadListItem, UploadDetail, UploadCreateResponse,
    ThreadUploadsResponse, UploadBase64Response, UploadedFilePayload
)

__all__ = [
    "Identity", "SendOtpRequest", "ResendOtpRequest", "VerifyOtpRequest", "SendOtpResponse",
    "AuthUser", "VerifyOtpResponse", "TokenResponse", "UserProfile", "UserProfileResponse",
    "AuthStatusResponse", "MessageResponse", "GoogleProfile",
    "ThreadCreate", "ThreadSummary", "MessageRecord", "ChatRequest", "ChatResponse",
    "UploadSummary", "UploadListItem", "UploadDetail", "UploadCreateResponse",
    "ThreadUploadsResponse", "UploadBase64Response", "UploadedFilePayload",
]
