from .base import Base
from .user import User, UserSession, AuthMethod
from .otp import OtpRecord
from .thread import Thread, Message, MessageRole
from .upload import Upload

__all__ = [
    "Base",
    "User",
    "UserSession",
    "AuthMethod",
    "OtpRecord",
    "Thread",
    "Message",
    "MessageRole",
    "Upload",
]
