from fastapi import APIRouter
from .auth import router as auth_router
from .chat import router as chat_router
from .upload import router as upload_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["authentication"])
api_router.include_router(chat_router, tags=["chat"])
api_router.include_router(upload_router, prefix="/upload", tags=["uploads"])
