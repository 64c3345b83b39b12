from fastapi import APIRouter

from app.api.endpoints.admin import router as admin_router
from app.api.endpoints.characters import router as characters_router
from app.api.endpoints.chat import router as chat_router
from app.api.endpoints.comments import router as comments_router
from app.api.endpoints.notifications import router as notifications_router
from app.api.endpoints.novels import router as novels_router
from app.api.endpoints.reader import router as reader_router
from app.api.endpoints.recommendation import router as recommendation_router

api_router = APIRouter()
api_router.include_router(chat_router)
api_router.include_router(characters_router)
api_router.include_router(novels_router)
api_router.include_router(comments_router)
api_router.include_router(admin_router)
api_router.include_router(notifications_router)
api_router.include_router(reader_router)
api_router.include_router(recommendation_router)
