from fastapi import APIRouter

from cursor_bot.core.config import settings

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
