"""Version 1 API routers."""

from fastapi import APIRouter

from .auth import router as auth_router

router = APIRouter(prefix="/api/v1")
router.include_router(auth_router)


@router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["router"]
