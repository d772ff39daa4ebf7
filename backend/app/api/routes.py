from fastapi import APIRouter, Depends

from app.api.auth import router as auth_router
from app.api.deps import global_rate_limit
from app.api.messages import router as messages_router
from app.api.moderation import router as moderation_router
from app.api.users import router as users_router

router = APIRouter(dependencies=[Depends(global_rate_limit)])

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(users_router)
router.include_router(messages_router)
router.include_router(moderation_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Hearth API"}
