from fastapi import APIRouter

from exam_session.api.sessions import router as sessions_router

router = APIRouter()
router.include_router(sessions_router)
