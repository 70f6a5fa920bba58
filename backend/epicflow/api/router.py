from fastapi import APIRouter

from epicflow.api.routes import auth, comments, epics, tasks, users


api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(epics.router)
api_router.include_router(tasks.router)
api_router.include_router(comments.router)
