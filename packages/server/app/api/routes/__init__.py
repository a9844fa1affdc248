"""
API Router

Everything is mounted under /api. Org context comes from the session, not the path.
"""

from fastapi import APIRouter

from . import admin, auth, messages, misc, notifications, org, todos, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(todos.router, prefix="/todos", tags=["Todos"])
router.include_router(messages.router, prefix="/messages", tags=["Messages"])
router.include_router(org.router, prefix="/org", tags=["Organizations"])
router.include_router(org.resolve_router, prefix="/orgs", tags=["Organizations"])
router.include_router(admin.router, prefix="/admin", tags=["Admin"])
router.include_router(users.router, prefix="/user", tags=["Users"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(misc.router, tags=["Misc"])
