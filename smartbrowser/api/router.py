from fastapi import APIRouter

from smartbrowser.api.endpoints import goals, pages, summarize, tasks

api_router = APIRouter()
api_router.include_router(summarize.router, tags=["summarize"])
api_router.include_router(goals.router, tags=["goals"])
api_router.include_router(pages.router, tags=["pages"])
api_router.include_router(tasks.router, tags=["tasks"])
