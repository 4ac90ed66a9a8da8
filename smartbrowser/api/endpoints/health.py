from fastapi import APIRouter, Request

from smartbrowser import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    state = request.app.state
    orchestrator = getattr(state, "orchestrator", None)
    pool = getattr(state, "session_pool", None)
    executors = await orchestrator.health_check() if orchestrator else {}
    return {
        "status": "healthy" if all(executors.values()) else "degraded",
        "service": "smartbrowser",
        "version": __version__,
        "llm_enabled": getattr(state, "llm_client", None) is not None,
        "executors": executors,
        "browser": pool.get_stats() if pool else None,
    }
