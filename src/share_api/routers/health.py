import os

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint for monitoring API status and component readiness.

    Reports whether the upload directory is usable and how many realtime sessions are connected.
    """
    storage = request.app.state.storage
    broadcaster = request.app.state.broadcaster

    health_status = {
        "status": "ok",
        "components": {
            "api": "ready",
            "storage": "ready",
        },
        "sessions": broadcaster.session_count,
        "ready": False,
    }

    if not storage.root.is_dir():
        health_status["components"]["storage"] = "error: upload directory missing"
        health_status["status"] = "degraded"
    elif not os.access(storage.root, os.W_OK):
        health_status["components"]["storage"] = "error: upload directory not writable"
        health_status["status"] = "degraded"

    health_status["ready"] = all(
        state == "ready" for state in health_status["components"].values()
    )
    return health_status
