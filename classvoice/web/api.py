"""FastAPI control API for classvoice."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Will be set by main.py
_service_instance = None


class StartRequest(BaseModel):
    """Request body for starting capture."""
    session_id: str
    role: str


class CaptureResponse(BaseModel):
    """Response model for capture commands."""
    success: bool
    message: str
    data: Optional[dict] = None


class StatusResponse(BaseModel):
    """Response model for system status."""
    uptime_seconds: float
    capture: dict
    sink: dict


def set_service_instance(instance) -> None:
    """Set the CaptureService instance for API access."""
    global _service_instance
    _service_instance = instance


def _require_service():
    if _service_instance is None:
        raise HTTPException(status_code=503, detail="Capture service not initialized")
    return _service_instance


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="classvoice API",
        description="Classroom voice capture control",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.start_time = datetime.now()

    @app.get("/api/status", response_model=StatusResponse)
    async def get_status():
        """Get current capture and delivery status."""
        service = _require_service()
        status = service.get_status()
        uptime = (datetime.now() - app.state.start_time).total_seconds()

        return StatusResponse(
            uptime_seconds=uptime,
            capture=status["capture"],
            sink=status["sink"],
        )

    @app.post("/api/capture/start", response_model=CaptureResponse)
    def start_capture(request: StartRequest):
        """Start capturing voice for a session."""
        service = _require_service()
        if not service.controller.start(request.session_id, request.role):
            raise HTTPException(
                status_code=409,
                detail="Capture could not be started (role not allowed, missing session id, or already active)",
            )
        return CaptureResponse(
            success=True,
            message=f"Capture started for session {request.session_id}",
            data=service.controller.status(),
        )

    @app.post("/api/capture/pause", response_model=CaptureResponse)
    def pause_capture():
        """Pause an active capture."""
        service = _require_service()
        if not service.controller.pause():
            raise HTTPException(status_code=409, detail="Capture is not listening")
        return CaptureResponse(
            success=True,
            message="Capture paused",
            data=service.controller.status(),
        )

    @app.post("/api/capture/resume", response_model=CaptureResponse)
    def resume_capture():
        """Resume a paused capture."""
        service = _require_service()
        if not service.controller.resume():
            raise HTTPException(status_code=409, detail="Capture is not paused")
        return CaptureResponse(
            success=True,
            message="Capture resumed",
            data=service.controller.status(),
        )

    @app.post("/api/capture/stop", response_model=CaptureResponse)
    def stop_capture():
        """Stop capture. Stopping twice is not an error."""
        service = _require_service()
        stopped = service.controller.stop()
        return CaptureResponse(
            success=True,
            message="Capture stopped" if stopped else "Capture was not running",
            data=service.controller.status(),
        )

    @app.get("/api/notices")
    async def get_notices(limit: int = 20):
        """Get the most recent notices, newest first."""
        service = _require_service()
        notices = service.notices.recent(limit)
        return {"success": True, "data": [n.to_dict() for n in notices]}

    @app.get("/api/chunks/recent")
    async def get_recent_chunks(limit: int = 20):
        """Get delivery outcomes for recent chunks."""
        service = _require_service()
        return {"success": True, "data": service.sink.recent_deliveries(limit)}

    return app
