"""
REELCUT FastAPI Server

HTTP collaborator around the pipeline:
- /api/videos: submit jobs, poll status, list finished videos
- /api/scripts: in-memory script CRUD
- /output: finished video files
"""

import os
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError

from config import load_config
from pipeline import ReelcutPipeline
from schemas import Script
from utils.constants import BACKEND_BASE_URL
from utils.errors import InvalidInput, NotFound
from utils.job_store import ScriptStore
from utils.logger import get_logger
logger = get_logger("api")

API_VERSION = "1.0"


class GenerateRequest(BaseModel):
    scriptId: Optional[str] = None
    script: Optional[Any] = None
    settings: Optional[Dict[str, Any]] = None


class ScriptRequest(BaseModel):
    title: Optional[str] = None
    scenes: Optional[List[Any]] = None
    settings: Optional[Dict[str, Any]] = None


class ScriptGenerateRequest(BaseModel):
    settings: Optional[Dict[str, Any]] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _script_view(script: Script) -> Dict[str, Any]:
    return script.model_dump(mode="json", exclude_none=True)


def create_app(
    pipeline: Optional[ReelcutPipeline] = None,
    script_store: Optional[ScriptStore] = None,
    config: Optional[Dict[str, Any]] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        pipeline: Coordinator (default: built from config)
        script_store: Script registry (default: new in-memory store)
        config: Configuration dict (default: load_config())
    """
    config = config or (pipeline.config if pipeline else load_config())
    pipeline = pipeline or ReelcutPipeline(config=config)
    scripts = script_store or ScriptStore()
    started_at = time.time()

    app = FastAPI(title="REELCUT API", version=API_VERSION)
    app.state.pipeline = pipeline
    app.state.scripts = scripts

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Finished videos
    output_dir = config["paths"]["output_dir"]
    os.makedirs(output_dir, exist_ok=True)
    app.mount(
        config["paths"]["output_url_prefix"].rstrip("/") or "/output",
        StaticFiles(directory=output_dir),
        name="output",
    )

    # =========================================================================
    # Error mapping
    # =========================================================================

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(request: Request, exc: InvalidInput):
        return _error(400, str(exc))

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return _error(404, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, f"Invalid request body: {exc.errors()}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"[API] Unhandled error on {request.method} {request.url.path}: {exc}")
        return _error(500, str(exc) or exc.__class__.__name__)

    # =========================================================================
    # Service
    # =========================================================================

    @app.get("/")
    async def read_root():
        return {
            "message": "REELCUT short video generation API",
            "status": "OK",
            "version": API_VERSION,
            "base_url": BACKEND_BASE_URL,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "scripts": "/api/scripts",
                "videos": "/api/videos",
                "health": "/api/health",
            },
        }

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "uptime": round(time.time() - started_at, 3),
            "runner": pipeline.runner.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # =========================================================================
    # Videos
    # =========================================================================

    @app.post("/api/videos/generate", status_code=202)
    async def generate_video(req: GenerateRequest):
        """Queue a video job for a script."""
        if not isinstance(req.script, dict):
            raise InvalidInput("Request must include a script with a list of scenes")

        job_id = pipeline.submit(req.script.get("scenes"), req.settings, script_id=req.scriptId)
        return {
            "success": True,
            "message": "Video generation started",
            "data": {"jobId": job_id, "status": "pending"},
        }

    @app.get("/api/videos/status/{job_id}")
    async def get_video_status(job_id: str):
        return {"success": True, "data": pipeline.get_status(job_id)}

    @app.get("/api/videos")
    async def list_videos():
        """Completed jobs, newest first."""
        return {
            "success": True,
            "data": [
                {
                    **job.status_view(),
                    "script_id": job.script_id,
                    "warnings": job.warnings,
                    "created_at": job.created_at.isoformat(),
                    "updated_at": job.updated_at.isoformat(),
                }
                for job in pipeline.list_completed()
            ],
        }

    # =========================================================================
    # Scripts
    # =========================================================================

    @app.get("/api/scripts")
    async def list_scripts():
        return {"success": True, "data": [_script_view(s) for s in scripts.list_scripts()]}

    @app.get("/api/scripts/{script_id}")
    async def get_script(script_id: str):
        return {"success": True, "data": _script_view(scripts.get(script_id))}

    @app.post("/api/scripts", status_code=201)
    async def create_script(req: ScriptRequest):
        if not req.title or not isinstance(req.scenes, list):
            raise InvalidInput("A script needs a title and a list of scenes")
        try:
            script = Script.model_validate(req.model_dump(exclude_none=True))
        except ValidationError as e:
            raise InvalidInput(f"Invalid script: {e.errors()}") from e
        scripts.put(script)
        logger.info(f"[API] Script created: {script.id} ({len(script.scenes)} scenes)")
        return {"success": True, "data": _script_view(script)}

    @app.put("/api/scripts/{script_id}")
    async def update_script(script_id: str, req: ScriptRequest):
        current = scripts.get(script_id)
        data = current.model_dump()
        data.update(req.model_dump(exclude_none=True))
        data["updated_at"] = datetime.now(timezone.utc)
        try:
            script = Script.model_validate(data)
        except ValidationError as e:
            raise InvalidInput(f"Invalid script: {e.errors()}") from e
        scripts.put(script)
        return {"success": True, "data": _script_view(script)}

    @app.delete("/api/scripts/{script_id}")
    async def delete_script(script_id: str):
        scripts.delete(script_id)
        return {"success": True, "message": "Script deleted"}

    @app.post("/api/scripts/{script_id}/generate", status_code=202)
    async def generate_from_script(script_id: str, req: Optional[ScriptGenerateRequest] = None):
        """Queue a video job for a stored script."""
        script = scripts.get(script_id)
        settings = req.settings if req and req.settings else script.settings
        job_id = pipeline.submit(list(script.scenes), settings, script_id=script.id)
        return {
            "success": True,
            "message": "Video generation started",
            "data": {"jobId": job_id, "status": "pending"},
        }

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 3000))
    print(f"""
============================================================
              REELCUT API Server v{API_VERSION}
============================================================
  Server: http://localhost:{port}
  API Docs: http://localhost:{port}/docs
============================================================
    """)

    uvicorn.run(
        "api_server:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info"
    )
