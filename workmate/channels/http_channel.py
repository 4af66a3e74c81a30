"""HTTP channel: FastAPI routes for the avatar frontend, served by uvicorn.

Routes:
    GET  /              liveness text
    GET  /health        health check with queue status
    POST /chat          one chat turn
    GET  /job-status    sync queue counters
    POST /process-jobs  start draining the sync queue
"""

import logging
from datetime import datetime

from fastapi import FastAPI, Request, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class HttpChannel:
    """Exposes the conversation manager over HTTP."""

    def __init__(self, conversation_manager, sync_queue, usage_guard, host: str = "0.0.0.0", port: int = 3000):
        self.conversation_manager = conversation_manager
        self.sync_queue = sync_queue
        self.usage_guard = usage_guard
        self.host = host
        self.port = port
        self.app = self.create_app()

    def create_app(self) -> FastAPI:
        app = FastAPI(title="Workmate")
        app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException):
            if exc.status_code == 404:
                message = f"Route {request.url.path} not found"
            else:
                message = str(exc.detail)
            return JSONResponse({"error": {"message": message, "status": exc.status_code}}, status_code=exc.status_code)

        @app.exception_handler(Exception)
        async def unhandled_error(request: Request, exc: Exception):
            logger.error(f"🚨 Unhandled error on {request.url.path}: {exc}", exc_info=True)
            return JSONResponse({"error": {"message": "Internal Server Error"}}, status_code=500)

        @app.get("/", response_class=PlainTextResponse)
        async def root():
            return "AI Work Assistant Server is running!"

        @app.get("/health")
        async def health():
            return {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "jobs": self.sync_queue.get_status(),
            }

        @app.post("/chat")
        async def chat(request: Request, background_tasks: BackgroundTasks):
            try:
                payload = await request.json()
            except ValueError:
                return JSONResponse({"error": {"message": "Request body must be JSON", "status": 400}}, status_code=400)
            if not isinstance(payload, dict):
                return JSONResponse({"error": {"message": "Request body must be a JSON object", "status": 400}}, status_code=400)

            message = payload.get("message")
            session_id = str(payload.get("sessionId") or "default")
            user_id = str(payload.get("userId") or payload.get("user_id") or "anonymous")
            user_context = payload.get("userContext") if isinstance(payload.get("userContext"), dict) else None

            decision = await self.usage_guard.check(user_id, message or "")
            if not decision.allowed:
                return JSONResponse(decision.body, status_code=decision.status_code)

            reply = await self.conversation_manager.handle_chat(
                message if isinstance(message, str) else None,
                session_id=session_id,
                user_id=user_id,
                user_context=user_context,
            )
            if reply.pending_jobs:
                # Runs after the response has been sent
                background_tasks.add_task(self.conversation_manager.submit_jobs, reply.pending_jobs)
            return JSONResponse(reply.body, status_code=reply.status_code)

        @app.get("/job-status")
        async def job_status():
            return self.sync_queue.get_status()

        @app.post("/process-jobs")
        async def process_jobs():
            self.sync_queue.trigger()
            return {
                "message": "Background job processing triggered",
                "queueSize": self.sync_queue.get_status()["queueSize"],
            }

        return app

    async def start(self):
        import uvicorn

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        server = uvicorn.Server(config)
        logger.info(f"🤖 AI Work Assistant listening on http://{self.host}:{self.port}")
        await server.serve()
