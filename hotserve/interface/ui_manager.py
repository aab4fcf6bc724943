from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, Optional
import logging
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.errors import BuildError, HotServeError, WatchSetupError
from ..preview.live_server import LiveServer
from .routes import router

logger = logging.getLogger(__name__)

class ErrorCode(Enum):
    """Standardized error codes"""
    BUILD_FAILED = "BUILD_FAILED"
    WATCH_FAILED = "WATCH_FAILED"
    SYSTEM_ERROR = "SYSTEM_ERROR"

class ResponseWrapper(BaseModel):
    """Standard API response wrapper"""
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

class DevStaticFiles(StaticFiles):
    """Static build output; optionally falls back to index.html for unknown paths"""

    def __init__(self, *args, index_on_404: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.index_on_404 = index_on_404

    async def get_response(self, path: str, scope):
        try:
            response = await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code == 404 and self.index_on_404:
                return await super().get_response("index.html", scope)
            raise
        if response.status_code == 404 and self.index_on_404:
            return await super().get_response("index.html", scope)
        return response

class UIManager:
    """Builds the dev server's FastAPI application"""

    def __init__(self, live_server: LiveServer):
        self.server = live_server
        self.config = live_server.config
        self.app = FastAPI(
            title="hotserve",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=self._lifespan
        )
        self.app.state.live_server = live_server
        self._setup_middleware()
        self._setup_error_handlers()
        self.app.include_router(router)
        self._mount_static()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.server.prepare()
        await self.server.start()
        try:
            yield
        finally:
            await self.server.stop()

    def _setup_middleware(self):
        """Setup API middleware"""
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"]
        )

        @self.app.middleware("http")
        async def add_timing_header(request: Request, call_next):
            start_time = time.perf_counter()
            response = await call_next(request)
            process_time = time.perf_counter() - start_time
            response.headers["X-Process-Time"] = str(process_time)
            self.server.metrics.record("request_time", process_time)
            return response

    def _setup_error_handlers(self):
        """Setup global error handlers"""
        @self.app.exception_handler(HotServeError)
        async def hotserve_error_handler(request: Request, exc: HotServeError):
            logger.error(f"Request to {request.url.path} failed: {exc}")
            return self.error_response(self._error_code(exc), str(exc), status_code=500)

    def _mount_static(self):
        self.app.mount(
            "/",
            DevStaticFiles(
                directory=str(self.config.out_path),
                html=True,
                check_dir=False,
                index_on_404=self.config.index_on_404
            ),
            name="static"
        )

    @staticmethod
    def _error_code(exc: HotServeError) -> ErrorCode:
        if isinstance(exc, BuildError):
            return ErrorCode.BUILD_FAILED
        if isinstance(exc, WatchSetupError):
            return ErrorCode.WATCH_FAILED
        return ErrorCode.SYSTEM_ERROR

    def error_response(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None,
        status_code: int = 400
    ) -> JSONResponse:
        """Create a standardized error response"""
        return JSONResponse(
            status_code=status_code,
            content=ResponseWrapper(
                success=False,
                error={
                    "code": code.value,
                    "message": message,
                    "details": details
                }
            ).model_dump()
        )
