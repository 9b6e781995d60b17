"""
Base service class for HTTP services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
from typing import Dict, Optional
import time
import os

from prometheus_client import CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

from shared.config import AuthorizationSettings, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import AccessLayerException


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, settings: Optional[AuthorizationSettings] = None,
                 registry: Optional[CollectorRegistry] = None):
        self.config = settings or get_config()
        self.service_name = self.config.service_name
        self.port = self.config.port
        self.registry = registry
        self.logger = get_logger(f"{self.service_name}.http")
        self.metrics = get_metrics_collector(self.service_name, registry)
        self._start_time = time.time()

        # Configure logging
        configure_logging(self.service_name, self.config.log_level)

        # Tracing must be configured before the app is created so it is instrumented
        if self.config.enable_tracing:
            from shared.tracing import configure_tracing
            configure_tracing(
                self.service_name,
                self.config.otel_exporter,
                self.config.enable_console_tracing,
                environment=self.config.env
            )

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"{self.service_name.title()} Service",
            version="1.0.0",
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        self.stop()

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self.app.add_middleware(GZipMiddleware, minimum_size=1000)

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            start_time = time.time()
            request_id = set_request_id(request.headers.get("X-Request-ID"))

            response = await call_next(request)
            duration = time.time() - start_time

            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)

            self.metrics.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-ID"] = request_id
            clear_context()
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/", include_in_schema=False)
        def root():
            """Redirect to the interactive API documentation."""
            return RedirectResponse(url="/docs", status_code=307)

        @self.app.get("/health")
        def health_check():
            """Health check endpoint."""
            dependencies = self._check_dependencies()
            healthy = all(status == "ok" for status in dependencies.values())
            self.metrics.record_health_check("ok" if healthy else "error")

            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "service": self.service_name,
                    "status": "ok" if healthy else "error",
                    "uptime_seconds": time.time() - self._start_time,
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            )

        @self.app.get("/metrics")
        def metrics_endpoint():
            """Prometheus metrics endpoint."""
            if self.registry is not None:
                content = generate_latest(self.registry)
            else:
                content = generate_latest()
            return Response(content=content, media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(AccessLayerException)
        async def access_layer_exception_handler(request: Request, exc: AccessLayerException):
            """Handle AccessLayerException."""
            if exc.status_code >= 500:
                self.logger.error(
                    "Authorization error",
                    code=exc.code,
                    message=exc.message,
                    details=exc.details
                )
                self.metrics.record_error(exc.code)

            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

    def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def stop(self):
        """Release service resources on shutdown. Override in subclasses."""
        self.logger.info("Service stopped", service=self.service_name)

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
