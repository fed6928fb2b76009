"""
Base service class for Contacts Service applications.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from typing import Dict, Optional
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import (
    CORRELATION_ID_HEADER,
    configure_logging,
    correlation_id_var,
    get_logger,
    resolve_correlation_id,
    set_correlation_id,
)
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.errors import ErrorResponse, ServiceException


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = metrics or get_metrics_collector(service_name)
        self._start_time = time.time()

        # Configure logging
        configure_logging(service_name, self.config.log_level)

        # Create FastAPI app
        self.app = self._create_app()

        # Set up middleware
        self._setup_middleware()

        # Set up routes
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"{self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        # CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else self.config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["*"],
        )

        # Correlation, timing and access-log middleware
        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            correlation_id = set_correlation_id(resolve_correlation_id(request.headers))
            start_time = time.time()

            self.logger.info(
                "Incoming request",
                method=request.method,
                path=request.url.path,
                client=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent")
            )

            response = await call_next(request)

            duration = time.time() - start_time
            route = request.scope.get("route")
            route_path = getattr(route, "path", request.url.path)

            self.metrics.record_http_request(
                method=request.method,
                route=route_path,
                status_code=response.status_code,
                duration=duration
            )

            self.logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                route=route_path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()

                if any(status == "error" for status in dependencies.values()):
                    self.metrics.record_health_check("error")
                    return JSONResponse(
                        status_code=503,
                        content={
                            "service": self.service_name,
                            "status": "error",
                            "dependencies": dependencies
                        }
                    )

                self.metrics.record_health_check("ok")

                return {
                    "service": self.service_name,
                    "status": "ok",
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "error",
                        "error": str(e)
                    }
                )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        # Error handlers
        @self.app.exception_handler(ServiceException)
        async def service_exception_handler(request: Request, exc: ServiceException):
            """Handle ServiceException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "Service error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            """Report request validation failures as client errors."""
            errors = [
                {"loc": list(error.get("loc", ())), "message": error.get("msg", "")}
                for error in exc.errors()
            ]
            self.logger.warning("Validation error", errors=errors)
            body = ErrorResponse(
                correlation_id=correlation_id_var.get(),
                code="VALIDATION_ERROR",
                message="Validation Error",
                details={"errors": errors}
            )
            return JSONResponse(status_code=400, content=body.model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=exc)
            self.metrics.record_error("INTERNAL_ERROR")
            body = ErrorResponse(
                correlation_id=correlation_id_var.get(),
                code="INTERNAL_ERROR",
                message="Internal server error"
            )
            return JSONResponse(status_code=500, content=body.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
