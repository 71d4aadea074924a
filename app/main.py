import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.auth.router import router as auth_router
from app.api.v1.classrooms.router import router as classrooms_router
from app.api.v1.schools.router import router as schools_router
from app.api.v1.students.router import router as students_router
from app.core.cache import ResponseCache
from app.core.config import settings
from app.core.exceptions import ServiceError
from app.core.logging import configure_logging
from app.core.rate_limiter import RateLimiter, RateLimitMiddleware
from app.core.redis import close_redis, create_redis_client, ping_redis
from app.core.schemas import error_body
from app.db.session import engine

logger = logging.getLogger(__name__)


def _format_validation_error(error: dict) -> str:
    # Drop the "body"/"query"/"path" prefix; keep the field path
    loc = [str(part) for part in error.get("loc", ())[1:]]
    message = error.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {message}" if loc else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [_format_validation_error(e) for e in exc.errors()]
        return JSONResponse(status_code=400, content=error_body(400, "Validation failed", details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route not found: {request.url.path}"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    redis_client = None
    if app.state.cache is None:
        redis_client = create_redis_client(settings.redis_url)
        await ping_redis(redis_client)
        app.state.cache = ResponseCache(
            redis_client,
            default_ttl=settings.cache_ttl_seconds,
            entity_ttl=settings.cache_entity_ttl_seconds,
        )
    logger.info("School management API started")
    try:
        yield
    finally:
        await close_redis(redis_client)
        await engine.dispose()
        logger.info("School management API stopped")


def create_app(cache: Optional[ResponseCache] = None) -> FastAPI:
    app = FastAPI(title="School Management API", lifespan=lifespan)

    # Built by the lifespan when not supplied (tests pass their own)
    app.state.cache = cache
    proxies = settings.trusted_proxy_list
    app.state.rate_limiter = RateLimiter(
        settings.rate_limit_max_requests, settings.rate_limit_window_seconds, trusted_proxies=proxies
    )
    app.state.login_limiter = RateLimiter(
        settings.login_rate_limit_max, settings.login_rate_limit_window_seconds, trusted_proxies=proxies
    )

    app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)
    origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(schools_router)
    app.include_router(classrooms_router)
    app.include_router(students_router)

    @app.get("/api/v1/health", response_class=PlainTextResponse, tags=["health"])
    async def health() -> str:
        return "OK"

    return app


app = create_app()
