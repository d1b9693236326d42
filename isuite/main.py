"""
Application entrypoint.

Every error leaves the API as `{"error": message}` with an HTTP status,
whatever raised it.
"""
from contextlib import asynccontextmanager
from datetime import datetime, UTC

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from isuite.api.deps import get_database, get_tool_gateway
from isuite.api.v1.api import api_router
from isuite.core.config import settings
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.services.database_service import DatabaseService


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "application_startup",
        project_name=settings.PROJECT_NAME,
        version=settings.VERSION,
        environment=settings.ENVIRONMENT.value,
    )
    yield
    await get_tool_gateway().aclose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body failed validation: 400, with the offending fields."""
    formatted_errors = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part != "body"]
        formatted_errors.append({"field": ".".join(loc), "message": error["msg"]})

    logger.info("request_validation_failed", path=request.url.path, errors=formatted_errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation error", "details": formatted_errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


app.include_router(api_router)


@app.get("/health")
@limiter.limit(endpoint_limit("health"))
async def health_check(request: Request, db: DatabaseService = Depends(get_database)):
    """Liveness plus database reachability. 503 when the database is down."""
    db_healthy = await db.health_check()
    response = {
        "status": "healthy" if db_healthy else "degraded",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT.value,
        "components": {"api": "healthy", "database": "healthy" if db_healthy else "unhealthy"},
        "timestamp": datetime.now(UTC).isoformat(),
    }
    status_code = status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response, status_code=status_code)
