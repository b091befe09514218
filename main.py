"""
Rotation Auth - FastAPI Application.

This is the main entry point for the Rotation Auth service, providing a
FastAPI application with the login, refresh and logout endpoints.
"""
import logging
from contextlib import asynccontextmanager

# Third-party imports
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Local application imports
from rotation_auth import __version__
from rotation_auth.api import ApiResponse
from rotation_auth.api import router as auth_router
from rotation_auth.auth import AuthenticationManager
from rotation_auth.config import settings
from rotation_auth.database import init_db
from rotation_auth.dependencies import get_auth_manager
from rotation_auth.exceptions import AuthCoreError, ErrorCode

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT,
)
logger = logging.getLogger("rotation_auth")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database on startup and log shutdown."""
    logger.info("Initializing Rotation Auth API")
    init_db(settings.DATABASE_URL)
    logger.info("Rotation Auth API initialized")
    yield
    logger.info("Shutting down Rotation Auth API")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def www_authenticate(error_code: ErrorCode) -> str:
    """
    Build the WWW-Authenticate challenge for a 401 response.

    Requests without credentials get a bare challenge; every other failure is
    reported as ``invalid_token`` with the message key as its description.
    """
    if error_code is ErrorCode.TOKEN_MISSING:
        return "Bearer"
    return f'Bearer error="invalid_token", error_description="{error_code.message_key}"'


# Exception handlers
@app.exception_handler(AuthCoreError)
async def auth_error_handler(request: Request, exc: AuthCoreError):
    """Map core errors to their HTTP status."""
    headers = None
    if exc.http_status == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": www_authenticate(exc.error_code)}
    if exc.error_code is ErrorCode.SERVICE_UNAVAILABLE:
        logger.error(f"{request.method} {request.url.path} failed: {str(exc)}")

    body = ApiResponse.error(exc.http_status, exc.error_code.message_key)
    return JSONResponse(
        status_code=exc.http_status,
        content=body.model_dump(),
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    body = ApiResponse.error(exc.status_code, str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    body = ApiResponse.error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_server_error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(),
    )


# Health check endpoint
@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    description="Check if the API is running and the session registry is reachable.",
)
def health_check(manager: AuthenticationManager = Depends(get_auth_manager)):
    """Health check endpoint."""
    registry_ok = manager.registry.ping()
    return {
        "status": "ok" if registry_ok else "degraded",
        "registry": "ok" if registry_ok else "unavailable",
        "version": __version__,
    }


# Include authentication router
app.include_router(auth_router, prefix=f"{settings.API_PREFIX}/auth")


# Run the application if executed directly
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
