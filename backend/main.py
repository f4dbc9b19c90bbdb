# main.py — PR Board API
# Features:
# - Request correlation IDs carried into every log record
# - Security headers
# - Uniform error bodies {"error", "code", "request_id"}
# - Health check with DB verification
import json
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import CORS_ORIGINS, ENVIRONMENT, IS_PRODUCTION, PORT, check_startup_config
from context import AppContext
from database import get_db_session
from errors import AppError, AuthenticationError, error_body
from logging_system import (
    RequestContext, configure_logging, set_current_context, reset_current_context,
)

VERSION = "1.0.0"

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting PR Board API v%s (%s)", VERSION, ENVIRONMENT)
    check_startup_config()
    yield
    logger.info("Shutting down PR Board API")
    await app.state.context.close()


app = FastAPI(
    title="PR Board",
    description="Kanban tracking of pull requests through review and release",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)
app.state.context = AppContext()

# ============================================================
# CORS
# ============================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", "X-Correlation-ID"],
    expose_headers=["X-Request-ID", "X-Correlation-ID"],
)


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    if IS_PRODUCTION:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    context = RequestContext.create(
        request_id=request.headers.get("X-Request-ID"),
        correlation_id=request.headers.get("X-Correlation-ID"),
    )
    request.state.request_id = context.request_id
    request.state.correlation_id = context.correlation_id
    token = set_current_context(context)

    try:
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        response.headers["X-Request-ID"] = context.request_id
        response.headers["X-Correlation-ID"] = context.correlation_id
        response.headers["X-Response-Time"] = f"{duration:.4f}s"

        logger.info(
            "%s %s -> %s (%.3fs) user=%s",
            request.method, request.url.path, response.status_code, duration,
            context.user_id or "-",
        )
        return response
    finally:
        reset_current_context(token)


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    request_id = getattr(request.state, "request_id", None)
    if isinstance(exc, AuthenticationError):
        logger.info("Authentication failed: %s", exc.message)
    elif exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    else:
        logger.warning("%s %s: %s", exc.status_code, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, request_id),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Sanitise errors to ensure JSON serialisability
    errors = []
    for err in exc.errors():
        clean_err = {
            "type": str(err.get("type", "unknown")),
            "loc": list(err.get("loc", [])),
            "msg": str(err.get("msg", "")),
        }
        if "input" in err:
            try:
                json.dumps(err["input"])
                clean_err["input"] = err["input"]
            except (TypeError, ValueError):
                clean_err["input"] = str(err["input"])
        errors.append(clean_err)

    body = error_body("Request validation failed", "PRB-VAL-002", getattr(request.state, "request_id", None))
    body["detail"] = errors
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", "PRB-SYS-001", getattr(request.state, "request_id", None)),
    )


# ============================================================
# ROUTERS
# ============================================================

from routers import auth, prs, workspaces, defaults, share  # noqa: E402

app.include_router(auth.router)
app.include_router(prs.router)
app.include_router(workspaces.router)
app.include_router(defaults.router)
app.include_router(share.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db_session)):
    """Health check with database connectivity verification"""
    db_status = "unknown"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.warning("Health check database ping failed: %s", e)
        db_status = f"error: {str(e)[:100]}"
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": VERSION,
        "environment": ENVIRONMENT,
        "database": db_status,
    }


@app.get("/")
async def root():
    return {
        "name": "PR Board",
        "version": VERSION,
        "description": "Kanban tracking of pull requests through review and release",
        "docs": "/docs",
        "health": "/health",
        "status": "operational",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=PORT,
        reload=not IS_PRODUCTION,
    )
