"""
Times Tables Practice Platform - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Renders every error as {"ok": false, "error": ...}
5. Registers all API route handlers
6. Provides health check endpoint

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (credentials, scoring, attainment, rosters)
- sessions.py: Cookie sessions and permission checks
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from timestables.config import DATABASE_URL
from timestables.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from timestables.routes import (
    admin_pupils, admin_teachers, attainment, attempts, classes, student, teacher, tests
)
from timestables.database import create_tables

# Import all models so they are registered with Base.metadata
import timestables.models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")
db_logger = get_logger("db")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("SQLite database: creating tables on startup")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="Times Tables Practice Platform",
    description=(
        "Pupils take timed multiplication quizzes; teachers and admins see "
        "class trends, per-table heatmaps, pupil progress and improver / "
        "concern lists."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# Session cookies are sent cross-origin only with credentials enabled.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generate a request ID, expose it in X-Request-ID and log the request
    start and completion with latency.
    """
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Error handlers
# ──────────────────────────────────────────────────────────────
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query strings are a 400, not a 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": "{}: {}".format(field, message) if field else message,
            "details": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        }
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    log_with_context(db_logger, "ERROR",
        f"Database error on {request.method} {request.url.path}",
        extra_data={"error": str(exc), "type": type(exc).__name__},
        exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Database error", "debug": str(exc)}
    )


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(student.router, tags=["Student"])
app.include_router(tests.router, tags=["Tests"])
app.include_router(attempts.router, tags=["Attempts"])
app.include_router(teacher.router, tags=["Teacher"])
app.include_router(attainment.router, tags=["Attainment"])
app.include_router(admin_pupils.router, tags=["Admin: Pupils"])
app.include_router(admin_teachers.router, tags=["Admin: Teachers"])
app.include_router(classes.router, tags=["Classes"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for container health checks and monitoring."""
    return {"status": "healthy", "service": "timestables-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Times Tables Practice Platform",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "student_login": "POST /api/student/login",
            "submit_test": "POST /api/tests/submit",
            "start_test": "POST /api/tests/start",
            "answer": "POST /api/attempts/{id}/answer",
            "teacher_login": "POST /api/teacher/login",
            "class_attainment": "GET /api/teacher/attainment/class",
            "insights": "GET /api/teacher/attainment/insights",
            "heatmap": "GET /api/teacher/heatmap",
            "admin_pupils": "POST /api/admin/pupils/create",
            "admin_teachers": "GET /api/admin/teachers/list",
            "classes": "GET /api/classes"
        }
    }
