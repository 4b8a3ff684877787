import time
import logging
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import settings
from app.core.limiter import limiter
from app.modules.auth import routes as auth_routes
from app.modules.cross_replies import routes as cross_replies_routes
from app.modules.agents import routes as agents_routes
from app.modules.conversations import routes as conversations_routes
from app.modules.teams import routes as teams_routes
from app.modules.tasks import routes as tasks_routes
from app.modules.uploads import routes as uploads_routes
from app.modules.groups import routes as groups_routes
from app.modules.shares import routes as shares_routes
from app.modules.saved_responses import routes as saved_responses_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

START_TIME = time.monotonic()
REDACTED_PARAMS = ("password", "token")

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(exc.status_code, message, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return error_response(422, "; ".join(problems) or "Invalid request")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {request.client.host if request.client else 'unknown'}: {exc.detail}")
    return error_response(429, "Too many requests from this IP, please try again later.")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return error_response(500, "Internal server error")
    return error_response(500, str(exc))


def redact_query(query_string: str) -> str:
    """Mask password/token style query parameters before they reach the logs"""
    params = parse_qsl(query_string, keep_blank_values=True)
    return urlencode([
        (key, "[REDACTED]" if any(secret in key.lower() for secret in REDACTED_PARAMS) else value)
        for key, value in params
    ])


class RequestLoggingMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.monotonic()
        query = redact_query(scope.get("query_string", b"").decode("latin-1"))
        path = scope["path"] + (f"?{query}" if query else "")
        status_holder = {}

        async def send_with_status(message):
            if message["type"] == "http.response.start":
                status_holder["status"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            logger.info(f"{scope['method']} {path} {status_holder.get('status', '-')} {elapsed_ms:.1f}ms")


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes; cross-replies before agents
app.include_router(auth_routes.router, prefix="/api")
app.include_router(cross_replies_routes.router, prefix="/api")
app.include_router(agents_routes.router, prefix="/api")
app.include_router(conversations_routes.router, prefix="/api")
app.include_router(teams_routes.router, prefix="/api")
app.include_router(tasks_routes.router, prefix="/api")
app.include_router(uploads_routes.router, prefix="/api")
app.include_router(groups_routes.router, prefix="/api")
app.include_router(shares_routes.router, prefix="/api")
app.include_router(shares_routes.resources_router, prefix="/api")
app.include_router(saved_responses_routes.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Application startup ({settings.environment})")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/")
@limiter.exempt
async def root():
    return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - START_TIME, 3),
        "environment": settings.environment,
    }


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness check: extend here with Supabase checks if needed."""
    return {"status": "ready"}


@app.get("/api")
async def api_index():
    """Index of the resource endpoints"""
    return {
        "name": settings.app_name,
        "endpoints": {
            "auth": "/api/auth",
            "agents": "/api/agents",
            "cross_replies": "/api/agents/cross-replies",
            "conversations": "/api/conversations",
            "teams": "/api/teams",
            "tasks": "/api/teams/{team_id}/tasks",
            "uploads": "/api/uploads",
            "groups": "/api/groups",
            "share_requests": "/api/share-requests",
            "shared_resources": "/api/shared-resources",
            "saved_responses": "/api/saved-responses",
        },
    }
