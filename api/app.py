"""
FastAPI application factory.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_STORAGE_PATH=/data/voters.sqlite APP_STORE_URL=https://... python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

The service graph (local storage, backup ledger, record store client,
recovery monitor) is built in the lifespan unless one is passed to
``create_app``; tests pass their own with fake collaborators.

Rate limits are per client IP and per path over a sliding 60 second window.
Client IPs honour X-Forwarded-For only from TRUSTED_PROXIES.
Set APP_LOG_FORMAT=json for structured logs; personal data is redacted
in both formats.
"""

import logging
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import (
    admin, aggregations, download, recovery, reference, registrations, voters,
)
from api.services import Services
from utils.config import AppConfig
from utils.errors import DuplicateError, RemoteError, StorageError, ValidationError
from utils.logging import configure_logging

_logger = logging.getLogger("voter_registration_api")

_MAX_TRACKED_IPS = 10_000
_CLEANUP_INTERVAL = 300.0  # 5 minutes


class RateLimiter:
    """Per-IP, per-path request counters with bounded memory."""

    def __init__(self, limits: dict[str, int], default: int, trusted_proxies=()):
        self.limits = limits
        self.default = default
        self.trusted_proxies = set(trusted_proxies)
        self.counters: dict[str, dict[str, list]] = defaultdict(lambda: defaultdict(list))
        self.blocked = 0
        self._last_cleanup = 0.0

    def client_ip(self, request: Request) -> str:
        """Return the real client IP, respecting X-Forwarded-For from trusted proxies."""
        direct_ip = request.client.host if request.client else "unknown"
        if direct_ip not in self.trusted_proxies:
            return direct_ip
        xff = request.headers.get("X-Forwarded-For", "")
        if xff:
            real_ip = xff.split(",")[0].strip()
            if real_ip:
                return real_ip
        return direct_ip

    def cleanup(self, now: float) -> None:
        """Drop stale hits; evict the quietest IPs when over the cap."""
        if now - self._last_cleanup < _CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        window_start = now - 60.0
        for ip in list(self.counters):
            paths = self.counters[ip]
            for path in list(paths):
                paths[path] = [t for t in paths[path] if t > window_start]
                if not paths[path]:
                    del paths[path]
            if not paths:
                del self.counters[ip]
        if len(self.counters) > _MAX_TRACKED_IPS:
            excess = len(self.counters) - _MAX_TRACKED_IPS
            quietest = sorted(
                self.counters,
                key=lambda ip: sum(len(v) for v in self.counters[ip].values()),
            )[:excess]
            for ip in quietest:
                del self.counters[ip]

    def hit(self, ip: str, path: str, method: str) -> int | None:
        """Record a request; return the limit if it is exceeded, else None."""
        now = time.time()
        self.cleanup(now)
        key = f"{method} {path}"
        limit = self.limits.get(key, self.limits.get(path, self.default))
        hits = [t for t in self.counters[ip][key] if t > now - 60.0]
        if len(hits) >= limit:
            self.counters[ip][key] = hits
            self.blocked += 1
            return limit
        hits.append(now)
        self.counters[ip][key] = hits
        return None


def _error_body(error: str, detail, status_code: int) -> dict:
    return {"error": error, "detail": detail, "status_code": status_code}


def create_app(services: Services | None = None, start_monitor: bool = True,
               config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Pre-built service container (useful for testing). When
            omitted, one is built from the environment at startup.
        start_monitor: Start the background recovery monitor at startup.
        config: Settings; defaults to ``services.config`` or the environment.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config or (services.config if services is not None else AppConfig.from_env())
    configure_logging(cfg.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = Services.from_config(cfg)
        if start_monitor:
            app.state.services.start()
        _logger.info("Pending local backups at startup: %d",
                     app.state.services.monitor.pending)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()
                app.state.services = None
            else:
                app.state.services.monitor.stop()

    app = FastAPI(
        title="Voter Registration API",
        summary="Resilient voter registration with on-device backup and admin reporting.",
        description=(
            "## Voter Registration API\n\n"
            "Collects voter registrations and delivers them to the remote record "
            "store. Every submission is written to a local backup ledger before "
            "delivery and removed only once the store confirms it; undelivered "
            "entries are retried by the recovery monitor.\n\n"
            "### Admin access\n"
            "Log in at `POST /api/v1/admin/login` and send the returned token as "
            "`Authorization: Bearer <token>`. Sessions last "
            f"{cfg.session_hours:g} hours.\n\n"
            "### Rate limits\n"
            f"- `POST /api/v1/registrations`: {cfg.rate_limit_submit} req/min per IP\n"
            f"- `/api/v1/download`: {cfg.rate_limit_download} req/min per IP\n"
            f"- All other endpoints: {cfg.rate_limit_default} req/min per IP\n\n"
            "Returns `429 Too Many Requests` with `Retry-After: 60` when exceeded."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "registrations", "description": "Submit and pre-check voter registrations."},
            {"name": "reference", "description": "Regions, constituencies, and ID types."},
            {"name": "voters", "description": "Filtered, paginated registration table (admin)."},
            {"name": "aggregations", "description": "Chart tallies by gender, region, constituency (admin)."},
            {"name": "download", "description": "CSV / Excel export of registrations (admin)."},
            {"name": "admin", "description": "Admin sessions and admin account management."},
            {"name": "recovery", "description": "Local backup ledger status and recovery."},
            {"name": "meta", "description": "Health check."},
        ],
    )
    if services is not None:
        app.state.services = services

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Request logging + rate limiting middleware ───────────────────────────
    limiter = RateLimiter(
        limits={
            "POST /api/v1/registrations": cfg.rate_limit_submit,
            "/api/v1/download": cfg.rate_limit_download,
        },
        default=cfg.rate_limit_default,
        trusted_proxies=cfg.trusted_proxies,
    )
    app.state.rate_limiter = limiter

    @app.middleware("http")
    async def log_and_rate_limit(request: Request, call_next):
        """Log each request and enforce per-IP rate limits."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        client_ip = limiter.client_ip(request)
        path = request.url.path

        if path == "/health":
            return await call_next(request)

        limit = limiter.hit(client_ip, path, request.method)
        if limit is not None:
            _logger.warning("rate_limited ip=%s path=%s limit=%d", client_ip, path, limit)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests", "status_code": 429},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        return response

    # ── Security headers ──────────────────────────────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if request.url.path.startswith(("/api/v1/voters", "/api/v1/admin",
                                        "/api/v1/download", "/api/v1/recovery")):
            response.headers.setdefault("Cache-Control", "private, no-store")
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500,
                            content=_error_body("Internal server error", str(exc), 500))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400,
                            content=_error_body("Validation failed", exc.errors, 400))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid value')}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400,
                            content=_error_body("Validation failed", messages, 400))

    @app.exception_handler(DuplicateError)
    async def duplicate_error_handler(request: Request, exc: DuplicateError):
        return JSONResponse(status_code=409,
                            content=_error_body("Already exists", str(exc), 409))

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError):
        _logger.warning("Record store error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502,
                            content=_error_body("Record store unavailable", str(exc), 502))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        _logger.error("Local storage error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503,
                            content=_error_body("Local storage unavailable", str(exc), 503))

    @app.exception_handler(LookupError)
    async def lookup_error_handler(request: Request, exc: LookupError):
        detail = exc.args[0] if exc.args else str(exc)
        return JSONResponse(status_code=404, content=_error_body("Not found", detail, 404))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400,
                            content=_error_body("Bad request", str(exc), 400))

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health(request: Request):
        """Return 200 OK if local storage is readable."""
        services_ = getattr(request.app.state, "services", None)
        if services_ is None:
            return JSONResponse(status_code=503, content={"status": "starting"})
        try:
            stored = len(services_.storage)
        except StorageError as exc:
            return JSONResponse(status_code=503,
                                content={"status": "degraded", "error": str(exc)})
        return {
            "status": "ok",
            "stored_keys": stored,
            "pending_backups": services_.monitor.pending,
            "recovering": services_.monitor.is_recovering,
        }

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api/v1"
    app.include_router(registrations.router, prefix=prefix)
    app.include_router(reference.router,     prefix=prefix)
    app.include_router(voters.router,        prefix=prefix)
    app.include_router(aggregations.router,  prefix=prefix)
    app.include_router(download.router,      prefix=prefix)
    app.include_router(admin.router,         prefix=prefix)
    app.include_router(recovery.router,      prefix=prefix)

    return app


if __name__ == "__main__":
    import uvicorn

    _cfg = AppConfig.from_env()
    uvicorn.run(
        "api.app:create_app",
        factory=True,
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
