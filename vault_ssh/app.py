import logging
import time
import json
import uuid
import os
from pathlib import Path
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response as FastAPIResponse
from fastapi.middleware.cors import CORSMiddleware
import hvac
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from opentelemetry import trace

from .errors import InternalError, RequestError
from .routes.creds import router as creds_router
from .routes.health import router as health_router
from .settings import settings


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": time.strftime('%Y-%m-%dT%H:%M:%S', time.gmtime(record.created)),
            "lvl": record.levelname.lower(),
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            base.update(extra)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def _own_records(name: str):
    # request/response loggers have their own handlers; keep them out of the parent's
    return lambda record: record.name == name or not record.name.startswith(("vault_ssh.request", "vault_ssh.response"))


def _configure_logger(name: str, logs_dir: Path, filename: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    h = logging.StreamHandler(); h.setFormatter(JSONFormatter()); h.addFilter(_own_records(name)); logger.addHandler(h)
    try:
        fh = RotatingFileHandler(logs_dir / filename, maxBytes=10_000_000, backupCount=5)
        fh.setFormatter(JSONFormatter()); fh.addFilter(_own_records(name)); logger.addHandler(fh)
    except OSError:
        pass
    lvl = os.environ.get("LOG_LEVEL", "info").upper()
    logger.setLevel(getattr(logging, lvl, logging.INFO))
    return logger


def create_app() -> FastAPI:
    app = FastAPI(title="Vault SSH Credential Issuer", version="0.1.0")
    logs_dir = Path(os.environ.get("LOG_DIR", "logs"))
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass

    # "vault_ssh" covers the component loggers (otp, dynamic, lease, ...)
    _configure_logger("vault_ssh", logs_dir, "server.log")
    req_logger = _configure_logger("vault_ssh.request", logs_dir, "requests.log")
    _configure_logger("vault_ssh.response", logs_dir, "responses.log")
    err_logger = logging.getLogger("vault_ssh.errors")

    origins = (settings.CORS_ALLOW_ORIGINS or "").strip()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    # Prometheus
    registry = CollectorRegistry()
    http_req_hist = Histogram("http_request_duration_seconds", "Request duration", labelnames=("method", "route", "status"), registry=registry, buckets=(0.005,0.01,0.025,0.05,0.1,0.25,0.5,1,2,5,10))
    http_req_count = Counter("http_requests_total", "Total HTTP requests", labelnames=("method", "route", "status"), registry=registry)
    http_req_in_flight = Gauge("http_requests_in_progress", "Number of HTTP requests actively being processed", registry=registry)
    app.state.issued_total = Counter("ssh_credentials_issued_total", "SSH credentials issued", labelnames=("key_type",), registry=registry)
    app.state.errors_total = Counter("ssh_credential_errors_total", "SSH credential issuance failures", labelnames=("error",), registry=registry)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        status = 500
        http_req_in_flight.inc()
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers["X-Request-Id"] = request_id
            response.headers["X-Correlation-Id"] = correlation_id
            trace_id_hex = None
            ctx = trace.get_current_span().get_span_context()
            if ctx and ctx.trace_id:
                trace_id_hex = format(ctx.trace_id, "032x")
                response.headers["X-Trace-Id"] = trace_id_hex
            return response
        finally:
            http_req_in_flight.dec()
            dur = time.time() - start
            route = request.scope.get("route").path if request.scope.get("route") else request.url.path
            http_req_hist.labels(request.method, route, str(status)).observe(dur)
            http_req_count.labels(request.method, route, str(status)).inc()
            req_logger.info(
                "request",
                extra={
                    "extra": {
                        "request_id": request_id,
                        "correlation_id": correlation_id,
                        "client": getattr(request.client, "host", "-"),
                        "method": request.method,
                        "path": route,
                        "status": status,
                        "duration_ms": int(dur * 1000),
                    }
                },
            )

    @app.exception_handler(RequestError)
    async def handle_request_error(request: Request, exc: RequestError):
        app.state.errors_total.labels(exc.code).inc()
        return JSONResponse(status_code=400, content={"detail": exc.message, "error": exc.code})

    @app.exception_handler(InternalError)
    async def handle_internal_error(request: Request, exc: InternalError):
        app.state.errors_total.labels(exc.code).inc()
        err_logger.error(
            "internal_error",
            extra={"extra": {"error": exc.code, "detail": exc.message, "path": request.url.path, "request_id": request.headers.get("x-request-id")}},
        )
        return JSONResponse(status_code=500, content={"detail": "internal error", "error": exc.code})

    @app.exception_handler(hvac.exceptions.Forbidden)
    async def handle_vault_forbidden(request: Request, exc: hvac.exceptions.Forbidden):
        return JSONResponse(status_code=403, content={"detail": "Forbidden by Vault policy", "error": "forbidden"})

    @app.exception_handler(hvac.exceptions.VaultError)
    async def handle_vault_error(request: Request, exc: hvac.exceptions.VaultError):
        return JSONResponse(status_code=502, content={"detail": "Vault error", "error": "vault_error"})

    @app.get("/metrics")
    async def metrics():
        return FastAPIResponse(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    app.include_router(health_router)
    app.include_router(creds_router)

    # OTel (optional)
    try:
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        return app

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: os.environ.get("OTEL_SERVICE_NAME", "vault-ssh")}))
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor().instrument_app(app)
    return app
