"""FastAPI application wiring for SilentDrop.

This module bootstraps the HTTP API:

- Configures logging, CORS (optional for the admin dashboard), Prometheus
  metrics and rate limiting.
- Mounts the public intake routes (anonymous submission, status lookup and
  submitter replies), the admin dashboard routes and admin sign-in.
- Exposes health, version and frontend configuration endpoints.

Case storage and message classification are configured from the environment;
see :mod:`app.core.settings`.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.limits import limiter
from .core.settings import get_settings
from .core.tenant_middleware import TenantContextMiddleware
from .routers import admin_cases, auth_api, cases_api

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="SilentDrop", version=__version__)
init_logging(app)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(TenantContextMiddleware)
# Optional CORS for the admin dashboard
admin_ui_origins = os.getenv("ADMIN_UI_ORIGINS")
if admin_ui_origins:
    origins = [o.strip() for o in admin_ui_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.include_router(cases_api.router)
app.include_router(admin_cases.router)
app.include_router(auth_api.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }


@app.get("/api/config")
async def config():
    """Expose the settings the submission form needs to render itself."""
    settings = get_settings()
    return {
        "BRAND_NAME": settings.brand_name,
        "UPLOAD_MAX_SIZE": settings.upload_max_size,
        "UPLOAD_ALLOWED_MIME_TYPES": list(settings.upload_allowed_mime_types),
        "MAX_MESSAGE_LENGTH": settings.max_message_length,
    }
