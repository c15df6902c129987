# chartier/main.py: app, router mounting, CORS, error envelopes

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chartier.core.settings import settings
from chartier.errors import register_exception_handlers
from chartier.infra import cache
from chartier.scheduler import start_jobs, stop_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
for noisy in ("sqlalchemy", "httpx", "httpcore"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

log = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_jobs()
    try:
        yield
    finally:
        stop_jobs()
        await cache.close()


app = FastAPI(
    title="Chartier API",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
    lifespan=lifespan,
)

# ───────────────── CORS ─────────────────
# Bearer tokens, not cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Single API namespace prefix
api = APIRouter(prefix="/api")


def _include(router_import: str, attr: str = "router", *, name_hint: str = "") -> None:
    """
    Import a router lazily and include it.
    A broken router is logged with its full traceback instead of taking the app down.
    """
    label = name_hint or router_import
    try:
        mod = __import__(router_import, fromlist=[attr])
        router = getattr(mod, attr)
        api.include_router(router)
        log.info("Mounted router: %s (prefix=%s)", label, getattr(router, "prefix", ""))
    except (ImportError, AttributeError) as e:
        log.error("FAILED to mount router: %s (%s)", label, router_import)
        log.error("Reason: %r", e)
        log.error("Traceback:\n%s", traceback.format_exc())


# ───────────────── Mount routers ─────────────────
_include("chartier.routes.health", name_hint="health")
_include("chartier.routes.auth", name_hint="auth")
_include("chartier.routes.characters", name_hint="characters")
_include("chartier.routes.search", name_hint="search")
_include("chartier.routes.users", name_hint="users")

# Attach /api router once
app.include_router(api)
