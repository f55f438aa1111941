from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import os
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.auth import router as auth_router
from .routers.profiles import router as profiles_router
from .routers.sessions import router as sessions_router
from .routers.ai import router as ai_router
from .routers.marketplace import router as marketplace_router, library_router
from .routers.admin import router as admin_router
from .routers.realtime import router as realtime_router
from ..infrastructure.tables import get_table_store
from ..observability.metrics import metrics_middleware_factory
from ..services.marketplace import seed_default_categories

load_dotenv()  # Load environment variables from .env if present (GEMINI_API_KEY, JWT_SECRET, etc.)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    seed_default_categories()
    yield


app = FastAPI(title="GuruChat API", version="0.1.0", lifespan=lifespan)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

_ROUTERS = (
    auth_router,
    profiles_router,
    sessions_router,
    ai_router,
    marketplace_router,
    library_router,
    admin_router,
    realtime_router,
)

for _router in _ROUTERS:
    app.include_router(_router)

# Also expose the same routers under /api; the web client calls /api/ai/gemini-response
for _router in _ROUTERS:
    app.include_router(_router, prefix="/api")

_cors_env = os.getenv("GURUCHAT_CORS_ORIGINS", "")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_env.split(",") if o.strip()]
    or ["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong", "action": "reload"})


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "tables": type(get_table_store()).__name__,
        },
    }


@app.get("/")
def root():
    return {"name": "GuruChat API", "version": "0.1.0"}


@app.get("/health")
def health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/api")
def api_root():
    return {"name": "GuruChat API", "version": "0.1.0"}


@app.get("/api/health")
def api_health():
    return _health()


def run() -> None:
    """Serve the API with uvicorn; host and port come from GURUCHAT_HOST / GURUCHAT_PORT."""
    import uvicorn

    uvicorn.run(
        "src.guruchat.api.main:app",
        host=os.getenv("GURUCHAT_HOST", "127.0.0.1"),
        port=int(os.getenv("GURUCHAT_PORT", "8000")),
    )
