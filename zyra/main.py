"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Ensure zyra/ is on sys.path for absolute imports
_zyra_dir = str(Path(__file__).resolve().parent)
if _zyra_dir not in sys.path:  # pragma: no cover
    sys.path.insert(0, _zyra_dir)

try:
    __version__ = (Path(__file__).resolve().parent.parent / "VERSION").read_text().strip()
except Exception:  # pragma: no cover
    __version__ = "0.0.0-dev"

import redis as redis_lib
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from api import api_router
from config import settings
from database import SessionLocal, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from logging_config import setup_logging
    setup_logging("Server")

    try:
        init_db()
    except Exception:
        logger.exception("Failed to initialise database tables on startup")

    yield


app = FastAPI(title="ZYRA Activity API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.CORS_ALLOW_ALL_ORIGINS else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
def health():
    """Liveness with Redis and database checks."""
    redis_ok = False
    try:
        r = redis_lib.from_url(settings.REDIS_URL)
        try:
            redis_ok = bool(r.ping())
        finally:
            r.close()
    except Exception:
        logger.warning("Health check: Redis unreachable", exc_info=True)

    db_ok = False
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)

    return {
        "status": "ok" if redis_ok and db_ok else "degraded",
        "redis": redis_ok,
        "database": db_ok,
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True, log_config=None)
