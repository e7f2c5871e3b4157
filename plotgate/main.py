import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import settings
from .db import Base, engine
from .errors import register_exception_handlers
from .logging import RequestIdMiddleware, setup_logging
from .models import models  # noqa: F401  registers tables on Base.metadata
from .auth.router import router as auth_router
from .routes.visits import router as visits_router
from .routes.qr import router as qr_router
from .routes.tasks import router as tasks_router
from .routes.leaves import router as leaves_router
from .routes.maintenance import router as maintenance_router
from .routes.users import router as users_router


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    # Ensure local SQLite directory exists
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs("var", exist_ok=True)
    if settings.auto_create_db:
        Base.metadata.create_all(bind=engine)
    logger.info("startup", environment=settings.environment, maintenance=settings.maintenance_mode)
    yield


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name, lifespan=_lifespan)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(visits_router)
    app.include_router(qr_router)
    app.include_router(tasks_router)
    app.include_router(leaves_router)
    app.include_router(maintenance_router)
    app.include_router(users_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "maintenance": settings.maintenance_mode}

    # Metrics
    if settings.enable_metrics:
        Instrumentator().instrument(app).expose(app)

    return app


app = create_app()
