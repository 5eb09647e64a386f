from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api_routers.v1 import api_router
from app.features.audit.models import audit as audit_models  # noqa: F401  registers tables
from app.middlewares.security_headers import SecurityHeadersMiddleware
from app.platform.config import settings
from app.platform.db.base import Base
from app.platform.db.session import engine
from app.platform.exceptions import add_exception_handlers
from app.platform.logger import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Website audits: performance, SEO, security and RGPD checks with PDF and email reports",
    version="1.0.0",
    lifespan=lifespan,
)

add_exception_handlers(app)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": settings.APP_NAME,
        "description": "Hybrid website audit service (fast and complete modes).",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": settings.API_PREFIX,
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, api_prefix=settings.API_PREFIX)

app.include_router(api_router, prefix=settings.API_PREFIX)
