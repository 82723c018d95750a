import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from printmeta.core.config import settings
from printmeta.routers import extraction, tips, vision

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"{settings.PROJECT_NAME} starting ({settings.ENVIRONMENT}), "
        f"upload ceiling {settings.MAX_UPLOAD_MB}MB, "
        f"vision fallback {'enabled' if settings.OPENAI_API_KEY else 'disabled'}"
    )
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Unified API Prefix: /api
app.include_router(extraction.router, prefix="/api")
app.include_router(vision.router, prefix="/api")
app.include_router(tips.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "ok", "project": settings.PROJECT_NAME}
