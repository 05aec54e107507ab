import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.exceptions import register_exception_handlers
from .api.routes import router as transfer_router
from .core.config import get_settings
from .core.dependencies import close_http_client, get_session_registry

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("dashboard.startup", extra={"authority": settings.api_base_url})
    yield
    registry = get_session_registry()
    logger.info("dashboard.shutdown", extra={"open_sessions": len(registry)})
    registry.close_all()
    await close_http_client()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(transfer_router)
register_exception_handlers(app)


@app.get("/health")
async def read_health() -> dict[str, str]:
    return {"status": "ok"}
