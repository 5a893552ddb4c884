import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from voteboard.config import settings
from voteboard.database import Base, SessionLocal, engine
from voteboard.engine import close_redis_store
from voteboard.routes.articles import router
from voteboard.store import StoreUnavailable
from voteboard.sweeper import ExpirySweeper

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    task = None
    if settings.store_backend == "sql":
        logger.info("Creating database tables if they don't exist...")
        Base.metadata.create_all(bind=engine)

        logger.info("Starting background expiry sweeper...")
        sweeper = ExpirySweeper(settings.sweep_interval_seconds)
        task = asyncio.create_task(sweeper.run(SessionLocal))
    else:
        logger.info(f"Using Redis store at {settings.redis_url}")

    yield

    # --- Shutdown ---
    if task is not None:
        logger.info("Shutting down expiry sweeper...")
        task.cancel()
    if settings.store_backend == "redis":
        logger.info("Closing Redis connections...")
        close_redis_store()


app = FastAPI(
    title="Voteboard API",
    description="Vote-weighted article ranking with per-group views.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"[{request.url.path}] Store unavailable: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Backing store unavailable"})
