from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from hercules.config.settings import settings
from hercules.core.logger import setup_logger
from hercules.db.session import init_db
from hercules.schedule.api import router as schedule_router

setup_logger(level=settings.log_level, log_file=settings.log_file)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Ensure tables exist before serving.

    Note: FastAPI requires async for lifespan context manager,
    even if no await operations are used.
    """
    logger.info("Ensuring database tables exist")
    init_db()
    yield


app = FastAPI(title="Hercules Schedule", lifespan=lifespan)
app.include_router(schedule_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
