import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reelroom.config import settings
from reelroom.registry import close_backends
from reelroom.routes.sessions_api import router as sessions_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_backends()


app = FastAPI(title="Reelroom", lifespan=lifespan)

app.include_router(sessions_router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
