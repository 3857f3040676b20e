import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rade_bot.src.config.logging_config import setup_logging
from rade_bot.src.config.settings import get_settings
from rade_bot.src.core.app_state import app_state, build_app_state

from .src.routers.routers import api_router

setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    build_app_state(get_settings(), app_state)
    yield
    await app_state.backend.close()
    logger.info("RADE assistant stopped")


app = FastAPI(title="RADE Assistant", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
