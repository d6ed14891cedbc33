from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from gachalog.core.config import settings
from gachalog.core.db import create_tables, engine
from gachalog.utils.exception_handlers import EXCEPTION_HANDLERS
from gachalog.utils.router_discovery import register_routers


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncGenerator[None, FastAPI]:
    await create_tables()
    logger.info(f"Gacha log API started (env={settings.env})")

    yield

    await engine.dispose()


app = FastAPI(
    title="Gacha Log API",
    lifespan=app_lifespan,
    servers=[{"url": "http://localhost:8080", "description": "Local server"}],
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


register_routers(app)

for exc_class, handler in EXCEPTION_HANDLERS.items():
    app.add_exception_handler(exc_class, handler)


@app.get("/")
async def healthz() -> str:
    return "OK"
