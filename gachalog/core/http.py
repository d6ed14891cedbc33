from collections.abc import AsyncGenerator

import httpx

from gachalog.core.config import settings


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        yield client
