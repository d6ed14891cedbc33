import uvicorn

from gachalog.core.config import settings
from gachalog.utils.logging import setup_logging

if __name__ == "__main__":
    setup_logging("gachalog.log")
    uvicorn.run(
        "gachalog.main:app",
        host="127.0.0.1",
        port=3011,
        reload=settings.is_dev,
        log_config=None,
        log_level=None,
    )
