"""ASGI entry point: ``uvicorn clientdesk.main:app``."""

from clientdesk.app import create_app
from clientdesk.core.config import settings
from clientdesk.core.logging import setup_logging

setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("clientdesk.main:app", host=settings.HOST, port=settings.PORT)
