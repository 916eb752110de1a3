"""Uvicorn entry point: ``python main.py`` or ``uvicorn main:app``"""

from app import create_app
from core.config import get_settings

app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
