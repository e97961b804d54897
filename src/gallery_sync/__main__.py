"""Run the gallery sync service: ``python -m gallery_sync``."""
import uvicorn

from gallery_sync.config import get_settings
from gallery_sync.main import create_app
from gallery_sync.telemetry import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
