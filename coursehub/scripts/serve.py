import logging

import uvicorn

from coursehub.config import get_settings, validate_runtime_config
from coursehub.main import create_app


def main():
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_runtime_config(settings)

    # uvicorn handles SIGINT/SIGTERM; open requests get the grace window
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
