from __future__ import annotations

import logging

import uvicorn

from .app import create_app
from .config import RelaySettings


def main() -> None:
    settings = RelaySettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    logging.getLogger(__name__).info("Relay listening on ws://%s:%d/ws", settings.host, settings.port)
    # uvicorn exits the process if the port cannot be bound.
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
