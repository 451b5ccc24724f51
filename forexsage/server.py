# server.py
import logging

import click
import uvicorn

from forexsage.app import create_app
from forexsage.config import Settings


@click.command()
@click.option("--host", "host", default=None, help="Defaults to $HOST or localhost.")
@click.option("--port", "port", default=None, type=int, help="Defaults to $PORT or 10001.")
@click.option(
    "--log-level",
    "log_level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
)
def main(host, port, log_level: str) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
