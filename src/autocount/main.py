"""Application entry point for the autocount admin server."""

from autocount.app import App
from autocount.config import Config
from autocount.logging import setup_logging
from autocount.web.runner import run_server


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
