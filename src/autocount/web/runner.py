"""Uvicorn server runner with custom configuration."""

import structlog
import uvicorn
from uvicorn.config import LOGGING_CONFIG

from autocount.app import App
from autocount.config import Config
from autocount.web.server import create_fastapi_app

logger = structlog.get_logger(__name__)


def run_server(app: App, config: Config) -> None:
    """Run the admin API under Uvicorn with compact access log lines."""
    fastapi_app = create_fastapi_app(app, config)

    # Shorter uvicorn formats; application events go through structlog
    log_config = LOGGING_CONFIG.copy()
    log_config["formatters"]["access"]["fmt"] = '%(asctime)s - "%(request_line)s" %(status_code)s'
    log_config["formatters"]["default"]["fmt"] = "%(asctime)s - %(levelname)s - %(message)s"

    logger.info(
        "server_starting",
        host=config.host,
        port=config.port,
        collection=config.counters_collection,
        bindings=len(config.bindings),
    )
    uvicorn.run(fastapi_app, host=config.host, port=config.port, log_config=log_config, access_log=True)
