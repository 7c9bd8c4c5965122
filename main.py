"""Entry point — serve the automation API."""

import uvicorn

from core.config import ServiceConfig
from core.logging_config import setup_logging


def main():
    config = ServiceConfig.from_env()
    setup_logging(config.log_level, json_output=config.log_json)
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
