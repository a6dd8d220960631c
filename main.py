import argparse
import logging

import uvicorn

from tabkeeper.config import get_settings
from tabkeeper.config_loader import load_config
from tabkeeper.factory import create_app

logger = logging.getLogger(__name__)


def parse_args(settings):
    parser = argparse.ArgumentParser(description="TabKeeper companion service for the browser extension")
    parser.add_argument("--host", type=str, default=settings.HOST, help="IP address to bind to")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Port to listen on")
    parser.add_argument("--log-level", type=str, default=settings.LOG_LEVEL, help="Logging level (DEBUG, INFO, ...)")
    return parser.parse_args()


def main():
    load_config()
    settings = get_settings()
    args = parse_args(settings)

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_app(settings)
    logger.info(f"Listening on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
