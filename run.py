#!/usr/bin/env python3
"""
Run the Barter Match Engine web server.
"""

import logging

import uvicorn

from utils.config import Config


def main():
    """Start the web server."""
    config = Config.load()

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting Barter Match Engine on http://{config.host}:{config.port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "web.app:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
