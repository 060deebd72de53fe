#!/usr/bin/env python3
"""
Asset Finance Back Office Entry Point

Starts the FastAPI server with the loan lifecycle and repayment engine.
"""

import sys

import uvicorn

from asset_finance.config import get_config
from asset_finance.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Asset Finance Back Office...")
    print(f"Database: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(
            "asset_finance.api:create_app",
            factory=True,
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\nShutting down Asset Finance Back Office...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
