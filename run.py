#!/usr/bin/env python3
"""
Finance Buddy API Entry Point

Starts the FastAPI server on the configured host and port.
"""

import sys

from finance_buddy.api import run_server
from finance_buddy.config import get_config
from finance_buddy.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Finance Buddy API...")
    print(f"Ledger file: {config.data_file}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Finance Buddy API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
