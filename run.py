#!/usr/bin/env python3
"""
Arisan Ledger Entry Point

Starts the FastAPI server with host, port and logging taken from the
ARISAN_* environment.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from arisan.api import run_server
from arisan.config import get_config
from arisan.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Arisan Ledger...")
    print(f"Storage: {config.storage_backend} ({config.database_path})")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Arisan Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
