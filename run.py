#!/usr/bin/env python3
"""
MiniBank Entry Point

Starts the FastAPI server with the engine loaded from the configured data
directory.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import uvicorn

from minibank.api import create_app
from minibank.bank import Bank
from minibank.config import get_config
from minibank.logging_config import setup_logging


def run_server(host: str, port: int):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    app = create_app(Bank(config))
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    config = get_config()
    print("🏦 Starting MiniBank...")
    print(f"📁 Data directory: {config.data_dir}")
    print(f"💰 Minimum balance: {config.minimum_balance}")
    print(f"🌐 API available at: http://{config.api_host}:{config.api_port}")
    print(f"📚 Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\n👋 Shutting down MiniBank...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
