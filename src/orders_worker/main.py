"""Worker service entry point."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file before settings are read
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


def main():
    """Run the worker HTTP service (sync API, webhooks, scheduler)."""
    from orders_api.config.settings import settings

    uvicorn.run(
        "orders_worker.server.app:app",
        host=settings.host,
        port=settings.port,
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
