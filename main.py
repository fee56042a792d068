#!/usr/bin/env python3
"""
Entry point for the Resource API. Runs the FastAPI app with uvicorn.
"""
import logging
import os
import sys

from dotenv import load_dotenv

# PORT and LOG_LEVEL are read before Settings loads .env itself
load_dotenv()

logger = logging.getLogger(__name__)

def main():
    """Main entry point for the application"""
    try:
        from resource_api.server import app

        import uvicorn

        port = int(os.environ.get("PORT", 8080))
        logger.info(f"Starting server on port {port}")

        uvicorn.run(
            app,
            host="0.0.0.0",
            port=port,
            log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        )

    except Exception as e:
        logger.error(f"Error starting application: {e}", exc_info=True)
        sys.exit(1)

if __name__ == "__main__":
    main()
