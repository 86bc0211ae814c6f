#!/usr/bin/env python3
"""
Script to run the library API server.
"""

import uvicorn

from library_api.config import APIConfig


def main():
    """Run the API server."""
    config = APIConfig()
    print("Starting Library Catalogue API Server")
    print(f"Host: {config.host}")
    print(f"Port: {config.port}")
    print(f"Environment: {config.environment}")
    print(f"Database: {config.mongodb_database}")
    print("=" * 50)

    uvicorn.run(
        "library_api.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
        access_log=False
    )


if __name__ == "__main__":
    main()
