#!/usr/bin/env python3
"""
Development server runner for the text-to-SQL API.

Loads .env from the project root, then starts uvicorn with hot reloading.
Run after `pip install -e .`.
"""

from pathlib import Path

from dotenv import load_dotenv

project_root = Path(__file__).parent.parent
src_path = project_root / "src"

env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)
    print(f"Loaded environment variables from {env_file}")
else:
    print(f"No .env file found at {env_file}")
    print("  Copy .env.example to .env and fill in the required values")


if __name__ == "__main__":
    import uvicorn
    from text2sql.config import get_settings

    settings = get_settings()
    server_config = settings.server

    print("Starting text-to-SQL API development server...")
    print(f"API Documentation: http://{server_config.host}:{server_config.port}/docs")
    print(f"Health Check: http://{server_config.host}:{server_config.port}/health")
    print(f"Target database: {settings.database.provider.value}")
    print()

    uvicorn.run(
        server_config.app_module,
        host=server_config.host,
        port=server_config.port,
        reload=server_config.reload,
        workers=server_config.workers,
        reload_dirs=[str(src_path)],
        log_config=None,  # structlog handles formatting
        access_log=False,  # access logging is done by middleware
    )
