"""Development launcher for Uvicorn that ensures logging is configured before reload workers start."""

from __future__ import annotations

import uvicorn

from common.core.config_service import get_env_file_path, load_settings
from common.logging.setup_logging import setup_logging


def main() -> None:
    """Configure logging and delegate to uvicorn.run with auto-reload."""
    # Load environment variables BEFORE setting up logging
    settings = load_settings(get_env_file_path())
    setup_logging(level=settings.log_level, service_name=settings.service_name, sql_echo=settings.postgres.debug)
    uvicorn.run(
        "app.main:create_app_from_env",
        factory=True,
        host=settings.http.host,
        port=settings.http.port,
        log_config=None,
        reload=True,
        reload_dirs=[".", "../libs"],  # Watch current dir (backend) and libs
    )


if __name__ == "__main__":
    main()
