"""Command line entry point: ``todolist app start`` and ``todolist db ...``."""

import os

import typer

from app.server import start
from common.commands.db_commands import app as db_app
from common.core.app_error import AppException
from common.core.config_service import get_env_file_path, load_env_file
from common.logging import setup_logging
from common.utils.utils import get_logger

logger = get_logger(__name__)

cli = typer.Typer(name="todolist", help="A simple todo app", no_args_is_help=True)
app_cli = typer.Typer(help="Run the service", no_args_is_help=True)

cli.add_typer(app_cli, name="app")
cli.add_typer(db_app, name="db")


@app_cli.command("start")
def start_command() -> None:
    """Start application."""
    start()


def main() -> None:
    # Load environment variables BEFORE setting up logging
    load_env_file(get_env_file_path())
    setup_logging(
        level=os.getenv("LOG_LEVEL"),
        service_name=os.getenv("SERVICE_NAME", "todolist"),
        sql_echo=os.getenv("POSTGRES_DEBUG", "false").lower() in {"true", "1", "t", "yes"},
    )
    try:
        cli(standalone_mode=True)
    except AppException as e:
        logger.critical(e.details.message, error=e.details)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
