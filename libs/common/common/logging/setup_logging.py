import logging
from logging.config import dictConfig
from typing import Any

import structlog

from common.logging.std_logging_config import StdLoggingConfig, build_logging_config
from common.utils.utils import deep_merge


def setup_logging(
    logging_config: dict[str, Any] | None = None,
    level: str | None = None,
    service_name: str | None = None,
    sql_echo: bool = False,
    json_format: bool | None = None,
) -> None:
    """Configure stdlib logging and structlog.

    Args:
        logging_config: Extra ``dictConfig`` entries merged over the common configuration.
        level: Root log level (``LOG_LEVEL``).
        service_name: Bound as ``service`` on every structlog event.
        sql_echo: Log every SQL statement (``POSTGRES_DEBUG``).
        json_format: Force JSON or console rendering instead of choosing by ``APP_ENV``.
    """
    overrides: dict[str, Any] = {}
    if level:
        overrides["root"] = {"level": level.upper()}
    if sql_echo:
        overrides["loggers"] = {"sqlalchemy.engine": {"level": "INFO"}}

    dictConfig(deep_merge(deep_merge(build_logging_config(json_format), overrides), logging_config or {}))

    structlog.configure(
        processors=StdLoggingConfig.structlog_processors,
        # `wrapper_class` is the bound logger that you get back from
        # get_logger(). This one imitates the API of `logging.Logger`.
        wrapper_class=structlog.stdlib.BoundLogger,
        # `logger_factory` is used to create wrapped loggers that are used for
        # OUTPUT. This one returns a `logging.Logger`.
        logger_factory=StdLoggingConfig.logger_factory,
        # Effectively freeze configuration after creating the first bound
        # logger.
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)

    logging.captureWarnings(True)
