from .setup_logging import setup_logging
from .std_logging_config import LoggingQueueListener, StdLoggingConfig, build_logging_config, mask_credentials

__all__ = ["LoggingQueueListener", "StdLoggingConfig", "build_logging_config", "mask_credentials", "setup_logging"]
