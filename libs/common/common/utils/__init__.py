from .json_model import ImmutableJsonModel, JsonModel
from .utils import (
    blocking_run_async,
    deep_merge,
    format_duration,
    get_logger,
    get_now,
    is_dict,
    latency_buckets_10s,
    parse_duration,
)

__all__ = [
    "ImmutableJsonModel",
    "JsonModel",
    "blocking_run_async",
    "deep_merge",
    "format_duration",
    "get_logger",
    "get_now",
    "is_dict",
    "latency_buckets_10s",
    "parse_duration",
]
