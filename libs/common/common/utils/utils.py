import asyncio
import re
import sys
from collections.abc import Coroutine
from datetime import UTC, datetime, timedelta
from threading import Thread
from typing import Any, TypeGuard, cast

import structlog


def is_dict(obj: Any) -> TypeGuard[dict[str, Any]]:
    return isinstance(obj, dict)


def get_now() -> datetime:
    return datetime.now(UTC)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if name is None:
        # Get the name of the module that called this function
        frame = sys._getframe(1)  # type: ignore  # 0 would be get_logger, 1 is the caller
        module_name = frame.f_globals["__name__"].rsplit(".", 1)[-1]
        name = module_name
    return structlog.stdlib.get_logger(name)


def blocking_run_async[T](coro: Coroutine[Any, Any, T], timeout: int | None = None) -> T:
    try:
        return asyncio.run(coro)
    except RuntimeError:
        pass

    future: asyncio.Future[T] = asyncio.Future()

    def run() -> None:
        try:
            future.set_result(asyncio.run(coro))
        except Exception as e:
            future.set_exception(e)

    thread = Thread(target=run, name=f"blocking_run_async__{coro.__name__}", daemon=True)
    thread.start()
    thread.join(timeout)

    return future.result(timeout)  # type: ignore


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_BARE_SECONDS = re.compile(_NUMBER)
_DURATION_PART = re.compile(rf"({_NUMBER})(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``"20s"``, ``"1m30s"`` or ``"250ms"``.

    Follows the usual ``<number><unit>`` sequence format (units ``ns``, ``us``,
    ``ms``, ``s``, ``m``, ``h``) with an optional leading sign. ``"0"`` and a
    bare number of seconds are accepted as well.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if _BARE_SECONDS.fullmatch(text):
        return _to_timedelta(sign * float(text), value)

    seconds = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        number, unit = match.groups()
        seconds += float(number) * _DURATION_UNITS[unit]
        position = match.end()

    if position == 0:
        raise ValueError(f"invalid duration {value!r}")

    return _to_timedelta(sign * seconds, value)


def _to_timedelta(seconds: float, value: str) -> timedelta:
    try:
        return timedelta(seconds=seconds)
    except OverflowError as e:
        raise ValueError(f"duration {value!r} out of range") from e


def format_duration(duration: timedelta) -> str:
    total_ms = int(duration.total_seconds() * 1000)
    if total_ms % 1000:
        return f"{total_ms}ms"
    seconds = total_ms // 1000
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return "".join(parts)


def deep_merge(base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary that will be updated
        update: Dictionary with values to update

    Returns:
        Updated dictionary with deeply merged values
    """
    merged = base.copy()

    for key, value in update.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], cast(dict[str, Any], value))
        else:
            merged[key] = value

    return merged


# fmt: off
latency_buckets_10s = [
    0.001, 0.002, 0.003, 0.004, 0.005, 0.006, 0.007, 0.008, 0.009, 0.01,  # 1-10ms
    0.015, 0.02, 0.025, 0.03, 0.035, 0.04, 0.045, 0.05, 0.06, 0.07, 0.08, 0.09, 0.1,  # 15-100ms
    0.125, 0.15, 0.175, 0.2, 0.225, 0.25, 0.275, 0.3, 0.35, 0.4, 0.45, 0.5, 0.6, 0.7, 0.8, 0.9,  # 125-900ms
    1.0, 1.2, 1.4, 1.6, 1.8, 2.0, 2.5, 3.0, 3.5, 4.0, 4.5, 5.0,  # 1-5s
    6.0, 7.0, 8.0, 9.0, 10.0,  # Extended range
]
# fmt: on
