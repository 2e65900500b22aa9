import sys
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

from loguru import logger

CHANNEL_MODULES = ("report_ui_bridge.channel",)


def module_filter(modules: list[str] | tuple[str, ...] | None) -> Callable[[dict], bool] | None:
    """loguru filter keeping records whose module name starts with one of the given prefixes."""
    if not modules:
        return None
    prefixes = tuple(modules)

    def _filter(record: dict) -> bool:
        return (record["name"] or "").startswith(prefixes)

    return _filter


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class _ScopedConsumer:
    def __init__(self, modules: list[str] | None = None):
        self._modules = list(modules or [])

    def _scope(self) -> str:
        return f", {'/'.join(self._modules)}" if self._modules else ""


class ConsoleLogConsumer(_ScopedConsumer):
    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            filter=module_filter(self._modules),
            format="<green>{time:HH:mm:ss.SSS}</green> <level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level}{self._scope()})"


class FileLogConsumer(_ScopedConsumer):
    def __init__(
        self,
        path: str = "logs/ui-bridge.log",
        rotation: str = "10 MB",
        retention: int = 5,
        modules: list[str] | None = None,
    ):
        super().__init__(modules)
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        # enqueue: socket handlers and cleanup tasks log from the event loop
        logger.add(
            self._path,
            level=level,
            filter=module_filter(self._modules),
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level}{self._scope()})"


class ChannelLogConsumer(FileLogConsumer):
    """Wire-level trace of room joins, sequencing and emits, kept apart from the main log."""

    def __init__(self, path: str = "logs/channel.log", rotation: str = "10 MB", retention: int = 2):
        super().__init__(path, rotation, retention, modules=list(CHANNEL_MODULES))


class JsonLogConsumer(_ScopedConsumer):
    """One JSON record per line, for log shippers."""

    def __init__(self, path: str = "logs/ui-bridge.jsonl", rotation: str = "50 MB", modules: list[str] | None = None):
        super().__init__(modules)
        self._path = path
        self._rotation = rotation

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            filter=module_filter(self._modules),
            serialize=True,
            rotation=self._rotation,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"json ({self._path}, {level}{self._scope()})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "channel": ChannelLogConsumer,
    "json": JsonLogConsumer,
}

_DEFAULT_CONSUMERS = [
    {"type": "console"},
    {"type": "file"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace all loguru sinks with the configured consumers.

    Each entry of ``consumers`` is a ``LogConsumers`` item from config.json:
    ``type`` picks the consumer, ``level`` overrides the default level and the
    remaining keys go to the consumer (``path``, ``rotation``, ``modules``...).
    Returns a description of every registered consumer for the startup banner.
    """
    logger.remove()

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []

    for config in consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        sink_level = config.get("level", level)
        try:
            consumer = cls(**{k: v for k, v in config.items() if k not in ("type", "level")})
        except TypeError as ex:
            logger.warning(f"Invalid options for log consumer {sink_type!r}: {ex}")
            continue

        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
