"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module. Log calls take a short
snake_case event name plus keyword fields::

    logger.info("relay_connected", relay="wss://nos.lol", elapsed_s=0.21)
    # info nostrwiki.relay relay_connected relay=wss://nos.lol elapsed_s=0.21

Fields can be bound once with [Logger.bind()][nostrwiki.core.logger.Logger.bind]
so every line from a connection carries its relay URL without repeating it
at each call site.

The ``StructuredFormatter`` reads the fields from the ``structured_kv``
extra attribute. Installed on the root handler by
[setup_logging()][nostrwiki.core.logger.setup_logging], it also formats
plain ``logging.getLogger()`` records from the models layer consistently.
"""

import datetime
import json
import logging
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated; values containing
    whitespace, equals signs, or quotes are escaped and double-quoted.

    Returns:
        Formatted string such as ``' relay=wss://nos.lol reason="timed out"'``,
        or ``""`` when *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = str(v)
        if max_value_length and len(s) > max_value_length:
            s = s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats every record as ``level name message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as fields.

    Examples:
        ```python
        logger = Logger("nostrwiki.relay")
        relay_logger = logger.bind(relay="wss://nos.lol")
        relay_logger.debug("frame_received", kind="EOSE")
        # debug nostrwiki.relay frame_received relay=wss://nos.lol kind=EOSE
        ```
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Name passed to ``logging.getLogger``.
            json_output: Emit JSON objects instead of key=value pairs.
            max_value_length: Per-value truncation limit (default 1000).
            context: Fields prepended to every record.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> "Logger":
        """Return a logger for the same name with extra fixed fields."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _truncate(self, value: Any) -> Any:
        s = str(value)
        if self._max_value_length and len(s) > self._max_value_length:
            return s[: self._max_value_length] + (
                f"...<truncated {len(s) - self._max_value_length} chars>"
            )
        return value

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {k: self._truncate(v) for k, v in {**self._context, **kwargs}.items()}
        if self._json_output:
            record = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "logger": self._logger.name,
                "message": msg,
                **fields,
            }
            self._logger.log(level, json.dumps(record, default=str), exc_info=exc_info)
        else:
            extra = {"structured_kv": fields} if fields else {}
            self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


def setup_logging(level: str = "INFO") -> None:
    """Install ``StructuredFormatter`` on a root stream handler.

    Args:
        level: Level name (``DEBUG``, ``INFO``, ``WARNING``, ``ERROR``).
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper()))
