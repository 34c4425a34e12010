"""
Typed config variables.

A ConfigVar is a process-wide setting bound to one field of a config
resource. Handlers apply a config resource's data to their declared vars
with ``apply_vars``; everything else only reads them.
"""
import logging
import re
import threading
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


class ConfigKind(str, Enum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _parse_string(raw: str) -> str:
    # An empty value never overrides the current one
    if raw == "":
        raise ValueError("empty string")
    return raw


def _parse_int(raw: str) -> int:
    if not _INT_PATTERN.fullmatch(raw):
        raise ValueError(f"invalid integer {raw!r}")
    return int(raw)


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ValueError(f"invalid boolean {raw!r}")


_PARSERS: Dict[ConfigKind, Callable[[str], Any]] = {
    ConfigKind.STRING: _parse_string,
    ConfigKind.INT: _parse_int,
    ConfigKind.BOOL: _parse_bool,
}

_ZERO: Dict[ConfigKind, Any] = {
    ConfigKind.STRING: "",
    ConfigKind.INT: 0,
    ConfigKind.BOOL: False,
}


class ConfigVar:
    """
    A typed, lock-protected setting bound to ``field``.

    ``default`` is applied when the field is missing from the config data;
    with no default, a missing field leaves the current value alone.
    """

    def __init__(self, field: str, kind: ConfigKind, default: Optional[Any] = None, description: str = ""):
        self.field = field
        self.kind = kind
        self.default = default
        self.description = description
        self._lock = threading.Lock()
        self._value = self.initial

    @property
    def initial(self) -> Any:
        """Value before any config is applied: the default, else the kind's zero value."""
        return _ZERO[self.kind] if self.default is None else self.default

    def get(self) -> Any:
        with self._lock:
            return self._value

    def set(self, value: Any) -> None:
        with self._lock:
            self._value = value

    def reset(self) -> None:
        self.set(self.initial)

    def apply(self, data: Mapping[str, str]) -> bool:
        """
        Apply this var's field from ``data``.

        Returns:
            True if the value was written (default or parsed value)
        """
        if self.field not in data:
            if self.default is None:
                return False
            self.set(self.default)
            return True

        raw = data[self.field]
        try:
            value = _PARSERS[self.kind](raw)
        except ValueError as e:
            if raw != "":
                logger.warning(f"Skipping config field {self.field}: {e}")
            return False
        self.set(value)
        return True

    def __repr__(self) -> str:
        return f"ConfigVar(field={self.field!r}, kind={self.kind.value}, value={self.get()!r})"


def apply_vars(data: Mapping[str, str], variables: Iterable[ConfigVar]) -> None:
    """Apply every var in ``variables`` from ``data``. Malformed values are skipped."""
    for var in variables:
        var.apply(data)
