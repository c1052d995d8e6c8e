"""Parser for helm style `--set` value strings.

A value string is a comma separated list of `key=value` pairs. Keys are dotted
paths into a nested mapping and may index into lists, e.g.

```
replicas=2,image.tag=v1.2.3,ingress.hosts[0]=example.com
```

Commas, dots, equal signs and brackets may be escaped with a backslash.
Values `true`, `false` and `null` and integers are typed, everything else is
kept as a string.
"""

import logging
import re
from typing import Any

from .exceptions import BuildError

__all__ = [
    "parse",
    "parse_into",
]

_LOGGER = logging.getLogger(__name__)

_INDEX_RE = re.compile(r"^(?P<name>.*)\[(?P<index>\d+)\]$")
_INT_RE = re.compile(r"^(0|-?[1-9][0-9]*)$")

# Upper bound on list indexes to avoid allocating huge lists from bad input
MAX_INDEX = 65536


def _split_unescaped(value: str, sep: str) -> list[str]:
    """Split `value` on `sep` unless it is preceded by a backslash."""
    return re.split(rf"(?<!\\){re.escape(sep)}", value)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _typed_value(value: str) -> Any:
    """Convert a raw value the way helm does for `--set`."""
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if _INT_RE.match(value):
        return int(value)
    return value


def _set_list_item(items: list[Any], index: int, value: Any) -> None:
    if index > MAX_INDEX:
        raise BuildError(f"index of {index} is greater than maximum of {MAX_INDEX}")
    while len(items) <= index:
        items.append(None)
    items[index] = value


def _set_path(dest: dict[str, Any], key: str, value: Any) -> None:
    """Set `value` at the dotted path `key` within `dest`."""
    raw_parts = _split_unescaped(key, ".")
    if any(not part for part in raw_parts):
        raise BuildError(f"key '{key}' has an empty path segment")

    inner: Any = dest
    for i, raw_part in enumerate(raw_parts):
        last = i == len(raw_parts) - 1
        index: int | None = None
        if match := _INDEX_RE.match(raw_part):
            raw_part = match.group("name")
            index = int(match.group("index"))
        part = _unescape(raw_part)
        if not part:
            raise BuildError(f"key '{key}' has an empty path segment")

        if index is None:
            if last:
                inner[part] = value
                return
            child = inner.get(part)
            if child is None:
                child = inner[part] = {}
            elif not isinstance(child, dict):
                raise BuildError(
                    f"key '{key}' expected '{part}' to be a map, found {type(child).__name__}"
                )
            inner = child
            continue

        items = inner.get(part)
        if items is None:
            items = inner[part] = []
        elif not isinstance(items, list):
            raise BuildError(
                f"key '{key}' expected '{part}' to be a list, found {type(items).__name__}"
            )
        if last:
            _set_list_item(items, index, value)
            return
        child = items[index] if index < len(items) else None
        if child is None:
            child = {}
            _set_list_item(items, index, child)
        elif not isinstance(child, dict):
            raise BuildError(
                f"key '{key}' expected '{part}[{index}]' to be a map, found {type(child).__name__}"
            )
        inner = child


def parse_into(value: str, dest: dict[str, Any]) -> dict[str, Any]:
    """Parse a value string, merging the result into `dest`."""
    if not value or not value.strip():
        return dest
    for pair in _split_unescaped(value, ","):
        if not pair.strip():
            continue
        key_value = _split_unescaped(pair, "=")
        if len(key_value) < 2:
            raise BuildError(f"key '{_unescape(pair)}' has no value")
        key = key_value[0].strip()
        raw_value = "=".join(key_value[1:])
        if not key:
            raise BuildError(f"missing key in '{_unescape(pair)}'")
        _set_path(dest, key, _typed_value(_unescape(raw_value)))
    _LOGGER.debug("Parsed values %s", dest)
    return dest


def parse(value: str) -> dict[str, Any]:
    """Parse a value string into a new nested mapping."""
    return parse_into(value, {})
