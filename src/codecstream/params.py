"""Parameter strings for codec configuration.

A parameter string is a flat ``key=value`` list separated by ``;``::

    >>> params = ParameterSet.parse("level=1;block_mode=linked")
    >>> params.get_int("level", 3)
    1

Values that need to carry ``;`` or ``=`` are written with the ``%%:``
prefix followed by a percent-encoded payload::

    >>> ParameterSet.parse("key=%%:%3B%3B%3B")["key"]
    ';;;'

Parsing is tolerant: blank tokens and tokens without ``=`` are skipped.
Typed accessors never raise; a missing or unparseable value yields the
caller's default.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any, Callable, TypeVar, Union
from urllib.parse import quote, unquote

from codecstream.base import CompressionConfigError, ParameterDecodeError

T = TypeVar("T")

ESCAPE_PREFIX = "%%:"
TOKEN_SEPARATOR = ";"
KEY_VALUE_SEPARATOR = "="

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")

# int() and float() also take "1_000", " 3" and non-ASCII digits
_NUMBER_LITERALS = {
    int: re.compile(r"[+-]?[0-9]+"),
    float: re.compile(
        r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|[+-]?(?:inf|infinity|nan)",
        re.IGNORECASE,
    ),
}

ParameterSetLike = Union["ParameterSet", Mapping[str, Any], str, None]


class ParameterSet(Mapping[str, str]):
    """Immutable mapping of codec parameter names to raw string values."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values = MappingProxyType(
            {str(k): str(v) for k, v in (values or {}).items()}
        )

    @classmethod
    def parse(cls, text: str) -> "ParameterSet":
        """Parse a parameter string.

        Raises:
            ParameterDecodeError: If a ``%%:`` value is not valid UTF-8
                once percent-decoded.
        """
        values: dict[str, str] = {}
        for token in text.split(TOKEN_SEPARATOR):
            if not token.strip():
                continue
            key, sep, value = token.partition(KEY_VALUE_SEPARATOR)
            if not sep:
                continue
            key = key.strip()
            value = value.strip()
            if value.startswith(ESCAPE_PREFIX):
                encoded = value[len(ESCAPE_PREFIX):]
                try:
                    value = unquote(encoded, encoding="utf-8", errors="strict")
                except UnicodeDecodeError as e:
                    raise ParameterDecodeError(key, value) from e
            values[key] = value
        return cls(values)

    @classmethod
    def from_value(cls, value: ParameterSetLike) -> "ParameterSet":
        """Coerce a parameter string, mapping or ``None`` into a ParameterSet."""
        if isinstance(value, ParameterSet):
            return value
        if value is None:
            return cls()
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, Mapping):
            return cls(value)
        raise CompressionConfigError(
            f"Cannot build parameters from {type(value).__name__}"
        )

    # Mapping protocol

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._values) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._values.items()))

    def __repr__(self) -> str:
        return f"ParameterSet({dict(self._values)!r})"

    # Typed accessors

    def get_string(self, key: str, default: str) -> str:
        """Return the stored value, or ``default`` when absent."""
        return self._values.get(key, default)

    def get_bool(self, key: str, default: bool) -> bool:
        """Return a boolean parameter.

        ``true``/``1``/``yes``/``on`` and ``false``/``0``/``no``/``off`` are
        recognized in any case. Anything else, including an empty value,
        yields ``default``.
        """
        value = self._values.get(key, "").strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        return default

    def get_parsed(
        self,
        key: str,
        default: T,
        parser: Callable[[str], T] | None = None,
    ) -> T:
        """Return ``parser(value)``, or ``default`` if absent or unparseable.

        ``parser`` defaults to the type of ``default``, so ``int``, ``float``
        and any type constructible from a string work without extra
        arguments. ``int`` and ``float`` only accept plain ASCII literals
        such as ``-12``, ``0.5`` or ``1e3``.
        """
        if parser is None:
            if isinstance(default, bool):
                return self.get_bool(key, default)  # type: ignore[return-value]
            parser = type(default)
        value = self._values.get(key, "")
        if value == "":
            return default
        if parser is int or parser is float:
            if not _NUMBER_LITERALS[parser].fullmatch(value):
                return default
        try:
            return parser(value)
        except (TypeError, ValueError, ArithmeticError):
            return default

    def get_int(self, key: str, default: int) -> int:
        return self.get_parsed(key, default, int)

    def get_float(self, key: str, default: float) -> float:
        return self.get_parsed(key, default, float)

    # Serialization

    def to_string(self) -> str:
        """Serialize to a parameter string that parses back to ``self``.

        Raises:
            CompressionConfigError: If a key cannot be represented.
        """
        tokens = []
        for key, value in self._values.items():
            if (
                TOKEN_SEPARATOR in key
                or KEY_VALUE_SEPARATOR in key
                or key != key.strip()
            ):
                raise CompressionConfigError(
                    f"Parameter name {key!r} cannot be written as a parameter string"
                )
            if _needs_escape(value):
                value = ESCAPE_PREFIX + quote(value, safe="")
            tokens.append(f"{key}{KEY_VALUE_SEPARATOR}{value}")
        return TOKEN_SEPARATOR.join(tokens)

    def __str__(self) -> str:
        return self.to_string()


def _needs_escape(value: str) -> bool:
    return (
        TOKEN_SEPARATOR in value
        or KEY_VALUE_SEPARATOR in value
        or value.startswith(ESCAPE_PREFIX)
        or value != value.strip()
    )
