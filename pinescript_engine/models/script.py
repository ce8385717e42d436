"""
Script version identifiers.

PineScript declares its language version with an in-text marker
(``//@version=5``). The engine supports v4, v5 and v6.
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class ScriptVersion(str, Enum):
    """Supported PineScript language versions."""

    V4 = "v4"
    V5 = "v5"
    V6 = "v6"

    @property
    def number(self) -> int:
        return int(self.value[1:])

    @classmethod
    def from_number(cls, number: int) -> "ScriptVersion":
        for version in cls:
            if version.number == number:
                return version
        raise ValueError(f"Unsupported PineScript version: {number}")

    @classmethod
    def parse(cls, value: Union[str, int, "ScriptVersion"]) -> "ScriptVersion":
        """
        Accept ``"v5"``, ``"5"``, ``5`` or a ``ScriptVersion``.

        Raises:
            ValueError: if the value does not name a supported version
        """
        if isinstance(value, ScriptVersion):
            return value
        if isinstance(value, int):
            return cls.from_number(value)

        text = str(value).strip().lower()
        if text.startswith("v"):
            text = text[1:]
        if not text.isdigit():
            raise ValueError(f"Unsupported PineScript version: {value!r}")
        return cls.from_number(int(text))
