"""Single-assignment result cell for the scan outcome."""

from __future__ import annotations

from typing import Optional


class OutcomeLatch:
    """Holds the one scan result a scanner may deliver.

    ``claim()`` is the only way to write it. Checking and setting happen in
    one synchronous call, so two handlers running on the same event loop can
    never both win.
    """

    __slots__ = ("_value", "_source")

    def __init__(self) -> None:
        self._value: Optional[str] = None
        self._source: Optional[str] = None

    def claim(self, value: str, *, source: str = "unknown") -> bool:
        """Store ``value`` if unclaimed; return True only for the winning caller."""
        if self._source is not None:
            return False
        self._value = value
        self._source = source
        return True

    @property
    def claimed(self) -> bool:
        return self._source is not None

    @property
    def value(self) -> Optional[str]:
        return self._value

    @property
    def source(self) -> Optional[str]:
        return self._source

    def __repr__(self) -> str:
        if not self.claimed:
            return "OutcomeLatch(unclaimed)"
        return f"OutcomeLatch(value={self._value!r}, source={self._source!r})"


__all__ = ["OutcomeLatch"]
