"""IRC casemapping: canonical keys and a case-insensitive mapping."""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")

_RFC1459 = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ[]\\~", "abcdefghijklmnopqrstuvwxyz{}|^")
_STRICT_RFC1459 = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ[]\\", "abcdefghijklmnopqrstuvwxyz{}|")
_ASCII = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")

_TABLES = {
    "rfc1459": _RFC1459,
    "strict-rfc1459": _STRICT_RFC1459,
    "ascii": _ASCII,
}


def irc_lower(text: str, casemapping: str = "rfc1459") -> str:
    """Lowercase text per the server's CASEMAPPING. Only ASCII letters (and the
    rfc1459 bracket equivalents) fold; other unicode is case sensitive."""
    return text.translate(_TABLES.get(casemapping, _RFC1459))


@dataclass(frozen=True)
class IrcKey:
    """A name normalized once for identity comparison."""

    folded: str

    @classmethod
    def of(cls, name: str, casemapping: str = "rfc1459") -> IrcKey:
        return cls(irc_lower(name, casemapping))


class IrcDict(MutableMapping[str, V], Generic[V]):
    """Mapping keyed by IRC name; lookups fold case, iteration yields the
    most recently stored spelling."""

    def __init__(self, casemapping: str = "rfc1459") -> None:
        self._casemapping = casemapping
        self._data: dict[IrcKey, tuple[str, V]] = {}

    @property
    def casemapping(self) -> str:
        return self._casemapping

    def set_casemapping(self, casemapping: str) -> None:
        """Switch casemapping and refold existing keys (later entries win on clash)."""
        if casemapping == self._casemapping:
            return
        items = list(self._data.values())
        self._casemapping = casemapping
        self._data = {self.key(name): (name, value) for name, value in items}

    def key(self, name: str) -> IrcKey:
        return IrcKey.of(name, self._casemapping)

    def __getitem__(self, name: str) -> V:
        return self._data[self.key(name)][1]

    def __setitem__(self, name: str, value: V) -> None:
        self._data[self.key(name)] = (name, value)

    def __delitem__(self, name: str) -> None:
        del self._data[self.key(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.key(name) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter([name for name, _ in self._data.values()])

    def __len__(self) -> int:
        return len(self._data)

    def rename_key(self, old: str, new: str) -> None:
        """Move the value stored under old to new, keeping insertion order."""
        old_key = self.key(old)
        if old_key not in self._data:
            raise KeyError(old)
        value = self._data[old_key][1]
        new_key = self.key(new)
        self._data = {
            (new_key if k == old_key else k): ((new, value) if k == old_key else entry)
            for k, entry in self._data.items()
            if k != new_key or k == old_key
        }

    def same(self, a: str, b: str) -> bool:
        return self.key(a) == self.key(b)

    def __repr__(self) -> str:
        return f"IrcDict({dict(self.items())!r})"
