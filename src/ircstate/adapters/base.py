"""Base adapter: a long-running connection owned by the entrypoint."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AdapterBase(ABC):
    """Thin base for adapters started and stopped by the entrypoint."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier (e.g. 'irc:libera')."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the adapter (create state, begin connecting)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the adapter (disconnect, cleanup)."""
        ...
