"""Job queue interface."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from media_jobs.jobs.models import QueueEntry

# Handler invoked once per attempt of a delivery
QueueHandler = Callable[[QueueEntry], Awaitable[Any]]


class JobQueue(ABC):
    """Abstract interface for a named job queue (in-process or broker-backed)."""

    name: str

    @abstractmethod
    async def enqueue(self, name: str, payload: Dict[str, Any]) -> str:
        """Add a message to the queue. Returns the delivery id."""
        ...

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[QueueEntry]:
        """Get the current state of a delivery."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start consuming (spawn the worker loops)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop consuming gracefully."""
        ...

    @abstractmethod
    def stats(self) -> Dict[str, int]:
        """Queue depth and in-flight counts."""
        ...
