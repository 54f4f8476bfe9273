"""Port allocation and container registration for branch deployments.

Two tables, both owned here and guarded by a single ``asyncio.Lock``:

* ``repo:branch -> port``, permanent for the lifetime of the process;
* ``port -> container name``, present while a container is believed to run.

Every read-then-write runs under the lock, so concurrent deploys can neither
allocate the same port twice nor overshoot the container ceiling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from src.shared.errors import CapacityExceededError

logger = logging.getLogger(__name__)

PortFinder = Callable[[set[int]], Awaitable[int]]


def allocation_key(repository: str, branch: str) -> str:
    return f"{repository}:{branch}"


class DeploymentStore:
    """Single owner of the port and container tables."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._ports: dict[str, int] = {}
        self._containers: dict[int, str] = {}

    async def get_or_allocate(self, key: str, finder: PortFinder) -> int:
        """Return the port for *key*, allocating one with *finder* if absent.

        *finder* receives the set of ports already allocated to other keys.
        """
        async with self._lock:
            port = self._ports.get(key)
            if port is not None:
                return port
            port = await finder(set(self._ports.values()))
            self._ports[key] = port
            logger.info("Allocated port %d to %s", port, key)
            return port

    async def reserve(self, port: int, container_name: str, limit: int) -> str | None:
        """Register *container_name* on *port*.

        Returns:
            The container previously registered on *port*, which the caller
            must remove, or ``None``.

        Raises:
            CapacityExceededError: If *port* is free and *limit* containers
                are already registered.
        """
        async with self._lock:
            existing = self._containers.get(port)
            if existing is None and len(self._containers) >= limit:
                raise CapacityExceededError(
                    f"Unable to deploy {container_name} as limit of {limit} has been reached"
                )
            self._containers[port] = container_name
            return existing

    async def release(self, port: int, container_name: str | None = None) -> None:
        """Drop the container entry for *port*.

        With *container_name*, only that container's registration is removed,
        so a stale release cannot drop a newer replacement.
        """
        async with self._lock:
            current = self._containers.get(port)
            if current is None:
                return
            if container_name is not None and current != container_name:
                return
            del self._containers[port]

    def port_for(self, key: str) -> int | None:
        return self._ports.get(key)

    def container_on(self, port: int) -> str | None:
        return self._containers.get(port)

    def ports(self) -> dict[str, int]:
        """Snapshot of the port allocation table."""
        return dict(self._ports)

    def containers(self) -> dict[int, str]:
        """Snapshot of the container registry."""
        return dict(self._containers)
