"""Tunnel lifecycle used to reach private environments."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeAlias

from synthetics_ci.models.api import TunnelInfo


class Tunnel(ABC):
    """A tunnel between the execution service and the local network.

    The orchestrator only drives the lifecycle: it starts the tunnel with the
    presigned URL obtained from the API, forwards the returned connection
    details with every triggered test, and stops it when the run ends.
    """

    @abstractmethod
    async def start(self, presigned_url: str) -> TunnelInfo:
        """Open the tunnel and return its connection details."""

    @abstractmethod
    async def stop(self) -> None:
        """Close the tunnel. Must be safe to call when it never started."""


TunnelFactory: TypeAlias = Callable[[], Tunnel]
