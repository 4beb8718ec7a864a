"""Contract between the reconciler and the management API client.

The transport (HTTP, signing, retries, timeouts) lives outside this
package. A deployment plugs its client in through a factory named by a
dotted path, ``package.module:callable``, which receives the validated
``Config`` and returns one client per object kind.

All client methods are coroutines. A missing object must be reported as
``NotFoundError`` so it can be told apart from every other failure.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from .phase import ConfigPhase
from .records import FirewallInfo, FirewallReadResponse

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

Identity = Mapping[str, str]


class NotFoundError(Exception):
    """The remote object does not exist."""

    pass


class TransportError(Exception):
    """Any other failure reported by the remote API or its transport."""

    pass


class ClientFactoryError(Exception):
    """Raised when the configured client factory cannot be loaded or used."""

    pass


class ObjectClient(Protocol):
    """Client for one object kind with a single whole-record update call."""

    async def create(self, record: Any) -> Any:
        """Create the object; returns the record with server-assigned fields."""
        ...

    async def read(self, identity: Identity, phase: ConfigPhase) -> Any:
        """Read the object; raises NotFoundError if it does not exist."""
        ...

    async def update(self, record: Any) -> None: ...

    async def delete(self, identity: Identity) -> None: ...


class FirewallClient(Protocol):
    """Firewall client; updates are split into independent sub-calls."""

    async def create(self, record: FirewallInfo) -> FirewallInfo: ...

    async def read(self, identity: Identity, phase: ConfigPhase) -> FirewallReadResponse: ...

    async def update_description(self, record: FirewallInfo) -> None: ...

    async def update_content_version(self, record: FirewallInfo) -> None: ...

    async def update_subnet_mappings(self, record: FirewallInfo) -> None:
        """Apply ``associate_subnet_mappings`` / ``disassociate_subnet_mappings``."""
        ...

    async def delete(self, identity: Identity) -> None: ...


ClientFactory = Callable[["Config"], Mapping[str, Any]]


def load_client_factory(path: str) -> ClientFactory:
    """Import the factory named by ``module:callable``.

    Raises:
        ClientFactoryError: If the module or attribute cannot be resolved.
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ClientFactoryError(f"Client factory must look like 'module:callable': {path}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ClientFactoryError(f"Cannot import client factory module {module_name!r}: {e}") from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ClientFactoryError(f"Client factory {path!r} is not callable")

    logger.info("Loaded client factory", extra={"client_factory": path})
    return factory


def build_clients(config: Config) -> dict[str, Any]:
    """Build the per-kind clients from the configured factory."""
    factory = load_client_factory(config.client_factory)
    clients = factory(config)
    if not isinstance(clients, Mapping):
        raise ClientFactoryError(
            f"Client factory {config.client_factory!r} must return a mapping of kind to client"
        )
    return dict(clients)
