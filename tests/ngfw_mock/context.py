"""Mock Cloud NGFW context for integration testing.

Provides shared mock state plus a client factory that the controller and
CLI can load by dotted path (``ngfw_mock.context:build_clients``).
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from .resources import DEFAULT_ACCOUNT_ID, DEFAULT_REGION, MockNgfwState, create_mock_clients

if TYPE_CHECKING:
    from ngfw_controller.config import Config

FACTORY_PATH = "ngfw_mock.context:build_clients"

# State served by build_clients; replaced for every mock_ngfw_context
_shared_state = MockNgfwState()


class MockNgfwContext:
    """Holds the mock state and clients for one test.

    Usage:
        with mock_ngfw_context() as ctx:
            syncer = Syncer(ctx.clients, store, region=ctx.state.region)
            await syncer.sync(objects)

            assert ctx.state.object_count == 1
    """

    def __init__(self, state: MockNgfwState) -> None:
        self.state = state
        self.clients = create_mock_clients(state)

    def call_methods(self, kind: str) -> list[str]:
        """Methods called on ``kind``, in call order."""
        return [c.method for c in self.state.calls_for(kind)]


def build_clients(config: Config) -> dict[str, Any]:
    """Client factory for Config.client_factory, serving the shared state."""
    if config.region != _shared_state.region:
        _shared_state.region = config.region
    return create_mock_clients(_shared_state)


@contextmanager
def mock_ngfw_context(
    *,
    region: str = DEFAULT_REGION,
    account_id: str = DEFAULT_ACCOUNT_ID,
) -> Generator[MockNgfwContext, None, None]:
    """Create fresh mock state, also served by ``build_clients``.

    Args:
        region: Region the mock API serves.
        account_id: Account assigned to firewalls created without one.

    Yields:
        MockNgfwContext for test assertions.
    """
    global _shared_state
    previous = _shared_state
    _shared_state = MockNgfwState(region=region, account_id=account_id)
    try:
        yield MockNgfwContext(_shared_state)
    finally:
        _shared_state = previous
