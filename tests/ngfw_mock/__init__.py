"""Cloud NGFW API mock for integration testing.

This module provides an in-memory implementation of the management API
client contract so the reconciler, sync pass and CLI can be tested without
a real endpoint.

Key Features:
- Candidate and running copies with an explicit commit
- Server-assigned fields (update tokens, firewall account id, status)
- Call tracking for asserting which API calls were issued
- Error injection per kind and method
- Out-of-band edits and deletions

Usage:
    from ngfw_mock import mock_ngfw_context

    with mock_ngfw_context() as ctx:
        reconciler = Reconciler(get_kind("certificate"), ctx.clients["certificate"])
        await reconciler.create(state)

        assert ctx.state.object_count == 1
"""

from .context import FACTORY_PATH, MockNgfwContext, build_clients, mock_ngfw_context
from .resources import (
    DEFAULT_ACCOUNT_ID,
    DEFAULT_REGION,
    MockCall,
    MockNgfwState,
    create_mock_clients,
)

__all__ = [
    "DEFAULT_ACCOUNT_ID",
    "DEFAULT_REGION",
    "FACTORY_PATH",
    "MockCall",
    "MockNgfwContext",
    "MockNgfwState",
    "build_clients",
    "create_mock_clients",
    "mock_ngfw_context",
]
