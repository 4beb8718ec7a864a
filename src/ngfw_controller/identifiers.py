"""Composite identifiers for tracked objects.

A composite id is the only artifact persisted between reconciliation
passes, so its encoding must stay stable:

    certificate / custom URL category / prefix list:  <rulestack>:<name>
    rulestack:                                         <name>
    firewall:                                          <account_id>:<region>:<name>

Components are joined verbatim. The separator is reserved by the API and
rejected by spec validation, so no escaping is attempted here. Firewall ids
may carry empty account or region components when the id is built before
the server resolves the owning account.
"""

from __future__ import annotations

from .config import ID_SEPARATOR
from .phase import ConfigPhase


class IdentifierFormatError(ValueError):
    """Raised when a composite id does not split into the expected tokens."""

    def __init__(self, object_id: str, expected: int, got: int) -> None:
        self.object_id = object_id
        self.expected = expected
        self.got = got
        super().__init__(
            f"Error in parsing ID {object_id!r}: Expecting {expected} tokens, got {got}"
        )


def encode_id(*parts: str) -> str:
    """Join id components with the reserved separator."""
    return ID_SEPARATOR.join(parts)


def decode_id(object_id: str, arity: int) -> tuple[str, ...]:
    """Split a composite id into exactly ``arity`` components.

    Raises:
        IdentifierFormatError: If the token count differs from ``arity``.
    """
    tokens = object_id.split(ID_SEPARATOR)
    if len(tokens) != arity:
        raise IdentifierFormatError(object_id, arity, len(tokens))
    return tuple(tokens)


def config_type_id(phase: ConfigPhase, object_id: str) -> str:
    """Qualify a data source id with the phase it was read from."""
    if phase is ConfigPhase.UNSPECIFIED:
        return object_id
    return encode_id(phase.value, object_id)
