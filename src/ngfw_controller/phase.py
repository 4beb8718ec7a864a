"""Configuration phase selection.

The management API keeps two copies of every rulestack-scoped object: the
editable candidate config and the running config that was last committed.
Read responses carry both as optional sub-records.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol


class ConfigPhase(str, Enum):
    """Which configuration copy a read projects into declared state."""

    CANDIDATE = "candidate"
    RUNNING = "running"
    UNSPECIFIED = ""

    @classmethod
    def parse(cls, value: str | None) -> ConfigPhase:
        """Parse a declared ``config_type`` value, treating empty as unspecified."""
        if not value:
            return cls.UNSPECIFIED
        try:
            return cls(value.lower())
        except ValueError as e:
            valid = [p.value for p in cls if p.value]
            raise ValueError(f"config_type must be one of {valid}: {value}") from e


class PhasedResponse(Protocol):
    """Shape of a read response carrying both configuration copies."""

    candidate: Any
    running: Any


def effective_phase(phase: ConfigPhase) -> ConfigPhase:
    """Map the requested phase to the copy actually read.

    Unspecified reads default to the candidate config, matching what
    resource reads use.
    """
    if phase is ConfigPhase.RUNNING:
        return ConfigPhase.RUNNING
    return ConfigPhase.CANDIDATE


def resolve_phase(response: PhasedResponse, phase: ConfigPhase) -> Any | None:
    """Select the sub-record for ``phase`` from a read response.

    Returns None when the selected copy is absent, e.g. an object created
    in the candidate config but never committed to running. Callers treat
    that the same as the object not existing.
    """
    if effective_phase(phase) is ConfigPhase.RUNNING:
        return response.running
    return response.candidate
