"""Configuration management with validation.

Configuration is validated at load time so the controller fails fast on
a bad environment instead of part way through a reconciliation pass.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Reserved by the management API; never allowed inside an id component
ID_SEPARATOR = ":"

# Configuration constants with documented bounds
DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
MIN_RECONCILE_INTERVAL_SECONDS = 30
MAX_RECONCILE_INTERVAL_SECONDS = 3600

# File size limits for spec and state files
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
MAX_STATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max state file

MAX_OBJECT_NAME_LENGTH = 128

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Input validation patterns
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-\d$"
VALID_CLIENT_FACTORY_PATTERN = r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$"


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    region: str
    client_factory: str

    # Paths
    specs_dir: Path = field(default_factory=lambda: Path("/specs"))
    state_file: Path = field(default_factory=lambda: Path("/state/ngfw-state.yaml"))

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS

    # Behavior
    dry_run: bool = False
    prune: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.region:
            errors.append("NGFW_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"NGFW_REGION must be a valid AWS region: {self.region}")

        if not self.client_factory:
            errors.append("NGFW_CLIENT_FACTORY is required")
        elif not re.match(VALID_CLIENT_FACTORY_PATTERN, self.client_factory):
            errors.append(
                f"NGFW_CLIENT_FACTORY must look like 'package.module:callable': "
                f"{self.client_factory}"
            )

        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if not self.specs_dir.exists():
            errors.append(f"Specs directory does not exist: {self.specs_dir}")

        if not self.state_file.parent.exists():
            errors.append(f"State file directory does not exist: {self.state_file.parent}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            NGFW_REGION: Region the management API client is bound to
            NGFW_CLIENT_FACTORY: Dotted path 'module:callable' returning the clients
            SPECS_DIR: Path to YAML specs (default: /specs)
            STATE_FILE: Path to the tracked-object state file
                (default: /state/ngfw-state.yaml)
            RECONCILE_INTERVAL: Seconds between sync passes (default: 300)
            DRY_RUN: If "true", only plan without calling mutating APIs (default: false)
            PRUNE: If "true", delete tracked objects no longer declared (default: false)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            region=os.environ.get("NGFW_REGION", ""),
            client_factory=os.environ.get("NGFW_CLIENT_FACTORY", ""),
            specs_dir=Path(os.environ.get("SPECS_DIR", "/specs")),
            state_file=Path(os.environ.get("STATE_FILE", "/state/ngfw-state.yaml")),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            dry_run=get_bool("DRY_RUN", False),
            prune=get_bool("PRUNE", False),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
