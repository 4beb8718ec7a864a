"""Spec file loading with validation.

All file operations enforce size limits, and every document is validated
against its kind's model before anything reaches the reconciler.

Spec files are YAML (``*.yaml`` / ``*.yml``) and may hold several
documents. Each document is either Kubernetes-style::

    apiVersion: ngfw-controller/v1
    kind: Certificate
    metadata: {name: cert1}
    spec:
      rulestack: stack1
      name: cert1
      selfSigned: true

or flat, with ``kind`` next to the fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .identifiers import encode_id
from .kinds import get_kind
from .models import get_spec_class, normalize_kind

logger = logging.getLogger(__name__)

SPEC_FILE_SUFFIXES = (".yaml", ".yml")


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


@dataclass(frozen=True)
class DeclaredObject:
    """One validated object declaration."""

    kind: str
    fields: dict[str, Any] = field(default_factory=dict)
    source: str = ""

    @property
    def key(self) -> str:
        """Stable tracking key, ``<kind>/<declared identity>``."""
        return declared_key(self.kind, self.fields)


def declared_key(kind: str, fields: dict[str, Any]) -> str:
    """Build the tracking key of an object from its declared fields."""
    key_fields = get_kind(kind).key_fields
    return f"{kind}/{encode_id(*(str(fields.get(f) or '') for f in key_fields))}"


def parse_document(data: Any, source: str) -> DeclaredObject:
    """Validate one YAML document into a declared object.

    Raises:
        SpecLoadError: If the document is malformed or fails validation.
    """
    if not isinstance(data, dict):
        raise SpecLoadError(f"Spec document must be a YAML mapping: {source}")

    raw_kind = data.get("kind")
    if not raw_kind or not isinstance(raw_kind, str):
        raise SpecLoadError(f"Spec document is missing 'kind': {source}")

    # Support both flat format and Kubernetes-style wrapper
    if "apiVersion" in data and "spec" in data:
        spec_data = data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = {k: v for k, v in data.items() if k != "kind"}

    try:
        kind = normalize_kind(raw_kind)
    except ValueError as e:
        raise SpecLoadError(f"{source}: {e}") from e

    try:
        spec = get_spec_class(kind).model_validate(spec_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e

    return DeclaredObject(kind=kind, fields=spec.to_declared_fields(), source=source)


def load_spec_file(path: Path) -> list[DeclaredObject]:
    """Load every document of one spec file.

    Raises:
        SpecLoadError: If the file cannot be read or any document is invalid.
    """
    # Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {path}: {e}") from e

    try:
        documents = [d for d in yaml.safe_load_all(content) if d is not None]
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    return [parse_document(doc, f"{path}#{index}") for index, doc in enumerate(documents)]


def load_specs(specs_dir: Path) -> list[DeclaredObject]:
    """Load and validate all spec files in a directory, in file name order.

    Raises:
        SpecLoadError: If the directory is missing, a file is invalid, or two
            documents declare the same object.
    """
    if not specs_dir.is_dir():
        raise SpecLoadError(f"Specs directory not found: {specs_dir}")

    objects: list[DeclaredObject] = []
    seen: dict[str, str] = {}

    for path in sorted(p for p in specs_dir.iterdir() if p.suffix in SPEC_FILE_SUFFIXES):
        for obj in load_spec_file(path):
            if obj.key in seen:
                raise SpecLoadError(
                    f"Duplicate declaration of {obj.key} in {obj.source} "
                    f"(first declared in {seen[obj.key]})"
                )
            seen[obj.key] = obj.source
            objects.append(obj)

    logger.info(
        "Loaded specs",
        extra={"specs_dir": str(specs_dir), "object_count": len(objects)},
    )
    return objects
