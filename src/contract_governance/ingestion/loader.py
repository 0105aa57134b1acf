"""
contract-governance — descriptor loading

File: src/contract_governance/ingestion/loader.py

Purpose
- Read spec descriptors that an external scanner already extracted, from an
  explicit YAML or JSON document path, into typed descriptors.

Functional requirements
- A document is either a list of descriptor objects or an object with a
  ``specs`` list.
- ``.json`` files are parsed as JSON; everything else goes through
  ``yaml.safe_load`` (a YAML superset of JSON).
- Errors name the file and the record index.

Non-functional requirements
- No discovery: callers pass explicit paths.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import yaml

from contract_governance.domain.models import SpecDescriptor, descriptor_from_dict

logger = logging.getLogger(__name__)

__all__ = [
    "DescriptorLoadError",
    "load_descriptor_files",
    "load_descriptors",
    "parse_descriptor_records",
]


class DescriptorLoadError(ValueError):
    """Raised when a descriptor document cannot be read or parsed."""

    def __init__(self, source: str, message: str, *, index: int | None = None) -> None:
        self.source = source
        self.index = index
        location = source if index is None else f"{source}[{index}]"
        super().__init__(f"{location}: {message}")


def _records_from_payload(payload: object, source: str) -> Sequence[object]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        specs = payload.get("specs")
        if isinstance(specs, list):
            return specs
    raise DescriptorLoadError(source, "must be a list or contain a 'specs' list")


def parse_descriptor_records(payload: object, *, source: str = "<memory>") -> list[SpecDescriptor]:
    """Convert an already-parsed document into typed descriptors."""

    descriptors: list[SpecDescriptor] = []
    for index, record in enumerate(_records_from_payload(payload, source)):
        if not isinstance(record, Mapping):
            raise DescriptorLoadError(source, "must be an object", index=index)
        try:
            descriptors.append(descriptor_from_dict(record))
        except ValueError as exc:
            raise DescriptorLoadError(source, str(exc), index=index) from exc
    return descriptors


def load_descriptors(path: str | Path) -> list[SpecDescriptor]:
    """Load every descriptor from one YAML or JSON document."""

    file_path = Path(path)
    source = file_path.as_posix()
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            if file_path.suffix.lower() == ".json":
                payload = json.load(handle)
            else:
                payload = yaml.safe_load(handle)
    except OSError as exc:
        raise DescriptorLoadError(source, f"unable to read: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise DescriptorLoadError(source, f"invalid JSON: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DescriptorLoadError(source, f"invalid YAML: {exc}") from exc

    descriptors = parse_descriptor_records(payload, source=source)
    logger.debug("descriptors loaded", extra={"source": source, "count": len(descriptors)})
    return descriptors


def load_descriptor_files(paths: Iterable[str | Path]) -> list[SpecDescriptor]:
    """Load and concatenate descriptors from several documents, in path order."""

    descriptors: list[SpecDescriptor] = []
    for path in sorted(Path(item) for item in paths):
        descriptors.extend(load_descriptors(path))
    return descriptors
