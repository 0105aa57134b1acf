"""Descriptor document loading (YAML/JSON) into typed spec descriptors."""

from contract_governance.ingestion.loader import (
    DescriptorLoadError,
    load_descriptor_files,
    load_descriptors,
    parse_descriptor_records,
)

__all__ = [
    "DescriptorLoadError",
    "load_descriptor_files",
    "load_descriptors",
    "parse_descriptor_records",
]
