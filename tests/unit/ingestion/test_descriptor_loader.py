"""Unit tests for YAML/JSON descriptor document loading."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from contract_governance.domain.models import EventSpec, OperationSpec
from contract_governance.ingestion.loader import (
    DescriptorLoadError,
    load_descriptor_files,
    load_descriptors,
    parse_descriptor_records,
)

if TYPE_CHECKING:
    from pathlib import Path

_YAML_DOCUMENT = """
- specType: operation
  key: users.create
  version: 1.0.0
  io:
    input:
      email: {type: string}
    output:
      id: {type: string}
- specType: event
  key: users.created
  version: 1.0.0
  payload:
    id: {type: string}
"""


def test_yaml_list_document_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "specs.yaml"
    path.write_text(_YAML_DOCUMENT, encoding="utf-8")

    descriptors = load_descriptors(path)

    assert [type(item) for item in descriptors] == [OperationSpec, EventSpec]
    assert [item.composite_key for item in descriptors] == [
        "users.create.v1.0.0",
        "users.created.v1.0.0",
    ]


def test_json_document_with_specs_list_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "specs.json"
    payload = {"specs": [{"specType": "event", "key": "orders.placed", "version": "2.0.0"}]}
    path.write_text(json.dumps(payload), encoding="utf-8")

    (descriptor,) = load_descriptors(path)

    assert isinstance(descriptor, EventSpec)
    assert descriptor.version == "2.0.0"


def test_invalid_record_error_names_source_and_index() -> None:
    records = [
        {"specType": "event", "key": "a.b", "version": "1.0.0"},
        {"specType": "event", "key": "a.c"},
    ]

    with pytest.raises(DescriptorLoadError) as error:
        parse_descriptor_records(records, source="inline.yaml")

    assert error.value.index == 1
    assert str(error.value).startswith("inline.yaml[1]: ")
    assert "missing required fields" in str(error.value)


@pytest.mark.parametrize("payload", [{"specs": "nope"}, "just text", 42])
def test_document_shape_is_enforced(payload: object) -> None:
    with pytest.raises(DescriptorLoadError, match="must be a list or contain a 'specs' list"):
        parse_descriptor_records(payload)


def test_non_object_record_is_rejected() -> None:
    with pytest.raises(DescriptorLoadError, match=r"<memory>\[0\]: must be an object"):
        parse_descriptor_records(["users.create"])


def test_unreadable_and_malformed_documents(tmp_path: Path) -> None:
    with pytest.raises(DescriptorLoadError, match="unable to read"):
        load_descriptors(tmp_path / "missing.yaml")

    broken_yaml = tmp_path / "broken.yaml"
    broken_yaml.write_text("- key: [unclosed\n", encoding="utf-8")
    with pytest.raises(DescriptorLoadError, match="invalid YAML"):
        load_descriptors(broken_yaml)

    broken_json = tmp_path / "broken.json"
    broken_json.write_text("{", encoding="utf-8")
    with pytest.raises(DescriptorLoadError, match="invalid JSON"):
        load_descriptors(broken_json)


def test_load_descriptor_files_concatenates_in_path_order(tmp_path: Path) -> None:
    second = tmp_path / "b.yaml"
    second.write_text("- {specType: event, key: b.event, version: 1.0.0}\n", encoding="utf-8")
    first = tmp_path / "a.yaml"
    first.write_text("- {specType: event, key: a.event, version: 1.0.0}\n", encoding="utf-8")

    descriptors = load_descriptor_files([second, first])

    assert [item.key for item in descriptors] == ["a.event", "b.event"]
