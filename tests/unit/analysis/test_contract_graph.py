"""Unit tests for analysis.contract_graph."""

from __future__ import annotations

from contract_governance.analysis.contract_graph import (
    ContractGraphNode,
    build_reverse_edges,
    detect_cycles,
    find_missing_dependencies,
    graph_from_descriptors,
    to_dot,
)
from contract_governance.domain.models import descriptor_from_dict


def _graph(edges: dict[str, list[str]]) -> dict[str, ContractGraphNode]:
    nodes = {key: ContractGraphNode(key=key, dependencies=list(deps)) for key, deps in edges.items()}
    build_reverse_edges(nodes)
    return nodes


def test_three_node_cycle_is_reported_once_as_closed_path() -> None:
    nodes = _graph({"A": ["B"], "B": ["C"], "C": ["A"]})

    assert detect_cycles(nodes) == (("A", "B", "C", "A"),)


def test_cycle_is_rotated_to_smallest_key() -> None:
    nodes = _graph({"B": ["C"], "C": ["A"], "A": ["B"], "D": ["C"]})

    cycles = detect_cycles(nodes)

    assert cycles == (("A", "B", "C", "A"),)


def test_independent_cycles_and_self_loops_are_all_found() -> None:
    nodes = _graph({"A": ["B"], "B": ["A"], "C": ["D"], "D": ["C"], "E": ["E"]})

    assert detect_cycles(nodes) == (("A", "B", "A"), ("C", "D", "C"), ("E", "E"))


def test_acyclic_graph_has_no_cycles() -> None:
    nodes = _graph({"A": ["B", "C"], "B": ["C"], "C": []})

    assert detect_cycles(nodes) == ()


def test_reverse_edges_are_sorted_and_rebuilt() -> None:
    nodes = _graph({"A": ["C"], "B": ["C"], "C": []})
    assert nodes["C"].dependents == ["A", "B"]

    nodes["A"].dependencies = []
    build_reverse_edges(nodes)
    assert nodes["C"].dependents == ["B"]


def test_missing_dependencies_are_listed_per_node() -> None:
    nodes = _graph({"A": ["B", "ghost"], "B": ["phantom", "ghost"]})

    assert find_missing_dependencies(nodes) == {"A": ("ghost",), "B": ("ghost", "phantom")}


def test_graph_from_descriptors_collects_references() -> None:
    descriptors = [
        descriptor_from_dict(
            {
                "specType": "operation",
                "key": "orders.place",
                "version": "1.0.0",
                "sideEffects": {"emits": [{"key": "orders.placed", "version": "1.0.0"}]},
                "capability": {"key": "orders", "version": "1.0.0"},
            }
        ),
        descriptor_from_dict(
            {
                "specType": "capability",
                "key": "orders",
                "version": "1.0.0",
                "extends": {"key": "commerce", "version": "1.0.0"},
                "requires": [{"key": "payments"}],
            }
        ),
        descriptor_from_dict({"specType": "event", "key": "orders.placed", "version": "1.0.0"}),
    ]

    nodes = graph_from_descriptors(descriptors, files={"orders.place": "orders/place.ts"})

    assert nodes["orders.place"].dependencies == ["orders", "orders.placed"]
    assert nodes["orders.place"].file == "orders/place.ts"
    assert nodes["orders"].dependencies == ["commerce", "payments"]
    assert nodes["orders"].dependents == ["orders.place"]
    assert find_missing_dependencies(nodes) == {"orders": ("commerce", "payments")}


def test_to_dot_marks_missing_dependencies_dashed() -> None:
    nodes = _graph({"A": ["B", "ghost"], "B": []})
    nodes["A"].file = "a.yaml"

    dot = to_dot(nodes, name="demo")

    assert dot.startswith('digraph "demo" {\n')
    assert '  "A" [label="A\\na.yaml"];' in dot
    assert '  "A" -> "B";' in dot
    assert '  "A" -> "ghost" [style=dashed];' in dot
    assert dot.endswith("}\n")
