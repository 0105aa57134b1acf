"""Contract dependency graph: reverse edges, cycles, missing references, DOT export."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field

from contract_governance.domain.models import (
    CapabilitySpec,
    EventSpec,
    OperationSpec,
    PresentationSpec,
    SpecDescriptor,
)

__all__ = [
    "ContractGraphNode",
    "build_reverse_edges",
    "detect_cycles",
    "find_missing_dependencies",
    "graph_from_descriptors",
    "to_dot",
]


@dataclass(slots=True)
class ContractGraphNode:
    """
    One contract in the graph.

    ``dependencies`` is authored; ``dependents`` is derived and rewritten by
    :func:`build_reverse_edges` from every node's dependency list.
    """

    key: str
    file: str | None = None
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise ValueError("ContractGraphNode.key must be a non-empty string")


def build_reverse_edges(nodes: MutableMapping[str, ContractGraphNode]) -> None:
    """Recompute every node's ``dependents`` in place, sorted lexicographically."""

    for node in nodes.values():
        node.dependents = []
    for node in nodes.values():
        for dependency in node.dependencies:
            target = nodes.get(dependency)
            if target is not None and node.key not in target.dependents:
                target.dependents.append(node.key)
    for node in nodes.values():
        node.dependents.sort()


def detect_cycles(nodes: Mapping[str, ContractGraphNode]) -> tuple[tuple[str, ...], ...]:
    """
    Detect every dependency cycle.

    Cycles are closed paths such as ``("A", "B", "C", "A")``, rotated so the
    smallest key comes first. Traversal continues after a cycle is found so
    independent cycles are all reported.
    """

    def children(key: str) -> Iterator[str]:
        return iter(sorted({dep for dep in nodes[key].dependencies if dep in nodes}))

    state: dict[str, int] = {}
    stack: list[str] = []
    stack_index: dict[str, int] = {}
    cycles: dict[tuple[str, ...], None] = {}

    for start in sorted(nodes):
        if state.get(start, 0) != 0:
            continue

        state[start] = 1
        stack.append(start)
        stack_index[start] = 0
        frames: list[tuple[str, Iterator[str]]] = [(start, children(start))]

        while frames:
            node, child_iter = frames[-1]

            try:
                child = next(child_iter)
            except StopIteration:
                frames.pop()
                state[node] = 2
                stack.pop()
                del stack_index[node]
                continue

            child_state = state.get(child, 0)
            if child_state == 0:
                state[child] = 1
                stack_index[child] = len(stack)
                stack.append(child)
                frames.append((child, children(child)))
                continue

            if child_state == 1:
                cycle = tuple(stack[stack_index[child] :] + [child])
                cycles[_canonicalize_cycle(cycle)] = None

    return tuple(sorted(cycles))


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated
    return best + (best[0],)


def find_missing_dependencies(nodes: Mapping[str, ContractGraphNode]) -> dict[str, tuple[str, ...]]:
    """Map each node key to the dependencies that are not graph nodes (omitting empty entries)."""

    missing: dict[str, tuple[str, ...]] = {}
    for key in sorted(nodes):
        absent = tuple(sorted({dep for dep in nodes[key].dependencies if dep not in nodes}))
        if absent:
            missing[key] = absent
    return missing


def _references(spec: SpecDescriptor) -> set[str]:
    refs: set[str] = set()
    if isinstance(spec, (OperationSpec, EventSpec, PresentationSpec)) and spec.capability is not None:
        refs.add(spec.capability.key)
    if isinstance(spec, OperationSpec):
        refs.update(item.key for item in spec.emits if item.key is not None)
    if isinstance(spec, CapabilitySpec):
        if spec.extends is not None:
            refs.add(spec.extends.key)
        refs.update(requirement.key for requirement in spec.requires)
    refs.discard(spec.meta.key)
    return refs


def graph_from_descriptors(
    descriptors: Iterable[SpecDescriptor],
    *,
    files: Mapping[str, str] | None = None,
) -> dict[str, ContractGraphNode]:
    """
    Build a graph keyed by contract key from descriptor references.

    Dependencies are the capability back-reference, declared emitted events,
    ``extends`` and ``requires``. Versions of the same key collapse into one node.
    """

    nodes: dict[str, ContractGraphNode] = {}
    for spec in descriptors:
        node = nodes.get(spec.meta.key)
        if node is None:
            node = ContractGraphNode(
                key=spec.meta.key,
                file=files.get(spec.meta.key) if files is not None else None,
            )
            nodes[spec.meta.key] = node
        node.dependencies = sorted(set(node.dependencies) | _references(spec))
    build_reverse_edges(nodes)
    return nodes


def _dot_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _dot_quote(value: str) -> str:
    return f'"{_dot_escape(value)}"'


def to_dot(nodes: Mapping[str, ContractGraphNode], *, name: str = "contracts") -> str:
    """Render the graph in Graphviz DOT; missing dependencies are drawn dashed."""

    lines = [f"digraph {_dot_quote(name)} {{", "  rankdir=LR;"]
    for key in sorted(nodes):
        node = nodes[key]
        label = _dot_escape(key)
        if node.file is not None:
            label = f"{label}\\n{_dot_escape(node.file)}"
        lines.append(f'  {_dot_quote(key)} [label="{label}"];')
    for key in sorted(nodes):
        for dependency in sorted(set(nodes[key].dependencies)):
            style = "" if dependency in nodes else " [style=dashed]"
            lines.append(f"  {_dot_quote(key)} -> {_dot_quote(dependency)}{style};")
    lines.append("}")
    return "\n".join(lines) + "\n"
