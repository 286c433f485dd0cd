"""Graph algorithms for workflow execution.

Pure functions over node/edge snapshots:
- cycle validation (save time and run start)
- dependency closure for partial runs
- topological leveling into concurrently runnable batches
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import structlog

from nodeflow.models.node import GraphEdge, GraphNode

logger = structlog.get_logger()

EdgeLike = GraphEdge | tuple[str, str]


class GraphInvalidError(Exception):
    """Workflow graph is structurally invalid (cycle, dangling edge, ...)."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]
        self.error_code = "GRAPH_INVALID"


def _endpoints(edge: EdgeLike) -> tuple[str, str]:
    if isinstance(edge, GraphEdge):
        return edge.source, edge.target
    return edge[0], edge[1]


def _adjacency(edges: Iterable[EdgeLike]) -> dict[str, list[str]]:
    adj: dict[str, list[str]] = {}
    for edge in edges:
        source, target = _endpoints(edge)
        adj.setdefault(source, []).append(target)
        adj.setdefault(target, [])
    return adj


def find_cycle(edges: Iterable[EdgeLike]) -> list[str] | None:
    """Find one directed cycle in the graph.

    Iterative depth-first search: ``on_stack`` marks nodes on the current
    path, ``visited`` marks fully explored ones. A back edge to a node on
    the current path closes a cycle.

    Returns:
        Node ids along the cycle (first node repeated at the end),
        or None if the graph is acyclic
    """
    adj = _adjacency(edges)
    visited: set[str] = set()

    for root in adj:
        if root in visited:
            continue

        path: list[str] = [root]
        on_stack: set[str] = {root}
        visited.add(root)
        stack: list[tuple[str, Iterable[str]]] = [(root, iter(adj[root]))]

        while stack:
            node, neighbors = stack[-1]
            advanced = False
            for neighbor in neighbors:
                if neighbor in on_stack:
                    return path[path.index(neighbor):] + [neighbor]
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    path.append(neighbor)
                    stack.append((neighbor, iter(adj[neighbor])))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                on_stack.discard(node)
                path.pop()

    return None


def is_acyclic(edges: Iterable[EdgeLike]) -> bool:
    """Check that the edges form a DAG. Self-loops count as cycles."""
    return find_cycle(edges) is None


def would_create_cycle(source: str, target: str, edges: Iterable[EdgeLike]) -> bool:
    """Check whether adding ``source -> target`` would close a cycle.

    True for self-loops, or when ``source`` is already reachable from
    ``target``.
    """
    if source == target:
        return True

    adj = _adjacency(edges)
    stack = [target]
    seen: set[str] = set()

    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        if current == source:
            return True
        stack.extend(adj.get(current, []))

    return False


def validate_graph(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> list[str]:
    """Validate graph structure.

    Returns:
        List of validation errors (empty if valid)
    """
    errors: list[str] = []

    node_ids = [n.id for n in nodes]
    seen: set[str] = set()
    for node_id in node_ids:
        if node_id in seen:
            errors.append(f"Duplicate node ID: {node_id}")
        seen.add(node_id)

    for edge in edges:
        if edge.source not in seen:
            errors.append(f"Edge references unknown source node: {edge.source}")
        if edge.target not in seen:
            errors.append(f"Edge references unknown target node: {edge.target}")

    cycle = find_cycle(edges)
    if cycle is not None:
        errors.append(f"Cycle detected: {' -> '.join(cycle)}")

    return errors


def ensure_valid_graph(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> None:
    """Raise GraphInvalidError if the graph fails validation."""
    errors = validate_graph(nodes, edges)
    if errors:
        raise GraphInvalidError("Invalid workflow graph", errors=errors)


def dependency_closure(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    target_ids: Iterable[str] | None,
) -> set[str]:
    """Targets plus every node reachable by walking edges backward.

    Empty or absent targets select the whole graph. Unknown target ids are
    ignored. Terminates on any input: each node is enqueued at most once.
    """
    all_ids = {n.id for n in nodes}
    requested = list(target_ids or [])
    if not requested:
        return all_ids
    targets = {t for t in requested if t in all_ids}

    dependencies: dict[str, list[str]] = {node_id: [] for node_id in all_ids}
    for edge in edges:
        if edge.target in dependencies and edge.source in all_ids:
            dependencies[edge.target].append(edge.source)

    closure = set(targets)
    queue = deque(targets)
    while queue:
        node_id = queue.popleft()
        for dep_id in dependencies[node_id]:
            if dep_id not in closure:
                closure.add(dep_id)
                queue.append(dep_id)

    return closure


def induced_subgraph(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    node_ids: set[str],
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Restrict the graph to ``node_ids``, keeping original node order."""
    kept_nodes = [n for n in nodes if n.id in node_ids]
    kept_edges = [e for e in edges if e.source in node_ids and e.target in node_ids]
    return kept_nodes, kept_edges


def levelize(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> list[list[GraphNode]]:
    """Group nodes into levels with Kahn's algorithm.

    Level 0 holds nodes with no incoming edges. A node joins the next level
    exactly when its remaining in-degree reaches zero, i.e. once all of its
    sources sit in strictly earlier levels. Nodes within a level keep
    insertion order and are causally independent.

    Edges with an endpoint outside ``nodes`` are ignored. On cyclic input
    the nodes on or behind a cycle are never emitted.
    """
    node_map = {n.id: n for n in nodes}
    in_degree: dict[str, int] = {node_id: 0 for node_id in node_map}
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_map}

    for edge in edges:
        if edge.source not in node_map or edge.target not in node_map:
            continue
        in_degree[edge.target] += 1
        adjacency[edge.source].append(edge.target)

    levels: list[list[GraphNode]] = []
    queue = [node_id for node_id, degree in in_degree.items() if degree == 0]

    while queue:
        current_level: list[GraphNode] = []
        next_queue: list[str] = []

        for node_id in queue:
            current_level.append(node_map[node_id])
            for target_id in adjacency[node_id]:
                in_degree[target_id] -= 1
                if in_degree[target_id] == 0:
                    next_queue.append(target_id)

        levels.append(current_level)
        queue = next_queue

    return levels


@dataclass
class RunPlan:
    """Filtered graph and its execution levels for one run."""

    nodes: list[GraphNode]
    edges: list[GraphEdge]
    levels: list[list[GraphNode]] = field(default_factory=list)

    @property
    def level_sizes(self) -> list[int]:
        return [len(level) for level in self.levels]


def plan_run(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    selected_ids: Sequence[str] | None = None,
) -> RunPlan:
    """Build the execution plan for a full or partial run."""
    if selected_ids:
        closure = dependency_closure(nodes, edges, selected_ids)
        run_nodes, run_edges = induced_subgraph(nodes, edges, closure)
        logger.debug(
            "partial_run_planned",
            selected=len(selected_ids),
            node_count=len(run_nodes),
        )
    else:
        run_nodes, run_edges = list(nodes), list(edges)

    return RunPlan(nodes=run_nodes, edges=run_edges, levels=levelize(run_nodes, run_edges))
