"""
Main-flow detection for form views.

The main flow is the longest start-to-end path through the graph; every
other node hangs off it as a branch of its first main-flow predecessor.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from drawio_codec.models import Connection, Node


@dataclass
class MainFlow:
    nodes: list[Node] = field(default_factory=list)
    branches: dict[str, list[Node]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mainFlow": [n.id for n in self.nodes],
            "branches": {k: [n.id for n in v] for k, v in self.branches.items()},
        }


def find_main_flow(nodes: list[Node], connections: list[Connection]) -> MainFlow:
    if not connections:
        return MainFlow(nodes=list(nodes))

    by_id = {n.id: n for n in nodes}
    children: dict[str, list[str]] = {n.id: [] for n in nodes}
    parents: dict[str, list[str]] = {n.id: [] for n in nodes}
    in_degree: dict[str, int] = {n.id: 0 for n in nodes}
    for conn in connections:
        if conn.source in by_id and conn.target in by_id:
            children[conn.source].append(conn.target)
            parents[conn.target].append(conn.source)
            in_degree[conn.target] += 1

    starts = [n.id for n in nodes if in_degree[n.id] == 0]
    ends = {n.id for n in nodes if not children[n.id]}

    longest: list[str] = []

    def walk(current: str, path: list[str], visited: set[str]) -> None:
        nonlocal longest
        path = path + [current]
        if current in ends:
            if len(path) > len(longest):
                longest = path
            return
        for child in children[current]:
            if child not in visited:
                visited.add(child)
                walk(child, path, visited)
                visited.discard(child)

    for start in starts:
        walk(start, [], {start})

    if not longest:
        longest = _topological_order(nodes, starts, children, in_degree)

    on_main = set(longest)
    branches: dict[str, list[Node]] = {}
    for node in nodes:
        if node.id in on_main:
            continue
        parent = next((p for p in parents[node.id] if p in on_main), None)
        if parent is not None:
            branches.setdefault(parent, []).append(node)

    return MainFlow(nodes=[by_id[i] for i in longest], branches=branches)


def _topological_order(nodes: list[Node], starts: list[str],
                       children: dict[str, list[str]],
                       in_degree: dict[str, int]) -> list[str]:
    # Kahn's algorithm from the first start node (or the first node when the
    # graph is one big cycle).
    first = starts[0] if starts else (nodes[0].id if nodes else None)
    if first is None:
        return []
    queue = deque([first])
    remaining = dict(in_degree)
    visited: set[str] = set()
    order: list[str] = []
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        order.append(current)
        for child in children[current]:
            remaining[child] -= 1
            if remaining[child] == 0 and child not in visited:
                queue.append(child)
    return order
