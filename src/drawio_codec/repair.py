"""
Maintenance of stored canonical graphs.

Phantom-connection repair and reconciliation of a freshly parsed graph with
the graph stored before the document text changed.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from drawio_codec.models import CanonicalGraph, Connection, Node

logger = logging.getLogger("drawio-codec.repair")

FIRST_SUBPROCESS_ID = 10000


def valid_node_ids(nodes: list[Node], first_subprocess_id: int = FIRST_SUBPROCESS_ID) -> set[str]:
    """Ids of all nodes plus the ids synthesized for their subprocesses.

    Subprocess ids are numbered with one running counter across all nodes,
    in node order, starting at *first_subprocess_id*.
    """
    ids: set[str] = set()
    count = 0
    for node in nodes:
        ids.add(str(node.id))
        for _ in node.subprocesses:
            ids.add(str(first_subprocess_id + count))
            count += 1
    return ids


def strip_phantom_connections(
    nodes: list[Node],
    connections: list[Connection],
    first_subprocess_id: int = FIRST_SUBPROCESS_ID,
) -> list[Connection]:
    """Keep only connections whose endpoints both resolve to a node."""
    valid = valid_node_ids(nodes, first_subprocess_id)
    kept = [c for c in connections if c.source in valid and c.target in valid]
    dropped = len(connections) - len(kept)
    if dropped:
        logger.warning("Removed %d phantom connection(s)", dropped)
    return kept


def reconcile_graph(
    previous: CanonicalGraph | None,
    fresh: CanonicalGraph,
    document_edge_ids: Optional[set[str]] = None,
) -> CanonicalGraph:
    """Carry user-entered data from *previous* into a re-parsed *fresh* graph.

    ``owner`` and ``subprocesses`` follow nodes by id, since neither is
    stored in the document.

    A connection of *previous* is matched to the fresh parse by element id
    first, then by endpoints; each fresh connection absorbs at most one
    previous connection, so parallel edges keep their count.  An unmatched
    connection whose id is in *document_edge_ids* was an edge of the old
    document text that is gone now and is dropped.  Any other unmatched
    connection was entered by hand and is kept when both endpoints still
    exist.
    """
    if previous is None:
        return fresh
    document_edge_ids = document_edge_ids or set()

    old_nodes = {n.id: n for n in previous.nodes}
    for node in fresh.nodes:
        old = old_nodes.get(node.id)
        if old is None:
            continue
        if node.owner is None and old.owner is not None:
            node.owner = old.owner
        if not node.subprocesses and old.subprocesses:
            node.subprocesses = list(old.subprocesses)

    fresh_ids = {c.id for c in fresh.connections if c.id}
    by_id = {c.id for c in previous.connections if c.id in fresh_ids}
    unclaimed = Counter(c.key for c in fresh.connections if c.id not in by_id)

    present = fresh.node_ids()
    carried: list[Connection] = []
    dropped = 0
    for conn in previous.connections:
        if conn.id in by_id:
            continue
        if unclaimed[conn.key] > 0:
            unclaimed[conn.key] -= 1
            continue
        if conn.id and conn.id in document_edge_ids:
            dropped += 1
            continue
        if conn.source in present and conn.target in present:
            carried.append(conn)
    fresh.connections.extend(carried)
    if carried:
        logger.debug("Carried %d connection(s) over from the stored graph", len(carried))
    if dropped:
        logger.debug("Dropped %d connection(s) deleted from the document", dropped)
    return fresh
