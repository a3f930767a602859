"""
In-memory document store.

Holds ``{text, canonical graph}`` pairs by name, re-derives the graph every
time the text changes and serializes edits per document.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from drawio_codec.builder import build_document
from drawio_codec.compression import DecodeError
from drawio_codec.models import CanonicalGraph, NodeEdit, Subprocess
from drawio_codec.parser import DEFAULT_DIAGRAM_ID, FormatError, parse_document
from drawio_codec.repair import FIRST_SUBPROCESS_ID, reconcile_graph, strip_phantom_connections
from drawio_codec.updater import DocumentEditor, TextPatchEditor, UpdaterConfig, update_document

logger = logging.getLogger("drawio-codec.store")


class StoreError(Exception):
    """Raised for unknown documents or operations that need a parsed graph."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass
class DiagramRecord:
    """A stored document and the graph derived from it.

    ``graph`` is ``None`` when the text could not be parsed; ``parse_error``
    then says why.
    """
    name: str
    text: str
    graph: Optional[CanonicalGraph] = None
    parse_error: Optional[str] = None
    source_file_name: Optional[str] = None
    process_owner: Optional[str] = None
    revision: int = 0
    document_edge_ids: set[str] = field(default_factory=set, repr=False, compare=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def to_dict(self, include_text: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "revision": self.revision,
            "parsedData": self.graph.to_dict() if self.graph else None,
        }
        if self.parse_error:
            data["parseError"] = self.parse_error
        if self.source_file_name:
            data["sourceFileName"] = self.source_file_name
        if self.process_owner:
            data["processOwner"] = self.process_owner
        if include_text:
            data["xml"] = self.text
        return data


def _merge_subprocesses(existing: list[Subprocess], added: list[Subprocess]) -> list[Subprocess]:
    names = {s.name for s in existing}
    merged = list(existing)
    for sub in added:
        if sub.name and sub.name not in names:
            merged.append(sub)
            names.add(sub.name)
    return merged


class DiagramStore:
    """Named documents with per-document locking.

    The store-wide lock guards the registry itself; each record's own lock
    serializes every read-modify-write of that record's text.
    """

    def __init__(self, config: Optional[UpdaterConfig] = None,
                 editor: Optional[DocumentEditor] = None,
                 default_diagram_id: str = DEFAULT_DIAGRAM_ID) -> None:
        self._editor = editor or TextPatchEditor(config)
        self._default_diagram_id = default_diagram_id
        self._records: dict[str, DiagramRecord] = {}
        self._lock = threading.Lock()

    # -- internal --

    def _parse(self, text: str, previous: Optional[CanonicalGraph] = None,
               previous_edge_ids: Optional[set[str]] = None,
               ) -> tuple[Optional[CanonicalGraph], Optional[str], set[str]]:
        """Parse *text*; returns the reconciled graph, the parse error and
        the ids of the edges the text itself holds."""
        try:
            graph = parse_document(text, self._default_diagram_id)
        except (DecodeError, FormatError) as exc:
            logger.warning("Stored document without a graph: %s", exc.message)
            return None, exc.message, set()
        edge_ids = {c.id for c in graph.connections if c.id}
        return reconcile_graph(previous, graph, previous_edge_ids), None, edge_ids

    def _put(self, record: DiagramRecord) -> DiagramRecord:
        with self._lock:
            replaced = record.name in self._records
            self._records[record.name] = record
        if replaced:
            logger.debug("Replaced document '%s'", record.name)
        return record

    # -- lifecycle --

    def create(self, name: str, text: str, *, source_file_name: Optional[str] = None,
               process_owner: Optional[str] = None) -> DiagramRecord:
        graph, error, edge_ids = self._parse(text)
        return self._put(DiagramRecord(
            name=name,
            text=text,
            graph=graph,
            parse_error=error,
            source_file_name=source_file_name,
            process_owner=process_owner,
            document_edge_ids=edge_ids,
        ))

    def create_from_graph(self, name: str, graph: Union[CanonicalGraph, dict[str, Any]],
                          *, compressed: bool = False,
                          process_owner: Optional[str] = None) -> DiagramRecord:
        if isinstance(graph, dict):
            graph = CanonicalGraph.from_dict(graph)
        text = build_document(graph, compressed=compressed)
        parsed, error, edge_ids = self._parse(text, graph)
        return self._put(DiagramRecord(
            name=name,
            text=text,
            graph=parsed,
            parse_error=error,
            process_owner=process_owner,
            document_edge_ids=edge_ids,
        ))

    def get(self, name: str) -> DiagramRecord:
        with self._lock:
            record = self._records.get(name)
        if record is None:
            raise StoreError(f"diagram '{name}' not found.")
        return record

    def list(self) -> list[DiagramRecord]:
        with self._lock:
            return list(self._records.values())

    def delete(self, name: str) -> None:
        with self._lock:
            if self._records.pop(name, None) is None:
                raise StoreError(f"diagram '{name}' not found.")

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    # -- updates --

    def replace_text(self, name: str, text: str) -> DiagramRecord:
        """Store new document text; user-entered graph data is carried over."""
        record = self.get(name)
        with record.lock:
            graph, error, edge_ids = self._parse(text, record.graph, record.document_edge_ids)
            record.text = text
            record.graph = graph
            record.parse_error = error
            record.document_edge_ids = edge_ids
            record.revision += 1
        return record

    def overwrite_graph(self, name: str, graph: Union[CanonicalGraph, dict[str, Any]]) -> DiagramRecord:
        """Replace only the stored graph; the document text is left as is."""
        if isinstance(graph, dict):
            graph = CanonicalGraph.from_dict(graph)
        record = self.get(name)
        with record.lock:
            record.graph = graph
            record.parse_error = None
            record.revision += 1
        return record

    def apply_edits(self, name: str, edits: list[Union[NodeEdit, dict[str, Any]]]) -> DiagramRecord:
        """Patch the document in place and refresh its graph.

        Added subprocesses are also recorded on their owning node so form
        views can list them without walking the diagram.
        """
        normalized = [e if isinstance(e, NodeEdit) else NodeEdit.from_dict(e) for e in edits]
        record = self.get(name)
        with record.lock:
            text = update_document(record.text, normalized, editor=self._editor)
            graph, error, edge_ids = self._parse(text, record.graph, record.document_edge_ids)
            if graph is not None:
                for edit in normalized:
                    node = graph.find_node(edit.id)
                    if node is not None and edit.subprocesses:
                        node.subprocesses = _merge_subprocesses(node.subprocesses, edit.subprocesses)
            record.text = text
            record.graph = graph
            record.parse_error = error
            record.document_edge_ids = edge_ids
            record.revision += 1
        return record

    def repair(self, name: str, first_subprocess_id: int = FIRST_SUBPROCESS_ID) -> int:
        """Drop phantom connections from the stored graph; returns how many."""
        record = self.get(name)
        with record.lock:
            if record.graph is None:
                raise StoreError(f"diagram '{name}' has no parsed graph to repair.")
            before = len(record.graph.connections)
            record.graph.connections = strip_phantom_connections(
                record.graph.nodes, record.graph.connections, first_subprocess_id
            )
            removed = before - len(record.graph.connections)
            if removed:
                record.revision += 1
        return removed
