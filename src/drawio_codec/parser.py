"""
Read path: draw.io document text -> canonical graph.

Handles both the framed form (``<mxfile><diagram name="...">payload``
where the payload is compressed or inline XML) and a bare
``<mxGraphModel>`` fragment.
"""

from __future__ import annotations

import html as _html
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Optional

from drawio_codec.classifier import (
    CellKind,
    ClassifiedCell,
    classify_cells,
    infer_shape,
    is_truthy_flag,
)
from drawio_codec.compression import decode, encode, is_compressed
from drawio_codec.extractor import RawCell, collect_cells, element_to_tree
from drawio_codec.models import CanonicalGraph, Connection, Node
from drawio_codec.styles import parse_style

logger = logging.getLogger("drawio-codec.parser")

DEFAULT_DIAGRAM_ID = "Page-1"

_DIAGRAM_RE = re.compile(r"<diagram\b([^>]*)>([\s\S]*?)</diagram>")
_NAME_RE = re.compile(r'(?:^|\s)name\s*=\s*"([^"]*)"')


class FormatError(Exception):
    """Raised when a document holds no usable mxGraphModel."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------

@dataclass
class DocumentFrame:
    """A document split into its untouched wrapper and the model XML.

    ``prefix`` and ``suffix`` are the exact original text around the
    diagram payload, so ``wrap`` reproduces everything outside it verbatim.
    """
    prefix: str
    model_xml: str
    suffix: str
    compressed: bool = False
    name: Optional[str] = None

    def wrap(self, model_xml: str) -> str:
        payload = encode(model_xml) if self.compressed else model_xml
        return self.prefix + payload + self.suffix


def unwrap_document(text: str) -> DocumentFrame:
    """Split *text* into wrapper and model XML, decoding compressed payloads.

    Only the first ``<diagram>`` page is unwrapped; later pages stay in the
    suffix untouched.

    Raises:
        DecodeError: if the payload looks compressed but cannot be inflated.
    """
    match = _DIAGRAM_RE.search(text) if "<mxfile" in text else None
    if match is None:
        if is_compressed(text):
            return DocumentFrame("", decode(text), "", compressed=True)
        return DocumentFrame("", text, "")

    body = match.group(2)
    lead = len(body) - len(body.lstrip())
    trail = len(body) - len(body.rstrip())
    start = match.start(2) + lead
    end = match.end(2) - trail
    payload = text[start:end]

    name_match = _NAME_RE.search(match.group(1))
    name = _html.unescape(name_match.group(1)) if name_match else None

    compressed = is_compressed(payload)
    model_xml = decode(payload) if compressed else payload
    if compressed:
        logger.debug("Decompressed diagram payload (%d chars)", len(model_xml))
    return DocumentFrame(text[:start], model_xml, text[end:], compressed, name)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def find_model_root(model_xml: str) -> ET.Element:
    """Parse model XML and return its ``<root>`` element.

    Raises:
        FormatError: if the XML is malformed or has no mxGraphModel/root.
    """
    try:
        element = ET.fromstring(model_xml)
    except ET.ParseError as exc:
        raise FormatError(f"Failed to parse diagram XML: {exc}") from exc
    model = element if element.tag == "mxGraphModel" else element.find(".//mxGraphModel")
    if model is None:
        raise FormatError(f"mxGraphModel not found (document root is <{element.tag}>).")
    root = model.find("root")
    if root is None:
        raise FormatError("Invalid mxGraphModel: root not found.")
    return root


def parse_document(text: str, default_diagram_id: str = DEFAULT_DIAGRAM_ID) -> CanonicalGraph:
    """Parse draw.io document text into a canonical graph.

    Raises:
        DecodeError: compressed payload that cannot be inflated.
        FormatError: no mxGraphModel root in the document.
    """
    if not isinstance(text, str) or not text.strip():
        raise FormatError("Document must be a non-empty string.")
    frame = unwrap_document(text)
    root = find_model_root(frame.model_xml)
    cells = classify_cells(collect_cells(element_to_tree(root)))
    graph = assemble_graph(cells, frame.name or default_diagram_id)
    logger.debug(
        "Parsed diagram '%s': %d cells, %d nodes, %d connections",
        graph.diagram_id, len(cells), len(graph.nodes), len(graph.connections),
    )
    return graph


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def to_number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    """Coerce a geometry/style value to a number, ints kept as ints."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(number) if number.is_integer() else number


def resolve_label(raw: RawCell) -> str:
    """First non-empty of wrapper label, wrapper value, cell value, cell label."""
    candidates: list[Any] = []
    if raw.wrapper is not None:
        candidates += [raw.wrapper.get("label"), raw.wrapper.get("value")]
    candidates += [raw.cell.get("value"), raw.cell.get("label")]
    for candidate in candidates:
        if candidate not in (None, ""):
            return str(candidate)
    return ""


def _geometry(raw: RawCell) -> dict[str, Any]:
    geom = raw.get("mxGeometry")
    if isinstance(geom, list):
        geom = geom[0] if geom else None
    return geom if isinstance(geom, dict) else {}


def _vertex_to_node(raw: RawCell) -> Node:
    geom = _geometry(raw)
    return Node(
        id=raw.id,
        label=resolve_label(raw),
        shape=infer_shape(raw.get("style")),
        x=to_number(geom.get("x")),
        y=to_number(geom.get("y")),
    )


def _edge_to_connection(raw: RawCell) -> Connection:
    style = parse_style(str(raw.get("style") or ""))
    conn = Connection(
        source=str(raw.get("source")),
        target=str(raw.get("target")),
        id=raw.id,
    )
    if "strokeWidth" in style:
        width = to_number(style["strokeWidth"], default=None)
        if width is not None:
            conn.stroke_width = width
    conn.stroke_color = style.get("strokeColor")
    conn.start_arrow = style.get("startArrow")
    conn.end_arrow = style.get("endArrow")
    if "dashed" in style:
        conn.dashed = is_truthy_flag(style["dashed"])
    conn.dash_pattern = style.get("dashPattern")
    return conn


def assemble_graph(cells: list[ClassifiedCell], diagram_id: str) -> CanonicalGraph:
    """Turn classified cells into the canonical ``{diagramId, nodes, connections}``."""
    graph = CanonicalGraph(diagram_id=diagram_id)
    for cell in cells:
        if cell.kind is CellKind.VERTEX:
            graph.nodes.append(_vertex_to_node(cell.raw))
        elif cell.kind is CellKind.EDGE:
            if not cell.raw.get("source") or not cell.raw.get("target"):
                logger.debug("Dropping edge %s without both endpoints", cell.id)
                continue
            graph.connections.append(_edge_to_connection(cell.raw))
    return graph
