"""
Write path for new diagrams: canonical graph -> fresh draw.io document.

Only used when no prior document exists; edits to an existing document go
through :mod:`drawio_codec.updater` so unmodeled content survives.
"""

from __future__ import annotations

import datetime
import xml.etree.ElementTree as ET
from typing import Any, Union

from drawio_codec.compression import encode
from drawio_codec.models import (
    CanonicalGraph,
    Connection,
    Geometry,
    MxCell,
    Shape,
    element_to_xml,
)
from drawio_codec.styles import EdgeStylePreset, StyleBuilder, VertexStyle
from drawio_codec.validation import STRUCTURAL_CELL_IDS, ValidationError

NODE_WIDTH = 120
NODE_HEIGHT = 60
ELLIPSE_HEIGHT = 80

_GRAPH_MODEL_ATTRS: dict[str, str] = {
    "dx": "1484",
    "dy": "645",
    "grid": "1",
    "gridSize": "10",
    "guides": "1",
    "tooltips": "1",
    "connect": "1",
    "arrows": "1",
    "fold": "1",
    "page": "1",
    "pageScale": "1",
    "pageWidth": "827",
    "pageHeight": "1169",
    "math": "0",
    "shadow": "0",
}


def escape_xml(value: Any) -> str:
    """Escape the five XML special characters."""
    if value is None:
        return ""
    return (
        str(value)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def edge_id(conn: Connection, ordinal: int) -> str:
    return f"edge_{conn.source}_{conn.target}_{ordinal}"


def connection_style(conn: Connection) -> str:
    sb = StyleBuilder(EdgeStylePreset.DEFAULT)
    if conn.stroke_width is not None:
        sb.stroke_width(conn.stroke_width)
    if conn.stroke_color:
        sb.stroke_color(conn.stroke_color)
    if conn.start_arrow:
        sb.start_arrow(conn.start_arrow)
    if conn.end_arrow:
        sb.end_arrow(conn.end_arrow)
    if conn.dashed is not None or conn.dash_pattern:
        sb.dashed(bool(conn.dashed), conn.dash_pattern or "")
    return sb.build()


def build_cells(graph: CanonicalGraph) -> list[MxCell]:
    """Structural cells, then one vertex per node, then one edge per connection.

    Raises:
        ValidationError: if a node uses the id of a structural cell.
    """
    root_id, layer_id = STRUCTURAL_CELL_IDS
    cells = [MxCell(id=root_id, parent=""), MxCell(id=layer_id, parent=root_id)]
    for node in graph.nodes:
        if node.id in STRUCTURAL_CELL_IDS:
            raise ValidationError(f"Node id '{node.id}' is reserved for a structural cell.")
        height = ELLIPSE_HEIGHT if node.shape is Shape.ELLIPSE else NODE_HEIGHT
        cells.append(MxCell(
            id=node.id,
            value=node.label or "",
            style=VertexStyle.for_shape(node.shape),
            vertex=True,
            geometry=Geometry(x=node.x or 0, y=node.y or 0,
                              width=NODE_WIDTH, height=height),
        ))
    for ordinal, conn in enumerate(graph.connections):
        cells.append(MxCell(
            id=edge_id(conn, ordinal),
            style=connection_style(conn),
            edge=True,
            source=conn.source,
            target=conn.target,
            geometry=Geometry(relative=True),
        ))
    return cells


def build_model_element(graph: CanonicalGraph) -> ET.Element:
    model = ET.Element("mxGraphModel", attrib=dict(_GRAPH_MODEL_ATTRS))
    root = ET.SubElement(model, "root")
    for cell in build_cells(graph):
        root.append(cell.to_element())
    return model


def build_document(
    graph: Union[CanonicalGraph, dict[str, Any]],
    *,
    compressed: bool = False,
    pretty: bool = True,
) -> str:
    """Synthesize a document for *graph*.

    Returns a bare ``<mxGraphModel>`` by default, or an ``<mxfile>`` whose
    single diagram page (named after ``diagramId``) carries the encoded model
    when *compressed* is set.
    """
    if isinstance(graph, dict):
        graph = CanonicalGraph.from_dict(graph)
    model = build_model_element(graph)
    if pretty:
        ET.indent(model, space="  ")
    model_xml = element_to_xml(model)
    if not compressed:
        return model_xml

    mxfile = ET.Element("mxfile", attrib={
        "host": "drawio-codec",
        "modified": datetime.datetime.now(datetime.timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.000Z"
        ),
        "agent": "drawio-codec/1.0",
        "type": "device",
    })
    diagram = ET.SubElement(mxfile, "diagram", attrib={
        "name": graph.diagram_id,
        "id": graph.diagram_id,
    })
    diagram.text = encode(model_xml)
    return element_to_xml(mxfile)
