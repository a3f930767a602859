"""
Canonical graph model and mxCell serialization helpers.

The canonical graph (``{diagramId, nodes, connections}``) is the
storage-facing view of a draw.io document.  ``MxCell`` / ``Geometry`` /
``Point`` render the small subset of mxGraph XML the codec ever writes.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Shape(Enum):
    """Shape categories the codec distinguishes."""
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    DECISION = "decision"
    DATA = "data"
    DOCUMENT = "document"
    SUBPROCESS = "subprocess"  # swimlane / subprocess container

    @classmethod
    def from_value(cls, value: Any) -> Shape:
        """Lenient lookup; unknown or empty values map to RECTANGLE."""
        if isinstance(value, Shape):
            return value
        if not value:
            return cls.RECTANGLE
        key = str(value).strip().lower()
        if key == "subprocess-container":
            return cls.SUBPROCESS
        for member in cls:
            if member.value == key:
                return member
        return cls.RECTANGLE


# ---------------------------------------------------------------------------
# Canonical graph
# ---------------------------------------------------------------------------

@dataclass
class Subprocess:
    """A step injected as a decomposition of a node.

    ``parent`` is ``None`` when the subprocess hangs off the owning node, or
    the index of an earlier sibling subprocess it chains from.
    """
    name: str
    shape: Shape = Shape.RECTANGLE
    parent: Optional[int] = None

    @classmethod
    def from_value(cls, value: Any) -> Subprocess:
        if isinstance(value, Subprocess):
            return value
        if isinstance(value, str):
            return cls(name=value)
        parent = value.get("parent")
        if isinstance(parent, str):
            parent = int(parent) if parent.isdigit() else None
        return cls(
            name=str(value.get("name", "")),
            shape=Shape.from_value(value.get("shape")),
            parent=parent,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "shape": self.shape.value}
        if self.parent is not None:
            data["parent"] = self.parent
        return data


@dataclass
class Node:
    id: str
    label: str = ""
    shape: Shape = Shape.RECTANGLE
    x: float = 0
    y: float = 0
    owner: Optional[str] = None
    subprocesses: list[Subprocess] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or ""),
            shape=Shape.from_value(data.get("shape")),
            x=data.get("x") or 0,
            y=data.get("y") or 0,
            owner=data.get("owner") or data.get("businessOwner") or None,
            subprocesses=[
                Subprocess.from_value(s) for s in data.get("subprocesses") or []
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "shape": self.shape.value,
            "x": self.x,
            "y": self.y,
        }
        if self.owner:
            data["owner"] = self.owner
        if self.subprocesses:
            data["subprocesses"] = [s.to_dict() for s in self.subprocesses]
        return data


@dataclass
class Connection:
    source: str
    target: str
    id: Optional[str] = None
    stroke_width: Optional[float] = None
    stroke_color: Optional[str] = None
    start_arrow: Optional[str] = None
    end_arrow: Optional[str] = None
    dashed: Optional[bool] = None
    dash_pattern: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return self.source, self.target

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Connection:
        cid = data.get("id")
        return cls(
            source=str(data["from"]),
            target=str(data["to"]),
            id=str(cid) if cid is not None else None,
            stroke_width=data.get("strokeWidth"),
            stroke_color=data.get("strokeColor"),
            start_arrow=data.get("startArrow"),
            end_arrow=data.get("endArrow"),
            dashed=data.get("dashed"),
            dash_pattern=data.get("dashPattern"),
        )

    def style_attributes(self) -> dict[str, Any]:
        """Style-derived attributes that are set, keyed by draw.io style key."""
        values = {
            "strokeWidth": self.stroke_width,
            "strokeColor": self.stroke_color,
            "startArrow": self.start_arrow,
            "endArrow": self.end_arrow,
            "dashed": self.dashed,
            "dashPattern": self.dash_pattern,
        }
        return {k: v for k, v in values.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"from": self.source, "to": self.target}
        if self.id is not None:
            data["id"] = self.id
        data.update(self.style_attributes())
        return data


@dataclass
class CanonicalGraph:
    diagram_id: str = "Page-1"
    nodes: list[Node] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanonicalGraph:
        return cls(
            diagram_id=str(data.get("diagramId") or "Page-1"),
            nodes=[Node.from_dict(n) for n in data.get("nodes") or []],
            connections=[
                Connection.from_dict(c) for c in data.get("connections") or []
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "diagramId": self.diagram_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": [c.to_dict() for c in self.connections],
        }

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


@dataclass
class NodeEdit:
    """A form-view edit for one node: new label and/or subprocesses to add."""
    id: str
    label: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    subprocesses: list[Subprocess] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeEdit:
        label = data.get("editedLabel")
        if label is None:
            label = data.get("label")
        return cls(
            id=str(data["id"]),
            label=label,
            x=data.get("x"),
            y=data.get("y"),
            subprocesses=[
                Subprocess.from_value(s) for s in data.get("subprocesses") or []
            ],
        )


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass
class CellBounds:
    """Axis-aligned bounding box for a cell."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def intersects(self, other: CellBounds, margin: float = 0) -> bool:
        """Check if two bounding boxes overlap (with optional margin)."""
        return not (
            self.right + margin <= other.x
            or other.right + margin <= self.x
            or self.bottom + margin <= other.y
            or other.bottom + margin <= self.y
        )


def format_number(value: float) -> str:
    """Render a coordinate the way draw.io does (no trailing ``.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def to_element(self, role: Optional[str] = None) -> ET.Element:
        el = ET.Element(
            "mxPoint", attrib={"x": format_number(self.x), "y": format_number(self.y)}
        )
        if role:
            el.set("as", role)
        return el


@dataclass
class Geometry:
    """Geometry of an mxCell (position + size for vertices, relative for edges)."""
    x: float = 0
    y: float = 0
    width: float = 120
    height: float = 60
    relative: bool = False
    points: list[Point] = field(default_factory=list)

    def to_element(self) -> ET.Element:
        attrib: dict[str, str] = {}
        if self.relative:
            attrib["relative"] = "1"
        else:
            attrib["x"] = format_number(self.x)
            attrib["y"] = format_number(self.y)
            attrib["width"] = format_number(self.width)
            attrib["height"] = format_number(self.height)
        attrib["as"] = "geometry"
        el = ET.Element("mxGeometry", attrib=attrib)
        if self.points:
            arr = ET.SubElement(el, "Array", attrib={"as": "points"})
            for pt in self.points:
                arr.append(pt.to_element())
        return el


@dataclass
class MxCell:
    """A single mxCell element: vertex, edge or structural cell."""
    id: str
    value: Optional[str] = None
    style: str = ""
    parent: str = "1"
    vertex: bool = False
    edge: bool = False
    source: Optional[str] = None
    target: Optional[str] = None
    geometry: Optional[Geometry] = None

    def to_element(self) -> ET.Element:
        attrib: dict[str, str] = {"id": self.id}
        if self.value is not None:
            attrib["value"] = self.value
        if self.style:
            attrib["style"] = self.style
        if self.parent:
            attrib["parent"] = self.parent
        if self.vertex:
            attrib["vertex"] = "1"
        if self.edge:
            attrib["edge"] = "1"
        if self.source:
            attrib["source"] = self.source
        if self.target:
            attrib["target"] = self.target
        el = ET.Element("mxCell", attrib=attrib)
        if self.geometry:
            el.append(self.geometry.to_element())
        return el

    def to_xml(self) -> str:
        return element_to_xml(self.to_element())


def element_to_xml(element: ET.Element) -> str:
    """Serialize an element with all five XML special characters escaped."""
    # ElementTree leaves apostrophes alone; every one it emits sits inside
    # double-quoted attribute values or text, so a blanket replace is safe.
    return ET.tostring(element, encoding="unicode").replace("'", "&apos;")
