"""
Classification of extracted cells into vertices, edges and structure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from drawio_codec.extractor import RawCell
from drawio_codec.models import Shape
from drawio_codec.validation import STRUCTURAL_CELL_IDS


class CellKind(Enum):
    ROOT = "root"
    VERTEX = "vertex"
    EDGE = "edge"
    UNKNOWN = "unknown"


@dataclass
class ClassifiedCell:
    raw: RawCell
    kind: CellKind

    @property
    def id(self) -> str:
        return self.raw.id


# Ordered: a style mentioning several keywords takes the first rule's shape.
SHAPE_RULES: tuple[tuple[tuple[str, ...], Shape], ...] = (
    (("ellipse",), Shape.ELLIPSE),
    (("rhombus", "diamond"), Shape.DECISION),
    (("parallelogram",), Shape.DATA),
    (("document",), Shape.DOCUMENT),
    (("swimlane", "subprocess", "shape=process"), Shape.SUBPROCESS),
)


def is_truthy_flag(value: Any) -> bool:
    """draw.io flags arrive as ``1``, ``"1"`` or ``True`` depending on the parser."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    return False


def infer_shape(style: Any) -> Shape:
    s = str(style or "").lower()
    for keywords, shape in SHAPE_RULES:
        if any(k in s for k in keywords):
            return shape
    return Shape.RECTANGLE


def classify(raw: RawCell) -> CellKind:
    if raw.id in STRUCTURAL_CELL_IDS:
        return CellKind.ROOT
    if not raw.attribute_names() - {"id"}:
        return CellKind.ROOT

    vertex = raw.get("vertex")
    edge = raw.get("edge")
    if vertex is None and edge is None and str(raw.get("parent", "")) == "0":
        # Extra layers hang off the root cell just like the default layer.
        return CellKind.ROOT

    if is_truthy_flag(vertex):
        return CellKind.VERTEX
    if is_truthy_flag(edge):
        return CellKind.EDGE
    if vertex is None and edge is None:
        if raw.get("source") or raw.get("target"):
            return CellKind.EDGE
        return CellKind.VERTEX
    return CellKind.UNKNOWN


def classify_cells(cells: list[RawCell]) -> list[ClassifiedCell]:
    return [ClassifiedCell(raw=c, kind=classify(c)) for c in cells]
