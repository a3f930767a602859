"""
Style strings for cells the codec writes, and parsing of existing ones.

draw.io styles are ``;``-separated tokens: bare shape names (``ellipse``)
and ``key=value`` pairs (``strokeColor=#000000``).
"""

from __future__ import annotations

from drawio_codec.models import Shape, format_number


# ---------------------------------------------------------------------------
# Style builder
# ---------------------------------------------------------------------------

class StyleBuilder:
    """Fluent builder for semicolon-delimited draw.io style strings."""

    def __init__(self, base: str = "") -> None:
        self._parts: dict[str, str] = {}
        self._prefix: str = ""
        if base:
            self._parse(base)

    def _parse(self, raw: str) -> None:
        tokens = [t.strip() for t in raw.split(";") if t.strip()]
        for tok in tokens:
            if "=" in tok:
                k, v = tok.split("=", 1)
                self._parts[k] = v
            else:
                # Shape name prefix like "ellipse", "rhombus", etc.
                self._prefix = tok

    def stroke_color(self, color: str) -> StyleBuilder:
        self._parts["strokeColor"] = color
        return self

    def stroke_width(self, width: float) -> StyleBuilder:
        self._parts["strokeWidth"] = format_number(width)
        return self

    def dashed(self, on: bool = True, pattern: str = "") -> StyleBuilder:
        self._parts["dashed"] = "1" if on else "0"
        if pattern:
            self._parts["dashPattern"] = pattern
        return self

    def end_arrow(self, arrow: str) -> StyleBuilder:
        self._parts["endArrow"] = arrow
        return self

    def start_arrow(self, arrow: str) -> StyleBuilder:
        self._parts["startArrow"] = arrow
        return self

    def exit_point(self, x: float, y: float) -> StyleBuilder:
        self._parts["exitX"] = str(x)
        self._parts["exitY"] = str(y)
        self._parts["exitDx"] = "0"
        self._parts["exitDy"] = "0"
        return self

    def entry_point(self, x: float, y: float) -> StyleBuilder:
        self._parts["entryX"] = str(x)
        self._parts["entryY"] = str(y)
        self._parts["entryDx"] = "0"
        self._parts["entryDy"] = "0"
        return self

    def build(self) -> str:
        parts: list[str] = []
        if self._prefix:
            parts.append(self._prefix)
        for k, v in self._parts.items():
            parts.append(f"{k}={v}")
        return ";".join(parts) + ";"


def parse_style(style: str) -> dict[str, str]:
    """Split a style string into its ``key=value`` pairs (bare tokens skipped)."""
    result: dict[str, str] = {}
    for token in style.split(";"):
        token = token.strip()
        if "=" not in token:
            continue
        key, value = token.split("=", 1)
        result[key.strip()] = value.strip()
    return result


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

class VertexStyle:
    """Vertex styles written for each shape category (new documents)."""

    RECTANGLE = "rounded=0;whiteSpace=wrap;html=1;"
    ELLIPSE = "ellipse;whiteSpace=wrap;html=1;aspect=fixed;"
    DECISION = "rhombus;whiteSpace=wrap;html=1;"
    DATA = "shape=parallelogram;perimeter=parallelogramPerimeter;whiteSpace=wrap;html=1;fixedSize=1;"
    DOCUMENT = "shape=document;whiteSpace=wrap;html=1;"
    SUBPROCESS = "swimlane;whiteSpace=wrap;html=1;"

    @classmethod
    def for_shape(cls, shape: Shape) -> str:
        return getattr(cls, shape.name, cls.RECTANGLE)


class SubprocessStyle:
    """Vertex styles for subprocess nodes spliced into existing documents."""

    BASE = "whiteSpace=wrap;html=1;"
    SHAPES = {
        Shape.RECTANGLE: "shape=rect;",
        Shape.ELLIPSE: "shape=ellipse;",
        Shape.DECISION: "shape=rhombus;",
        Shape.DATA: "shape=parallelogram;",
        Shape.DOCUMENT: "shape=document;",
        Shape.SUBPROCESS: "shape=process;",
    }

    @classmethod
    def for_shape(cls, shape: Shape) -> str:
        return cls.BASE + cls.SHAPES.get(shape, cls.SHAPES[Shape.RECTANGLE])


class Port:
    """Named connection point positions, (x, y) relative to the shape."""
    TOP = (0.5, 0)
    BOTTOM = (0.5, 1)
    LEFT = (0, 0.5)
    RIGHT = (1, 0.5)


class EdgeStylePreset:
    """Connector styles written by the builder and updater."""

    DEFAULT = "edgeStyle=orthogonalEdgeStyle;rounded=0;orthogonalLoop=1;jettySize=auto;html=1;"
    SUBPROCESS = "edgeStyle=none;startArrow=none;endArrow=block;startSize=5;endSize=5;strokeColor=#000000;html=1;"

    @staticmethod
    def subprocess_connector(exit_port: tuple[float, float],
                             entry_port: tuple[float, float]) -> str:
        return (
            StyleBuilder(EdgeStylePreset.SUBPROCESS)
            .exit_point(*exit_port)
            .entry_point(*entry_port)
            .build()
        )
