"""
Placement of subprocess nodes spliced into an existing diagram.

New nodes go to the right of their owning node, stacked by sibling index,
then are nudged until they clear every known vertex.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from drawio_codec.classifier import CellKind, classify_cells
from drawio_codec.extractor import collect_cells, element_to_tree
from drawio_codec.models import CellBounds
from drawio_codec.parser import FormatError, find_model_root, to_number

logger = logging.getLogger("drawio-codec.layout")


@dataclass
class PlacementConfig:
    """Spacing rules for subprocess placement."""
    node_width: float = 120
    node_height: float = 60
    h_gap: float = 100  # owner's right edge -> subprocess left edge
    v_spacing: float = 80  # between stacked siblings
    padding: float = 20  # minimum clearance to other vertices
    shift_down: float = 80
    shift_right: float = 140
    shift_right_every: int = 5
    max_attempts: int = 50


def collect_vertex_bounds(model_xml: str) -> dict[str, CellBounds]:
    """Bounding boxes of every vertex in *model_xml*, keyed by cell id.

    Returns an empty mapping when the XML cannot be parsed; placement then
    proceeds without collision information.
    """
    try:
        root = find_model_root(model_xml)
    except FormatError as exc:
        logger.warning("No vertex positions available: %s", exc.message)
        return {}
    bounds: dict[str, CellBounds] = {}
    for cell in classify_cells(collect_cells(element_to_tree(root))):
        if cell.kind is not CellKind.VERTEX:
            continue
        geom = cell.raw.get("mxGeometry")
        if isinstance(geom, list):
            geom = geom[0] if geom else None
        if not isinstance(geom, dict) or geom.get("relative") == "1":
            continue
        bounds[cell.id] = CellBounds(
            to_number(geom.get("x")),
            to_number(geom.get("y")),
            to_number(geom.get("width"), 120),
            to_number(geom.get("height"), 60),
        )
    return bounds


def subprocess_slot(owner: CellBounds, index: int,
                    config: PlacementConfig) -> CellBounds:
    """Initial slot for the *index*-th subprocess of *owner*."""
    return CellBounds(
        owner.right + config.h_gap,
        owner.y + index * config.v_spacing,
        config.node_width,
        config.node_height,
    )


def avoid_collisions(candidate: CellBounds, occupied: list[CellBounds],
                     config: PlacementConfig) -> CellBounds:
    """Shift *candidate* down (and periodically right) until it overlaps nothing.

    Gives up after ``config.max_attempts`` shifts and keeps the last position.
    """
    x, y = candidate.x, candidate.y
    for attempt in range(1, config.max_attempts + 1):
        box = CellBounds(x, y, candidate.width, candidate.height)
        if not any(box.intersects(o, config.padding) for o in occupied):
            return box
        y += config.shift_down
        if attempt % config.shift_right_every == 0:
            x += config.shift_right
    logger.warning(
        "Placement budget of %d attempts exhausted; using (%s, %s)",
        config.max_attempts, x, y,
    )
    return CellBounds(x, y, candidate.width, candidate.height)


def place_subprocess(owner: CellBounds, index: int, occupied: list[CellBounds],
                     config: PlacementConfig | None = None) -> CellBounds:
    cfg = config or PlacementConfig()
    return avoid_collisions(subprocess_slot(owner, index, cfg), occupied, cfg)
