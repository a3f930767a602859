"""
Cell extraction from parsed draw.io documents.

Documents are first turned into a loosely-typed tree (attributes as fields,
child tags as dict or list-of-dict fields, the same shape JSON-oriented XML
parsers produce).  ``collect_cells`` then walks that tree and returns every
identity-bearing element, wherever it is nested.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Optional

# Tags draw.io uses to attach metadata (label, tooltip, custom keys) to a cell.
WRAPPER_TAGS = ("UserObject", "object")
CELL_TAG = "mxCell"


def element_to_tree(element: ET.Element) -> dict[str, Any]:
    """Convert an element into nested dicts.

    A child tag that occurs once becomes a dict field; repeated siblings
    become a list.  Insertion order follows document order.
    """
    node: dict[str, Any] = dict(element.attrib)
    for child in element:
        value = element_to_tree(child)
        existing = node.get(child.tag)
        if existing is None:
            node[child.tag] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            node[child.tag] = [existing, value]
    return node


@dataclass
class RawCell:
    """An extracted cell, with the metadata wrapper it sat in (if any)."""
    cell: dict[str, Any]
    wrapper: Optional[dict[str, Any]] = None

    @property
    def id(self) -> str:
        source = self.wrapper if self.wrapper is not None else self.cell
        return str(source.get("id", self.cell.get("id", "")))

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a field on the inner cell first, then on the wrapper."""
        if key in self.cell:
            return self.cell[key]
        if self.wrapper is not None and key in self.wrapper:
            return self.wrapper[key]
        return default

    def attribute_names(self) -> set[str]:
        names = set(self.cell)
        if self.wrapper is not None:
            names.update(self.wrapper)
        names.discard(CELL_TAG)
        return names


def _find_inner_cell(obj: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Return the cell held by a wrapper, looking one anonymous level down."""
    inner = obj.get(CELL_TAG)
    if isinstance(inner, dict):
        return inner
    for tag in WRAPPER_TAGS:
        nested = obj.get(tag)
        if isinstance(nested, dict) and "id" not in nested:
            inner = nested.get(CELL_TAG)
            if isinstance(inner, dict):
                return inner
    return None


def collect_cells(tree: Any) -> list[RawCell]:
    """Flatten *tree* into the list of identity-bearing elements, in order."""
    cells: list[RawCell] = []
    _collect(tree, cells, set())
    return cells


def _collect(obj: Any, cells: list[RawCell], visited: set[int]) -> None:
    if not isinstance(obj, (dict, list)):
        return
    # Trees built from dict/JSON input can alias or even contain themselves.
    if id(obj) in visited:
        return
    visited.add(id(obj))

    if isinstance(obj, list):
        for item in obj:
            _collect(item, cells, visited)
        return

    if "id" in obj:
        inner = _find_inner_cell(obj)
        if inner is not None and id(inner) not in visited:
            cells.append(RawCell(cell=inner, wrapper=obj))
            visited.add(id(inner))
            for value in inner.values():
                _collect(value, cells, visited)
        else:
            cells.append(RawCell(cell=obj))

    for value in obj.values():
        _collect(value, cells, visited)
