"""
Input validation for codec operations and MCP tool parameters.

Provides reusable validators that produce clear error messages for edit
sets and graphs received from form views or LLM callers, plus the sanity
check applied to every patched document.
"""

from __future__ import annotations

from typing import Any


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_identity(value: Any) -> bool:
    return (isinstance(value, str) and bool(value.strip())) or (
        isinstance(value, int) and not isinstance(value, bool)
    )


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_DOCUMENT_ACTIONS = {
    "CREATE", "CREATE_FROM_GRAPH", "GET_XML", "GET_GRAPH", "LIST",
    "REPLACE_XML", "OVERWRITE_GRAPH", "MAIN_FLOW", "DELETE",
}
_EDIT_ACTIONS = {"APPLY", "REPAIR"}
_CODEC_ACTIONS = {"PARSE", "BUILD", "DECODE", "ENCODE", "UPDATE"}

# Ids of the structural root and default layer cells of a built document.
STRUCTURAL_CELL_IDS = ("0", "1")

_SHAPES = {"rectangle", "ellipse", "decision", "data", "document",
           "subprocess", "subprocess-container"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_shape(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or value.strip().lower() not in _SHAPES:
        choices = ", ".join(sorted(_SHAPES))
        raise ValidationError(f"'{field_name}' must be one of [{choices}], got '{value}'.")
    return value.strip().lower()


def validate_subprocess(s: Any, index: int, node_index: int) -> None:
    """Validate one subprocess entry: a name string or a dict."""
    where = f"Node edit at index {node_index}, subprocess {index}"
    if isinstance(s, str):
        return
    if not isinstance(s, dict):
        raise ValidationError(f"{where} must be a string or a dict/object.")
    if "name" not in s or not isinstance(s["name"], str):
        raise ValidationError(f"{where} missing required string key 'name'.")
    if "shape" in s and s["shape"] is not None:
        validate_shape(s["shape"], f"{where}: shape")
    parent = s.get("parent")
    if parent is None or (isinstance(parent, str) and not parent.isdigit()):
        return
    if isinstance(parent, str):
        parent = int(parent)
    if not isinstance(parent, int) or isinstance(parent, bool):
        raise ValidationError(f"{where}: 'parent' must be a sibling index or omitted.")
    if parent < 0 or parent >= index:
        raise ValidationError(
            f"{where}: 'parent' must reference an earlier sibling (0..{index - 1}), got {parent}."
        )


def validate_node_edit(e: Any, index: int) -> None:
    """Validate a single node edit dict from an edit set."""
    if not isinstance(e, dict):
        raise ValidationError(f"Node edit at index {index} must be a dict/object.")
    if not _is_identity(e.get("id")):
        raise ValidationError(f"Node edit at index {index} missing required key 'id'.")
    for key in ("editedLabel", "label"):
        if e.get(key) is not None and not isinstance(e[key], str):
            raise ValidationError(f"Node edit at index {index}: '{key}' must be a string.")
    for key in ("x", "y"):
        if e.get(key) is not None and not _is_number(e[key]):
            raise ValidationError(f"Node edit at index {index}: '{key}' must be a number.")
    subprocesses = e.get("subprocesses")
    if subprocesses is None:
        return
    if not isinstance(subprocesses, list):
        raise ValidationError(f"Node edit at index {index}: 'subprocesses' must be a list.")
    for i, s in enumerate(subprocesses):
        validate_subprocess(s, i, index)


def validate_connection_dict(c: Any, index: int) -> None:
    if not isinstance(c, dict):
        raise ValidationError(f"Connection at index {index} must be a dict/object.")
    for key in ("from", "to"):
        if not _is_identity(c.get(key)):
            raise ValidationError(f"Connection at index {index} missing required key '{key}'.")
    if c.get("strokeWidth") is not None and not _is_number(c["strokeWidth"]):
        raise ValidationError(f"Connection at index {index}: 'strokeWidth' must be a number.")


def validate_graph_dict(g: Any, *, for_build: bool = False) -> dict:
    """Validate a canonical graph dict: ``{diagramId?, nodes, connections}``.

    With *for_build*, node ids that a built document gives to its structural
    cells are rejected as well.
    """
    validate_dict(g, "graph")
    nodes = validate_list(g.get("nodes"), "nodes")
    connections = validate_list(g.get("connections", []), "connections")
    seen: set[str] = set()
    for i, n in enumerate(nodes):
        if not isinstance(n, dict):
            raise ValidationError(f"Node at index {i} must be a dict/object.")
        if not _is_identity(n.get("id")):
            raise ValidationError(f"Node at index {i} missing required key 'id'.")
        node_id = str(n["id"])
        if node_id in seen:
            raise ValidationError(f"Node at index {i}: duplicate id '{node_id}'.")
        seen.add(node_id)
        if for_build and node_id in STRUCTURAL_CELL_IDS:
            raise ValidationError(
                f"Node at index {i}: id '{node_id}' is reserved for a structural cell."
            )
        if n.get("shape") is not None:
            validate_shape(n["shape"], f"nodes[{i}].shape")
        for key in ("x", "y"):
            if n.get(key) is not None and not _is_number(n[key]):
                raise ValidationError(f"Node at index {i}: '{key}' must be a number.")
    for i, c in enumerate(connections):
        validate_connection_dict(c, i)
    return g


def validate_patched_model(model_xml: str) -> str:
    """Sanity check applied to model XML after an in-place edit."""
    if not model_xml or not model_xml.strip():
        raise ValidationError("Updated XML is empty.")
    if "<mxGraphModel" not in model_xml:
        raise ValidationError("Updated XML is missing the mxGraphModel tag.")
    if "<root" not in model_xml or "</root>" not in model_xml:
        raise ValidationError("Updated XML is missing the root tags.")
    return model_xml
