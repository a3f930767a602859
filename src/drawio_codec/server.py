"""
Draw.io codec MCP server: parse, build and patch draw.io documents.

Exposes 3 tools over an in-memory document store and the stateless codec.

Tools:
  1. document — lifecycle: create, create_from_graph, get_xml, get_graph,
                           list, replace_xml, overwrite_graph, main_flow, delete
  2. edit     — changes:   apply (label edits + subprocesses), repair
  3. codec    — stateless: parse, build, decode, encode, update
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from drawio_codec.builder import build_document
from drawio_codec.compression import DecodeError, decode, encode
from drawio_codec.flow import find_main_flow
from drawio_codec.models import CanonicalGraph, Shape
from drawio_codec.parser import DEFAULT_DIAGRAM_ID, FormatError, parse_document
from drawio_codec.store import DiagramStore, StoreError
from drawio_codec.styles import SubprocessStyle, VertexStyle
from drawio_codec.updater import LabelFormat, UpdaterConfig, update_document
from drawio_codec.validation import (
    ValidationError,
    _CODEC_ACTIONS,
    _DOCUMENT_ACTIONS,
    _EDIT_ACTIONS,
    validate_action,
    validate_graph_dict,
    validate_list,
    validate_node_edit,
    validate_non_empty_string,
)

# ---------------------------------------------------------------------------
# Logging: keep FastMCP's routine INFO messages off stderr.
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("drawio-codec")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "drawio-codec",
    instructions=(
        "MCP server for reading and editing existing draw.io documents.\n\n"
        "=== 3 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. document(action, ...) — create, create_from_graph, get_xml,\n"
        "   get_graph, list, replace_xml, overwrite_graph, main_flow, delete.\n"
        "2. edit(action, ...) — apply (relabel nodes, add subprocesses),\n"
        "   repair (drop connections to missing nodes).\n"
        "3. codec(action, ...) — stateless parse, build, decode, encode, update.\n\n"
        "=== RULES ===\n"
        "- Edits patch the stored XML in place; unknown content is preserved.\n"
        "- Applying the same subprocess twice reuses the node but adds a connector.\n"
        "- Subprocess 'parent' is omitted (owner) or the index of an earlier sibling.\n"
        "- Compressed documents stay compressed after edits.\n"
    ),
)

# In-memory document store; it locks per document internally.
_store = DiagramStore()


# ===================================================================
# RESOURCES
# ===================================================================

@mcp.resource("drawio://shapes")
def shape_catalog() -> str:
    """Return the shape categories with the styles written for each."""
    entries: list[str] = []
    for shape in Shape:
        entries.append(
            f"  {shape.value}: new={VertexStyle.for_shape(shape)} "
            f"subprocess={SubprocessStyle.for_shape(shape)}"
        )
    return "Shape categories:\n" + "\n".join(entries)


# ===================================================================
# Helpers
# ===================================================================

def _validated_edits(edits: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    items = validate_list(edits or [], "edits", min_length=1)
    for i, e in enumerate(items):
        validate_node_edit(e, i)
    return items


def _label_format(value: str) -> LabelFormat:
    try:
        return LabelFormat(value.strip().lower() or LabelFormat.PLAIN.value)
    except ValueError:
        choices = ", ".join(f.value for f in LabelFormat)
        raise ValidationError(f"'label_format' must be one of [{choices}], got '{value}'.")


# ===================================================================
# TOOL 1: document: lifecycle
# ===================================================================

@mcp.tool()
def document(
    action: str,
    name: str = "",
    xml_content: str = "",
    graph: dict[str, Any] | None = None,
    compressed: bool = False,
    source_file_name: str = "",
    process_owner: str = "",
) -> str:
    """Stored document lifecycle.

    Actions:
      create            — Store a draw.io document and parse it. Params: name,
                          xml_content, source_file_name?, process_owner?.
      create_from_graph — Build a new document from a canonical graph.
                          Params: name, graph, compressed?.
      get_xml           — Return the stored document text. Params: name.
      get_graph         — Return the parsed graph as JSON. Params: name.
      list              — List stored documents. No params needed.
      replace_xml       — Replace the document text (e.g. after editing it in
                          draw.io). Owners and subprocesses are kept. Params: name, xml_content.
      overwrite_graph   — Replace the stored graph only. Params: name, graph.
      main_flow         — Longest start-to-end path plus branches. Params: name.
      delete            — Remove a stored document. Params: name.

    Args:
        action: One of the actions listed above.
        name: Document name (key in the store).
        xml_content: draw.io document text (plain, framed or compressed).
        graph: Canonical graph {diagramId?, nodes, connections}.
        compressed: Write a compressed <mxfile> (create_from_graph only).
        source_file_name: Original upload file name, kept as metadata.
        process_owner: Owner of the whole process, kept as metadata.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "document", _DOCUMENT_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list":
        result: list[dict[str, Any]] = []
        for r in _store.list():
            entry: dict[str, Any] = {"name": r.name, "revision": r.revision}
            if r.graph is None:
                entry["parseError"] = r.parse_error
            else:
                entry["nodes"] = len(r.graph.nodes)
                entry["connections"] = len(r.graph.connections)
            result.append(entry)
        return json.dumps(result, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        try:
            validate_non_empty_string(xml_content, "xml_content")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        record = _store.create(
            name, xml_content,
            source_file_name=source_file_name or None,
            process_owner=process_owner or None,
        )
        if record.graph is None:
            return f"Document '{name}' stored without a graph: {record.parse_error}"
        return (
            f"Document '{name}' stored with {len(record.graph.nodes)} node(s) "
            f"and {len(record.graph.connections)} connection(s)."
        )

    elif action == "create_from_graph":
        try:
            validate_graph_dict(graph, for_build=True)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        record = _store.create_from_graph(
            name, graph, compressed=compressed, process_owner=process_owner or None,
        )
        if record.graph is None:
            return f"Document '{name}' built without a graph: {record.parse_error}"
        return f"Document '{name}' built from graph ({len(record.graph.nodes)} node(s))."

    try:
        if action == "get_xml":
            return _store.get(name).text

        elif action == "get_graph":
            return json.dumps(_store.get(name).to_dict(), indent=2)

        elif action == "replace_xml":
            validate_non_empty_string(xml_content, "xml_content")
            record = _store.replace_text(name, xml_content)
            if record.graph is None:
                return f"Document '{name}' updated without a graph: {record.parse_error}"
            return f"Document '{name}' updated (revision {record.revision})."

        elif action == "overwrite_graph":
            validate_graph_dict(graph)
            record = _store.overwrite_graph(name, graph)
            return f"Graph of '{name}' replaced (revision {record.revision})."

        elif action == "main_flow":
            record = _store.get(name)
            if record.graph is None:
                return f"Error: diagram '{name}' has no parsed graph."
            flow = find_main_flow(record.graph.nodes, record.graph.connections)
            return json.dumps(flow.to_dict(), indent=2)

        elif action == "delete":
            _store.delete(name)
            return f"Document '{name}' deleted."
    except (ValidationError, StoreError) as exc:
        return f"Error: {exc.message}"

    return f"Error: unknown document action '{action}'."


# ===================================================================
# TOOL 2: edit: changes to stored documents
# ===================================================================

@mcp.tool()
def edit(
    action: str,
    name: str = "",
    edits: list[dict[str, Any]] | None = None,
) -> str:
    """Change a stored document.

    Actions:
      apply  — Patch the document in place. Params: name, edits (list of
               {id, editedLabel?, x?, y?, subprocesses?: [name | {name,
               shape?, parent?}]}).
      repair — Drop graph connections whose endpoints no longer exist.
               Params: name.

    Args:
        action: apply or repair.
        name: Document name.
        edits: Node edits for apply.

    Returns:
        JSON summary of the updated document.
    """
    try:
        action = validate_action(action, "edit", _EDIT_ACTIONS)
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    try:
        if action == "apply":
            items = _validated_edits(edits)
            record = _store.apply_edits(name, items)
            return json.dumps(record.to_dict(), indent=2)

        elif action == "repair":
            removed = _store.repair(name)
            return json.dumps({"name": name, "removed": removed})
    except (ValidationError, StoreError, DecodeError) as exc:
        return f"Error: {exc.message}"

    return f"Error: unknown edit action '{action}'."


# ===================================================================
# TOOL 3: codec: stateless operations
# ===================================================================

@mcp.tool()
def codec(
    action: str,
    xml_content: str = "",
    graph: dict[str, Any] | None = None,
    edits: list[dict[str, Any]] | None = None,
    compressed: bool = False,
    label_format: str = "plain",
    diagram_id: str = DEFAULT_DIAGRAM_ID,
) -> str:
    """Codec operations that touch no stored state.

    Actions:
      parse  — Document text to canonical graph JSON. Params: xml_content, diagram_id?.
      build  — Canonical graph to document text. Params: graph, compressed?.
      decode — Compressed payload to model XML. Params: xml_content.
      encode — Model XML to compressed payload. Params: xml_content.
      update — Apply edits to document text. Params: xml_content, edits, label_format?.

    Args:
        action: One of the actions listed above.
        xml_content: Document text or payload.
        graph: Canonical graph for build.
        edits: Node edits for update.
        compressed: Wrap the built model in a compressed <mxfile>.
        label_format: plain or html_paragraphs (update only).
        diagram_id: Diagram id used when the document names none.

    Returns:
        XML text, payload, or JSON depending on action.
    """
    try:
        action = validate_action(action, "codec", _CODEC_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    try:
        if action == "build":
            validate_graph_dict(graph, for_build=True)
            return build_document(CanonicalGraph.from_dict(graph), compressed=compressed)

        validate_non_empty_string(xml_content, "xml_content")

        if action == "parse":
            parsed = parse_document(xml_content, diagram_id or DEFAULT_DIAGRAM_ID)
            return json.dumps(parsed.to_dict(), indent=2)

        elif action == "decode":
            return decode(xml_content.strip())

        elif action == "encode":
            return encode(xml_content)

        elif action == "update":
            items = _validated_edits(edits)
            config = UpdaterConfig(label_format=_label_format(label_format))
            return update_document(xml_content, items, config)
    except (ValidationError, DecodeError, FormatError) as exc:
        return f"Error: {exc.message}"

    return f"Error: unknown codec action '{action}'."


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
