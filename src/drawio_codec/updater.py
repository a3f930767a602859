"""
In-place document updater.

Applies form-view edits (label changes and added subprocesses) to an
existing draw.io document by patching its text.  Nothing the codec does not
model is touched: tool metadata, attribute order, formatting and unknown
elements all survive, which a parse/rebuild cycle would lose.

The text patching lives behind :class:`DocumentEditor` so a tree-editing
implementation can replace it without changing callers of
:func:`update_document`.
"""

from __future__ import annotations

import html as _html
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union

from drawio_codec.builder import escape_xml
from drawio_codec.layout import PlacementConfig, collect_vertex_bounds, place_subprocess
from drawio_codec.models import CellBounds, Geometry, MxCell, NodeEdit, Point, Subprocess
from drawio_codec.parser import unwrap_document
from drawio_codec.styles import EdgeStylePreset, Port, SubprocessStyle
from drawio_codec.validation import ValidationError, validate_patched_model

logger = logging.getLogger("drawio-codec.updater")

CELL_TAGS = ("mxCell",)
WRAPPER_TAGS = ("UserObject", "object")

_ID_RE = re.compile(r'\bid\s*=\s*"([^"]+)"')
_START_TAG_RE = re.compile(r"<(mxCell|UserObject|object)\b([^>]*?)(/?)>")
_ATTR_RE = re.compile(r'([\w:.-]+)\s*=\s*"([^"]*)"')
_CELL_CLOSE_RE = re.compile(r"</(?:mxCell|UserObject|object)>")
_ROOT_CLOSE = "</root>"
_EDGE_GEOMETRY = '<mxGeometry relative="1" as="geometry"/>'
_WAYPOINT_OFFSET = 20


class LabelFormat(Enum):
    """How edited labels and new subprocess names are written into cells."""
    PLAIN = "plain"
    # The form view's rich-text convention: <div><p>line</p><p>line</p></div>
    HTML_PARAGRAPHS = "html_paragraphs"


@dataclass
class UpdaterConfig:
    label_format: LabelFormat = LabelFormat.PLAIN
    # Synthesized ids start well past draw.io's own low, sequential ids.
    node_id_floor: int = 10000
    node_id_offset: int = 1000
    edge_id_floor: int = 20000
    edge_id_offset: int = 2000
    reuse_existing_nodes: bool = True
    placement: PlacementConfig = field(default_factory=PlacementConfig)


def format_label(label: str, fmt: LabelFormat) -> str:
    if fmt is LabelFormat.HTML_PARAGRAPHS and not ("<" in label and ">" in label):
        return "<div><p>" + label.replace("\n", "</p><p>") + "</p></div>"
    return label


# ---------------------------------------------------------------------------
# Text scanning helpers
# ---------------------------------------------------------------------------

@dataclass
class StartTag:
    """A cell or wrapper start tag found in document text."""
    name: str
    start: int
    end: int
    text: str
    attrs: dict[str, str]
    self_closing: bool

    def attr(self, key: str) -> Optional[str]:
        value = self.attrs.get(key)
        return _html.unescape(value) if value is not None else None


def iter_start_tags(text: str, names: tuple[str, ...] = CELL_TAGS + WRAPPER_TAGS) -> Iterator[StartTag]:
    for m in _START_TAG_RE.finditer(text):
        if m.group(1) not in names:
            continue
        yield StartTag(
            name=m.group(1),
            start=m.start(),
            end=m.end(),
            text=m.group(0),
            attrs=dict(_ATTR_RE.findall(m.group(2))),
            self_closing=m.group(3) == "/",
        )


def scan_ids(text: str) -> set[str]:
    """Every ``id="…"`` value anywhere in *text*, whatever element it is on."""
    return {_html.unescape(v) for v in _ID_RE.findall(text)}


def set_attribute(tag_text: str, name: str, escaped_value: str) -> str:
    """Return *tag_text* with attribute *name* set, appending it if absent."""
    pattern = re.compile(rf'(\s{re.escape(name)}\s*=\s*")[^"]*(")')
    if pattern.search(tag_text):
        return pattern.sub(lambda m: m.group(1) + escaped_value + m.group(2), tag_text, count=1)
    return re.sub(
        r"\s*(/?)>$",
        lambda m: f' {name}="{escaped_value}"{m.group(1)}>',
        tag_text,
        count=1,
    )


def _splice(text: str, tag: StartTag, new_tag_text: str) -> str:
    return text[:tag.start] + new_tag_text + text[tag.end:]


def _is_flag_set(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in ("1", "true")


# ---------------------------------------------------------------------------
# Id allocation
# ---------------------------------------------------------------------------

class IdAllocator:
    """Hands out numeric ids that never collide with *registry*.

    Starts at ``max(floor, highest numeric id + offset)`` and records every id
    it returns in the shared registry.
    """

    def __init__(self, registry: set[str], floor: int, offset: int) -> None:
        highest = max((int(i) for i in registry if i.isdigit()), default=0)
        self._next = max(floor, highest + offset)
        self._registry = registry

    def allocate(self) -> str:
        while str(self._next) in self._registry:
            self._next += 1
        cid = str(self._next)
        self._next += 1
        self._registry.add(cid)
        return cid


# ---------------------------------------------------------------------------
# Patch operations
# ---------------------------------------------------------------------------

def replace_label(text: str, cell_id: str, label: str) -> tuple[str, bool]:
    """Set the label of *cell_id*; returns the new text and whether it matched.

    Tried in order: a wrapper's ``label`` attribute, an mxCell's ``value``
    attribute, then a vertex mxCell that has no ``value`` yet.
    """
    escaped = escape_xml(label)
    for tag in iter_start_tags(text, WRAPPER_TAGS):
        if tag.attr("id") == cell_id and "label" in tag.attrs:
            return _splice(text, tag, set_attribute(tag.text, "label", escaped)), True
    bare: Optional[StartTag] = None
    for tag in iter_start_tags(text, CELL_TAGS):
        if tag.attr("id") != cell_id:
            continue
        if "value" in tag.attrs:
            return _splice(text, tag, set_attribute(tag.text, "value", escaped)), True
        if bare is None and _is_flag_set(tag.attr("vertex")):
            bare = tag
    if bare is not None:
        return _splice(text, bare, set_attribute(bare.text, "value", escaped)), True
    return text, False


def find_vertex_by_label(text: str, name: str) -> Optional[str]:
    """Id of the first vertex whose label is exactly *name*.

    Matches both the plain name and its HTML-paragraph rendering, since
    either may have been written by an earlier edit or by draw.io itself.
    """
    candidates = {name, format_label(name, LabelFormat.HTML_PARAGRAPHS)}
    tags = list(iter_start_tags(text))
    for i, tag in enumerate(tags):
        if tag.name in WRAPPER_TAGS:
            inner = tags[i + 1] if i + 1 < len(tags) and not tag.self_closing else None
            if (
                inner is not None
                and inner.name in CELL_TAGS
                and _is_flag_set(inner.attr("vertex"))
                and tag.attr("label") in candidates
                and tag.attr("id")
            ):
                return tag.attr("id")
        elif (
            _is_flag_set(tag.attr("vertex"))
            and tag.attr("value") in candidates
            and tag.attr("id")
        ):
            return tag.attr("id")
    return None


def splice_fragments(text: str, fragments: list[str]) -> str:
    """Insert *fragments* after the last cell closing tag inside ``<root>``."""
    if not fragments:
        return text
    root_end = text.rfind(_ROOT_CLOSE)
    if root_end < 0:
        logger.warning("No </root> tag found; %d new cell(s) not inserted", len(fragments))
        return text
    insert_at = root_end
    for m in _CELL_CLOSE_RE.finditer(text, 0, root_end):
        insert_at = m.end()
    block = "\n    " + "\n    ".join(fragments) + "\n  "
    return text[:insert_at] + block + text[insert_at:]


def repair_edge_geometry(text: str) -> tuple[str, int]:
    """Give every edge cell an ``<mxGeometry>`` child so it renders on its own.

    Returns the repaired text and the number of edges fixed.
    """
    parts: list[str] = []
    cursor = 0
    fixed = 0
    for tag in iter_start_tags(text, CELL_TAGS):
        if tag.start < cursor or not _is_flag_set(tag.attr("edge")):
            continue
        if tag.self_closing:
            open_tag = re.sub(r"\s*/>$", ">", tag.text)
            parts.append(text[cursor:tag.start])
            parts.append(open_tag + _EDGE_GEOMETRY + "</mxCell>")
            cursor = tag.end
            fixed += 1
            continue
        close = text.find("</mxCell>", tag.end)
        if close < 0 or "<mxGeometry" in text[tag.end:close]:
            continue
        parts.append(text[cursor:tag.end])
        parts.append(_EDGE_GEOMETRY)
        cursor = tag.end
        fixed += 1
    parts.append(text[cursor:])
    return "".join(parts), fixed


# ---------------------------------------------------------------------------
# Editors
# ---------------------------------------------------------------------------

class DocumentEditor:
    """Applies node edits to document text and returns the new text."""

    def apply(self, text: str, edits: list[NodeEdit]) -> str:
        raise NotImplementedError


@dataclass
class _Session:
    """Call-local state for one edit application."""
    text: str
    registry: set[str]
    node_ids: IdAllocator
    edge_ids: IdAllocator
    positions: dict[str, CellBounds]
    created: dict[str, str] = field(default_factory=dict)
    node_fragments: list[str] = field(default_factory=list)
    edge_fragments: list[str] = field(default_factory=list)


class TextPatchEditor(DocumentEditor):
    """String-level editor that preserves all unmodeled document content."""

    def __init__(self, config: Optional[UpdaterConfig] = None) -> None:
        self.config = config or UpdaterConfig()

    def apply(self, text: str, edits: list[NodeEdit]) -> str:
        frame = unwrap_document(text)
        model_xml = frame.model_xml
        registry = scan_ids(model_xml)
        cfg = self.config
        session = _Session(
            text=model_xml,
            registry=registry,
            node_ids=IdAllocator(registry, cfg.node_id_floor, cfg.node_id_offset),
            edge_ids=IdAllocator(registry, cfg.edge_id_floor, cfg.edge_id_offset),
            positions=collect_vertex_bounds(model_xml),
        )
        logger.debug("Registry holds %d ids before patching", len(registry))

        for edit in edits:
            if edit.label is not None:
                formatted = format_label(edit.label, cfg.label_format)
                session.text, matched = replace_label(session.text, edit.id, formatted)
                if not matched:
                    logger.debug("No label attribute found for cell %s", edit.id)
            if edit.subprocesses:
                self._add_subprocesses(session, edit)

        fragments = session.node_fragments + session.edge_fragments
        if session.text == model_xml and not fragments:
            logger.debug("Edits matched nothing; document left untouched")
            return text

        patched = splice_fragments(session.text, fragments)
        patched, fixed = repair_edge_geometry(patched)
        if fixed:
            logger.debug("Added missing geometry to %d edge(s)", fixed)
        try:
            validate_patched_model(patched)
        except ValidationError as exc:
            logger.warning("%s Keeping the original document.", exc.message)
            return text

        logger.debug(
            "Patched document: %d subprocess node(s), %d connector(s) added",
            len(session.node_fragments), len(session.edge_fragments),
        )
        return frame.wrap(patched)

    # -- subprocesses --

    def _owner_bounds(self, session: _Session, edit: NodeEdit) -> CellBounds:
        known = session.positions.get(edit.id)
        if known is not None:
            return known
        placement = self.config.placement
        return CellBounds(edit.x or 0, edit.y or 0, placement.node_width, placement.node_height)

    def _resolve_subprocess(self, session: _Session, sub: Subprocess, index: int,
                            owner: CellBounds) -> str:
        name = sub.name.strip()
        existing = session.created.get(name)
        if existing is None and self.config.reuse_existing_nodes:
            existing = find_vertex_by_label(session.text, name)
        if existing is not None:
            logger.debug("Reusing node %s for subprocess '%s'", existing, name)
            return existing

        sub_id = session.node_ids.allocate()
        box = place_subprocess(owner, index, list(session.positions.values()),
                               self.config.placement)
        session.positions[sub_id] = box
        session.created[name] = sub_id
        session.node_fragments.append(MxCell(
            id=sub_id,
            value=format_label(name, self.config.label_format),
            style=SubprocessStyle.for_shape(sub.shape),
            vertex=True,
            geometry=Geometry(x=box.x, y=box.y, width=box.width, height=box.height),
        ).to_xml())
        return sub_id

    def _add_subprocesses(self, session: _Session, edit: NodeEdit) -> None:
        owner = self._owner_bounds(session, edit)
        if edit.id not in session.registry:
            logger.warning("Owner cell %s not found in document; connecting anyway", edit.id)
        resolved: list[Optional[str]] = []
        for index, sub in enumerate(edit.subprocesses):
            if not sub.name or not sub.name.strip():
                resolved.append(None)
                continue
            sub_id = self._resolve_subprocess(session, sub, index, owner)
            resolved.append(sub_id)

            parent = sub.parent
            if parent is not None and 0 <= parent < index and resolved[parent]:
                session.edge_fragments.append(
                    self._chain_connector(session, resolved[parent], sub_id)
                )
            else:
                session.edge_fragments.append(
                    self._owner_connector(session, edit.id, owner, sub_id)
                )

    def _owner_connector(self, session: _Session, owner_id: str, owner: CellBounds,
                         sub_id: str) -> str:
        # Leaves the owner's right face, enters the subprocess's left face.
        target = session.positions.get(sub_id)
        geometry = Geometry(relative=True)
        if target is not None:
            geometry.points = [
                Point(owner.right + _WAYPOINT_OFFSET, owner.y + owner.height / 2),
                Point(target.x - _WAYPOINT_OFFSET, target.y + target.height / 2),
            ]
        return MxCell(
            id=session.edge_ids.allocate(),
            value="",
            style=EdgeStylePreset.subprocess_connector(Port.RIGHT, Port.LEFT),
            edge=True,
            source=owner_id,
            target=sub_id,
            geometry=geometry,
        ).to_xml()

    def _chain_connector(self, session: _Session, source_id: str, sub_id: str) -> str:
        # Leaves the earlier sibling's bottom face, enters the top face.
        return MxCell(
            id=session.edge_ids.allocate(),
            value="",
            style=EdgeStylePreset.subprocess_connector(Port.BOTTOM, Port.TOP),
            edge=True,
            source=source_id,
            target=sub_id,
            geometry=Geometry(relative=True),
        ).to_xml()


def update_document(
    text: str,
    edits: list[Union[NodeEdit, dict[str, Any]]],
    config: Optional[UpdaterConfig] = None,
    editor: Optional[DocumentEditor] = None,
) -> str:
    """Apply *edits* to document *text* in place and return the new text.

    The result keeps the input's framing (compressed ``<mxfile>``, inline
    ``<mxfile>`` or bare model).  If the patched model fails the sanity check
    the original text is returned unchanged.

    Raises:
        DecodeError: if the input payload cannot be decompressed.
    """
    if not text or not edits:
        return text
    normalized = [e if isinstance(e, NodeEdit) else NodeEdit.from_dict(e) for e in edits]
    return (editor or TextPatchEditor(config)).apply(text, normalized)
