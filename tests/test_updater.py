"""Tests for in-place document updates."""

import logging
import xml.etree.ElementTree as ET

from drawio_codec.compression import encode, is_compressed
from drawio_codec.models import NodeEdit, Shape, Subprocess
from drawio_codec.parser import parse_document, unwrap_document
from drawio_codec.styles import parse_style
from drawio_codec.updater import (
    IdAllocator,
    LabelFormat,
    UpdaterConfig,
    find_vertex_by_label,
    format_label,
    repair_edge_geometry,
    replace_label,
    scan_ids,
    set_attribute,
    splice_fragments,
    update_document,
)

DOC = """<mxGraphModel dx="1484" dy="645" grid="1"><root>
  <mxCell id="0"/>
  <mxCell id="1" parent="0"/>
  <UserObject id="2" label="Receive order" owner="Sales" tooltip="keep me">
    <mxCell style="rounded=0;whiteSpace=wrap;html=1;" vertex="1" parent="1">
      <mxGeometry x="40" y="40" width="120" height="60" as="geometry"/>
    </mxCell>
  </UserObject>
  <mxCell id="3" value="Ship" style="rounded=0;whiteSpace=wrap;html=1;" vertex="1" parent="1">
    <mxGeometry x="40" y="240" width="120" height="60" as="geometry"/>
  </mxCell>
  <mxCell id="4" edge="1" parent="1" source="2" target="3"/>
</root></mxGraphModel>"""


def _cells(xml: str) -> dict[str, ET.Element]:
    return {c.get("id"): c for c in ET.fromstring(xml).iter("mxCell") if c.get("id")}


def _framed_compressed(model: str) -> str:
    return (
        '<mxfile host="app.diagrams.net" modified="2024-01-01T00:00:00.000Z">\n'
        f'  <diagram id="d1" name="Orders">{encode(model)}</diagram>\n'
        "</mxfile>"
    )


# ---------------------------------------------------------------------------
# Subprocess materialization
# ---------------------------------------------------------------------------

class TestSubprocesses:
    def test_adds_node_and_connector(self) -> None:
        out = update_document(DOC, [{"id": "2", "subprocesses": ["Check stock"]}])
        cells = _cells(out)
        node = cells["10000"]
        assert node.get("value") == "Check stock"
        assert node.get("vertex") == "1"
        assert parse_style(node.get("style"))["shape"] == "rect"
        geom = node.find("mxGeometry")
        assert (geom.get("x"), geom.get("y")) == ("260", "40")

        edge = cells["20000"]
        assert (edge.get("source"), edge.get("target")) == ("2", "10000")
        style = parse_style(edge.get("style"))
        assert (style["exitX"], style["exitY"]) == ("1", "0.5")
        assert (style["entryX"], style["entryY"]) == ("0", "0.5")
        assert style["endArrow"] == "block"
        points = [(p.get("x"), p.get("y")) for p in edge.iter("mxPoint")]
        assert points == [("180", "70"), ("240", "70")]

    def test_idempotent_node_accumulating_connectors(self) -> None:
        once = update_document(DOC, [{"id": "2", "subprocesses": ["Check stock"]}])
        twice = update_document(once, [{"id": "2", "subprocesses": ["Check stock"]}])
        g1 = parse_document(once)
        g2 = parse_document(twice)
        assert len(g2.nodes) == len(g1.nodes) == 3
        assert len(g2.connections) == len(g1.connections) + 1
        new_edge_ids = {c.id for c in g2.connections} - {c.id for c in g1.connections}
        assert new_edge_ids == {"22000"}

    def test_reuses_existing_vertex_by_label(self) -> None:
        out = update_document(DOC, [{"id": "2", "subprocesses": ["Ship"]}])
        graph = parse_document(out)
        assert len(graph.nodes) == 2
        assert ("2", "3") in [c.key for c in graph.connections if c.id == "20000"]

    def test_reuses_html_paragraph_label(self) -> None:
        doc = DOC.replace(
            'value="Ship"', 'value="&lt;div&gt;&lt;p&gt;Ship&lt;/p&gt;&lt;/div&gt;"'
        )
        assert find_vertex_by_label(doc, "Ship") == "3"

    def test_wrapped_vertex_found_by_label(self) -> None:
        assert find_vertex_by_label(DOC, "Receive order") == "2"

    def test_wrapped_edge_not_reused(self) -> None:
        doc = DOC.replace(
            '<mxCell id="4" edge="1" parent="1" source="2" target="3"/>',
            '<UserObject id="4" label="Audit"><mxCell edge="1" parent="1" source="2" target="3">'
            '<mxGeometry relative="1" as="geometry"/></mxCell></UserObject>',
        )
        assert find_vertex_by_label(doc, "Audit") is None
        out = update_document(doc, [{"id": "3", "subprocesses": ["Audit"]}])
        audit = next(n for n in parse_document(out).nodes if n.label == "Audit")
        assert audit.id == "10000"
        assert ("3", "10000") in [c.key for c in parse_document(out).connections]

    def test_reuse_can_be_disabled(self) -> None:
        config = UpdaterConfig(reuse_existing_nodes=False)
        out = update_document(DOC, [{"id": "2", "subprocesses": ["Ship"]}], config)
        assert len(parse_document(out).nodes) == 3

    def test_same_name_twice_in_one_application(self) -> None:
        out = update_document(DOC, [
            {"id": "2", "subprocesses": ["QA"]},
            {"id": "3", "subprocesses": ["QA"]},
        ])
        graph = parse_document(out)
        assert [n.label for n in graph.nodes].count("QA") == 1
        qa = next(n for n in graph.nodes if n.label == "QA")
        sources = {c.source for c in graph.connections if c.target == qa.id}
        assert sources == {"2", "3"}

    def test_sibling_chain_and_shapes(self) -> None:
        out = update_document(DOC, [{"id": "3", "subprocesses": [
            {"name": "Pack"},
            {"name": "Label", "parent": 0},
            {"name": "Dispatch", "shape": "document"},
        ]}])
        cells = _cells(out)
        assert [cells[i].get("value") for i in ("10000", "10001", "10002")] == [
            "Pack", "Label", "Dispatch",
        ]
        ys = [cells[i].find("mxGeometry").get("y") for i in ("10000", "10001", "10002")]
        assert ys == ["240", "320", "400"]

        chain = cells["20001"]
        assert (chain.get("source"), chain.get("target")) == ("10000", "10001")
        style = parse_style(chain.get("style"))
        assert (style["exitX"], style["exitY"], style["entryX"], style["entryY"]) == (
            "0.5", "1", "0.5", "0",
        )
        assert cells["20002"].get("source") == "3"

        graph = parse_document(out)
        dispatch = next(n for n in graph.nodes if n.id == "10002")
        assert dispatch.shape is Shape.DOCUMENT

    def test_every_injected_shape_reads_back(self) -> None:
        shapes = ["rectangle", "ellipse", "decision", "data", "document", "subprocess"]
        out = update_document(DOC, [{"id": "3", "subprocesses": [
            {"name": f"Step {shape}", "shape": shape} for shape in shapes
        ]}])
        parsed = {n.label: n.shape for n in parse_document(out).nodes}
        assert [parsed[f"Step {shape}"].value for shape in shapes] == shapes

    def test_blank_names_skipped(self) -> None:
        out = update_document(DOC, [{"id": "2", "subprocesses": ["  ", ""]}])
        assert "10000" not in _cells(out)

    def test_new_cells_spliced_before_root_close(self) -> None:
        out = update_document(DOC, [{"id": "2", "subprocesses": ["Check stock"]}])
        assert out.index('id="10000"') < out.index('id="20000"') < out.index("</root>")
        assert out.index('id="3"') < out.index('id="10000"')

    def test_unmodeled_content_preserved(self) -> None:
        out = update_document(DOC, [{"id": "2", "subprocesses": ["Check stock"]}])
        assert out.startswith(DOC[:DOC.index('<mxCell id="4"')])
        assert 'tooltip="keep me"' in out
        assert 'owner="Sales"' in out
        assert 'dx="1484"' in out

    def test_accepts_node_edit_objects(self) -> None:
        edit = NodeEdit(id="2", subprocesses=[Subprocess("Check stock", Shape.ELLIPSE)])
        cells = _cells(update_document(DOC, [edit]))
        assert "shape=ellipse" in cells["10000"].get("style")

    def test_owner_missing_uses_edit_position(self) -> None:
        out = update_document(DOC, [{"id": "99", "x": 500, "y": 500, "subprocesses": ["Far"]}])
        geom = _cells(out)["10000"].find("mxGeometry")
        assert (geom.get("x"), geom.get("y")) == ("720", "500")


# ---------------------------------------------------------------------------
# Label edits
# ---------------------------------------------------------------------------

class TestLabels:
    def test_wrapper_label(self) -> None:
        out = update_document(DOC, [{"id": "2", "editedLabel": "Receive & check order"}])
        assert 'label="Receive &amp; check order"' in out
        graph = parse_document(out)
        assert graph.find_node("2").label == "Receive & check order"

    def test_cell_value(self) -> None:
        out = update_document(DOC, [{"id": "3", "label": "Ship goods"}])
        assert parse_document(out).find_node("3").label == "Ship goods"

    def test_bare_vertex_gets_value(self) -> None:
        doc = DOC.replace("</root>", '<mxCell id="5" vertex="1" parent="1"/></root>')
        out = update_document(doc, [{"id": "5", "editedLabel": "New"}])
        assert _cells(out)["5"].get("value") == "New"

    def test_html_paragraphs(self) -> None:
        config = UpdaterConfig(label_format=LabelFormat.HTML_PARAGRAPHS)
        out = update_document(DOC, [{"id": "3", "editedLabel": "Line 1\nLine 2"}], config)
        assert _cells(out)["3"].get("value") == "<div><p>Line 1</p><p>Line 2</p></div>"

    def test_unknown_id_leaves_text_untouched(self) -> None:
        assert update_document(DOC, [{"id": "404", "editedLabel": "x"}]) == DOC

    def test_no_edits(self) -> None:
        assert update_document(DOC, []) == DOC


# ---------------------------------------------------------------------------
# Framing, repair, rollback
# ---------------------------------------------------------------------------

class TestDocumentLevel:
    def test_compressed_document_stays_compressed(self) -> None:
        text = _framed_compressed(DOC)
        out = update_document(text, [{"id": "2", "subprocesses": ["Check stock"]}])
        frame_in = unwrap_document(text)
        frame_out = unwrap_document(out)
        assert frame_out.prefix == frame_in.prefix
        assert frame_out.suffix == frame_in.suffix
        assert frame_out.compressed
        assert is_compressed(out[len(frame_out.prefix):-len(frame_out.suffix)])
        assert 'id="10000"' in frame_out.model_xml
        assert parse_document(out).diagram_id == "Orders"

    def test_inline_frame_kept(self) -> None:
        text = f'<mxfile><diagram name="P">{DOC}</diagram></mxfile>'
        out = update_document(text, [{"id": "3", "editedLabel": "Go"}])
        assert out.startswith('<mxfile><diagram name="P"><mxGraphModel')
        assert out.endswith("</mxGraphModel></diagram></mxfile>")

    def test_self_closing_edge_repaired(self) -> None:
        out = update_document(DOC, [{"id": "3", "editedLabel": "Go"}])
        edge = _cells(out)["4"]
        assert edge.find("mxGeometry").get("relative") == "1"

    def test_rollback_on_failed_validation(self, caplog) -> None:
        broken = '<root><mxCell id="0"/><mxCell id="2" value="A" vertex="1" parent="1"/></root>'
        with caplog.at_level(logging.WARNING, logger="drawio-codec.updater"):
            out = update_document(broken, [{"id": "2", "editedLabel": "B"}])
        assert out == broken
        assert "Keeping the original document" in caplog.text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestIdAllocator:
    def test_floor(self) -> None:
        assert IdAllocator({"1", "2", "abc"}, 10000, 1000).allocate() == "10000"

    def test_offset_above_max(self) -> None:
        assert IdAllocator({"1", "15000"}, 10000, 1000).allocate() == "16000"

    def test_skips_registered_ids(self) -> None:
        registry = {"10000", "10001"}
        alloc = IdAllocator(registry, 10000, 0)
        assert alloc.allocate() == "10002"
        assert alloc.allocate() == "10003"
        assert {"10002", "10003"} <= registry


def test_scan_ids() -> None:
    assert scan_ids('<a id="x"/><b  id = "y"/><c data-id="z"/>') == {"x", "y", "z"}


class TestSetAttribute:
    def test_replace(self) -> None:
        assert set_attribute('<mxCell id="1" value="a">', "value", "b") == '<mxCell id="1" value="b">'

    def test_append(self) -> None:
        assert set_attribute('<mxCell id="1" vertex="1">', "value", "b") == (
            '<mxCell id="1" vertex="1" value="b">'
        )

    def test_append_self_closing(self) -> None:
        assert set_attribute('<mxCell id="1"/>', "value", "b") == '<mxCell id="1" value="b"/>'

    def test_prefixed_name_untouched(self) -> None:
        tag = '<UserObject data-label="x" label="y">'
        assert set_attribute(tag, "label", "z") == '<UserObject data-label="x" label="z">'


def test_replace_label_prefers_wrapper() -> None:
    text, matched = replace_label(DOC, "2", "Renamed")
    assert matched
    assert 'label="Renamed"' in text


def test_format_label_keeps_existing_html() -> None:
    assert format_label("<b>x</b>", LabelFormat.HTML_PARAGRAPHS) == "<b>x</b>"
    assert format_label("a\nb", LabelFormat.PLAIN) == "a\nb"


def test_splice_without_closing_tags() -> None:
    text = '<mxGraphModel><root><mxCell id="0"/></root></mxGraphModel>'
    out = splice_fragments(text, ['<mxCell id="9"/>'])
    assert out == (
        '<mxGraphModel><root><mxCell id="0"/>\n    <mxCell id="9"/>\n  </root></mxGraphModel>'
    )


def test_repair_edge_geometry_counts() -> None:
    text = (
        '<root><mxCell id="a" edge="1" source="1" target="2"></mxCell>'
        '<mxCell id="b" edge="1"><mxGeometry relative="1" as="geometry"/></mxCell>'
        '<mxCell id="c" vertex="1"/></root>'
    )
    out, fixed = repair_edge_geometry(text)
    assert fixed == 1
    assert '<mxCell id="a" edge="1" source="1" target="2"><mxGeometry relative="1" as="geometry"/></mxCell>' in out
    assert '<mxCell id="c" vertex="1"/>' in out
