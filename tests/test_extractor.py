"""Tests for cell extraction and classification."""

import xml.etree.ElementTree as ET

from drawio_codec.classifier import CellKind, classify, classify_cells, infer_shape, is_truthy_flag
from drawio_codec.extractor import RawCell, collect_cells, element_to_tree
from drawio_codec.models import Shape


def _cells(xml: str) -> list[RawCell]:
    return collect_cells(element_to_tree(ET.fromstring(xml)))


class TestElementToTree:
    def test_single_child_is_dict(self) -> None:
        tree = element_to_tree(ET.fromstring('<a id="1"><b x="2"/></a>'))
        assert tree == {"id": "1", "b": {"x": "2"}}

    def test_repeated_children_become_list(self) -> None:
        tree = element_to_tree(ET.fromstring('<root><c id="1"/><c id="2"/><c id="3"/></root>'))
        assert [c["id"] for c in tree["c"]] == ["1", "2", "3"]


class TestCollectCells:
    def test_flat_cells_in_order(self) -> None:
        cells = _cells(
            '<root><mxCell id="0"/><mxCell id="1" parent="0"/>'
            '<mxCell id="2" vertex="1" parent="1"/></root>'
        )
        assert [c.id for c in cells] == ["0", "1", "2"]

    def test_wrapper_emitted_once(self) -> None:
        cells = _cells(
            '<root><mxCell id="0"/>'
            '<UserObject id="7" label="Approve" owner="Finance">'
            '<mxCell style="rounded=1" vertex="1" parent="1"><mxGeometry x="5" as="geometry"/></mxCell>'
            '</UserObject></root>'
        )
        assert [c.id for c in cells] == ["0", "7"]
        wrapped = cells[1]
        assert wrapped.wrapper is not None
        assert wrapped.get("vertex") == "1"
        assert wrapped.get("label") == "Approve"
        assert wrapped.get("missing", "dflt") == "dflt"

    def test_object_tag_wrapper(self) -> None:
        cells = _cells(
            '<root><object id="9" label="Doc"><mxCell vertex="1" parent="1"/></object></root>'
        )
        assert len(cells) == 1
        assert cells[0].id == "9"

    def test_cells_nested_below_wrapped_cell(self) -> None:
        cells = _cells(
            '<root><UserObject id="g" label="Group"><mxCell vertex="1">'
            '<mxCell id="inner" vertex="1"/></mxCell></UserObject></root>'
        )
        assert [c.id for c in cells] == ["g", "inner"]

    def test_cycle_guard(self) -> None:
        a: dict = {"id": "a"}
        b: dict = {"id": "b", "child": a}
        a["child"] = b
        cells = collect_cells({"list": [a, b, a]})
        assert sorted(c.id for c in cells) == ["a", "b"]

    def test_elements_without_id_skipped(self) -> None:
        cells = _cells('<root><mxCell id="2" vertex="1"><mxGeometry x="1" as="geometry"/></mxCell></root>')
        assert [c.id for c in cells] == ["2"]


class TestClassify:
    def test_structural_ids(self) -> None:
        assert classify(RawCell({"id": "0"})) is CellKind.ROOT
        assert classify(RawCell({"id": "1", "parent": "0"})) is CellKind.ROOT

    def test_identity_only(self) -> None:
        assert classify(RawCell({"id": "x"})) is CellKind.ROOT

    def test_extra_layer(self) -> None:
        assert classify(RawCell({"id": "layer2", "parent": "0", "value": "Notes"})) is CellKind.ROOT

    def test_vertex_flag(self) -> None:
        assert classify(RawCell({"id": "5", "vertex": "1", "parent": "1"})) is CellKind.VERTEX
        assert classify(RawCell({"id": "5", "vertex": 1})) is CellKind.VERTEX
        assert classify(RawCell({"id": "5", "vertex": True})) is CellKind.VERTEX

    def test_edge_flag(self) -> None:
        assert classify(RawCell({"id": "e", "edge": "1", "parent": "1"})) is CellKind.EDGE

    def test_no_flags_with_endpoints_is_edge(self) -> None:
        assert classify(RawCell({"id": "e", "source": "2", "parent": "1"})) is CellKind.EDGE

    def test_no_flags_without_endpoints_is_vertex(self) -> None:
        assert classify(RawCell({"id": "v", "value": "A", "parent": "1"})) is CellKind.VERTEX

    def test_flags_explicitly_off(self) -> None:
        assert classify(RawCell({"id": "z", "vertex": "0", "parent": "1"})) is CellKind.UNKNOWN

    def test_classify_cells_keeps_order(self) -> None:
        raws = [RawCell({"id": "0"}), RawCell({"id": "3", "vertex": "1"})]
        kinds = [c.kind for c in classify_cells(raws)]
        assert kinds == [CellKind.ROOT, CellKind.VERTEX]


class TestInferShape:
    def test_ellipse_wins_over_rhombus(self) -> None:
        assert infer_shape("rhombus;ellipse;whiteSpace=wrap") is Shape.ELLIPSE

    def test_decision(self) -> None:
        assert infer_shape("rhombus;whiteSpace=wrap;html=1;") is Shape.DECISION
        assert infer_shape("shape=diamond") is Shape.DECISION

    def test_data(self) -> None:
        assert infer_shape("shape=parallelogram;perimeter=parallelogramPerimeter") is Shape.DATA

    def test_document(self) -> None:
        assert infer_shape("shape=document;whiteSpace=wrap") is Shape.DOCUMENT

    def test_subprocess(self) -> None:
        assert infer_shape("swimlane;startSize=20") is Shape.SUBPROCESS
        assert infer_shape("shape=subprocess") is Shape.SUBPROCESS
        assert infer_shape("whiteSpace=wrap;html=1;shape=process;") is Shape.SUBPROCESS

    def test_case_insensitive(self) -> None:
        assert infer_shape("ELLIPSE") is Shape.ELLIPSE

    def test_default(self) -> None:
        assert infer_shape("rounded=0;whiteSpace=wrap") is Shape.RECTANGLE
        assert infer_shape(None) is Shape.RECTANGLE


def test_truthy_flags() -> None:
    assert is_truthy_flag("1")
    assert is_truthy_flag(1)
    assert is_truthy_flag(True)
    assert is_truthy_flag("true")
    assert not is_truthy_flag("0")
    assert not is_truthy_flag(None)
    assert not is_truthy_flag(0)
