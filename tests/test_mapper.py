"""Graph <-> wire payload translation."""
import pytest

from ctaflow.schemas.flow import FlowDocument
from ctaflow.schemas.graph import Button, Node
from ctaflow.services.mapper import WireMapper, wire_label


@pytest.fixture
def mapper():
    return WireMapper("biz-1")


@pytest.fixture
def wired(graph, text_snapshot, image_snapshot):
    a, b = graph.add_nodes_batch([text_snapshot, image_snapshot])
    graph.update_node_data(a.id, {"body_params": ["Sam"]})
    graph.update_node_data(b.id, {"header_media_url": " https://cdn.example.com/p.png "})
    graph.connect(a.id, "btn-1", b.id)
    return graph


class TestOutbound:

    def test_payload_uses_pascal_case(self, mapper, wired):
        payload = mapper.to_payload(wired)

        assert payload["FlowName"] == "Test flow"
        assert payload["IsPublished"] is False
        node = payload["Nodes"][0]
        assert node["TemplateName"] == "welcome"
        assert node["TemplateType"] == "text_template"
        assert node["BodyParams"] == ["Sam"]
        assert node["TriggerButtonText"] == "Yes"
        assert node["Buttons"][1] == {
            "Text": "No", "Type": "QUICK_REPLY", "SubType": "", "Value": "",
            "TargetNodeId": "n2", "Index": 1,
        }
        assert payload["Nodes"][1]["HeaderMediaUrl"] == "https://cdn.example.com/p.png"

    def test_edge_carries_button_text(self, mapper, wired):
        payload = mapper.to_payload(wired)

        assert payload["Edges"] == [{"FromNodeId": "n1", "ToNodeId": "n2", "SourceHandle": "No"}]

    def test_unconfigured_nodes_and_empty_buttons_dropped(self, mapper, graph):
        graph.nodes = [
            Node(id="blank"),
            Node(id="x", template_name="x", buttons=[Button(text="  "), Button(text="Go", index=1)]),
        ]

        payload = mapper.to_payload(graph)

        assert [n["Id"] for n in payload["Nodes"]] == ["x"]
        assert [b["Text"] for b in payload["Nodes"][0]["Buttons"]] == ["Go"]

    def test_missing_profile_slot_sent_as_one(self, mapper, graph, image_snapshot):
        node = graph.add_node(image_snapshot)
        assert node.profile_name_slot is None

        payload = mapper.to_payload(graph)

        assert payload["Nodes"][0]["ProfileNameSlot"] == 1
        assert payload["Nodes"][0]["UseProfileName"] is False

    def test_stale_label_rederived_from_handle(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        edge = graph.connect(a.id, "btn-1", b.id)
        graph.update_node_data(a.id, {"buttons": [
            {"text": "Yes", "index": 0},
            {"text": "Nope", "index": 1},
        ]})

        assert edge.label == "No"
        assert wire_label(edge, graph.get_node(a.id)) == "Nope"

    def test_cached_label_kept_when_still_valid(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        edge = graph.connect(a.id, "btn-0", b.id)

        assert wire_label(edge, graph.get_node(a.id)) == "Yes"

    def test_swapped_button_texts_follow_handle(self, mapper, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        edge = graph.connect(a.id, "btn-0", b.id)
        graph.update_node_data(a.id, {"buttons": [
            {"text": "No", "index": 0},
            {"text": "Yes", "index": 1},
        ]})

        payload = mapper.to_payload(graph)

        assert edge.label == "Yes"
        assert payload["Edges"] == [{"FromNodeId": "n1", "ToNodeId": "n2", "SourceHandle": "No"}]
        loaded = mapper.from_document(FlowDocument.model_validate(payload)).graph
        assert [e.source_handle for e in loaded.edges] == ["btn-0"]

    def test_cached_label_used_once_button_removed(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        edge = graph.connect(a.id, "btn-1", b.id)
        graph.update_node_data(a.id, {"buttons": [{"text": "Yes", "index": 0}]})

        assert wire_label(edge, graph.get_node(a.id)) == "No"
        assert wire_label(edge, None) == "No"


class TestInbound:

    def test_handles_recovered_from_labels(self, mapper, make_doc):
        doc = make_doc()
        doc["edges"] = [
            {"fromNodeId": "a", "toNodeId": "b", "sourceHandle": "  no "},
            {"fromNodeId": "a", "toNodeId": "b", "sourceHandle": "Maybe"},
        ]

        graph = mapper.from_document(FlowDocument.model_validate(doc)).graph

        assert [(e.id, e.source_handle, e.label) for e in graph.edges] == [
            ("e-a-b-  no ", "btn-1", "  no "),
            ("e-a-b-Maybe", None, "Maybe"),
        ]

    def test_loaded_flow_is_clean(self, mapper, make_doc):
        loaded = mapper.from_document(FlowDocument.model_validate(make_doc(published=True)))

        assert loaded.is_published
        assert loaded.graph.name == "Onboarding"
        assert loaded.graph.business_id == "biz-1"
        assert not loaded.graph.dirty

    def test_load_defaults(self, mapper):
        doc = {
            "nodes": [
                {"id": "p", "templateName": "one", "messageBody": "Hi {{1}}", "profileNameSlot": 0,
                 "useProfileName": True, "buttons": [{"text": "A"}, {"text": "B"}]},
                {"id": "q", "templateName": "two"},
            ],
            "edges": [{"fromNodeId": "p", "toNodeId": "q"}],
        }

        graph = mapper.from_document(FlowDocument.model_validate(doc)).graph

        p, q = graph.nodes
        assert graph.name == "Untitled Flow"
        assert (p.position.x, p.position.y) == (120, 150)
        assert (q.position.x, q.position.y) == (240, 210)
        assert p.profile_name_slot == 1
        assert [b.index for b in p.buttons] == [0, 1]
        assert p.body_params == [""]
        assert graph.edges[0].id == "e-p-q-h"
        assert graph.edges[0].source_handle is None

    def test_pascal_case_payload_is_accepted(self, mapper, wired):
        doc = FlowDocument.model_validate(mapper.to_payload(wired))

        assert [n.id for n in doc.nodes] == ["n1", "n2"]
        assert doc.edges[0].source_handle == "No"


class TestRoundTrip:

    def test_graph_survives_round_trip(self, mapper, wired):
        payload = mapper.to_payload(wired)
        loaded = mapper.from_document(FlowDocument.model_validate(payload)).graph

        assert loaded.name == wired.name
        # header URL is trimmed on the way out
        wired.update_node_data("n2", {"header_media_url": "https://cdn.example.com/p.png"})
        assert [n.model_dump() for n in loaded.nodes] == [n.model_dump() for n in wired.nodes]
        assert [(e.source, e.target, e.source_handle, e.label) for e in loaded.edges] == [
            (e.source, e.target, e.source_handle, e.label) for e in wired.edges
        ]
