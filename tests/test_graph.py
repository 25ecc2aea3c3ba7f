"""Graph model: placement, connections, cascades and node reconciliation."""
import threading

from ctaflow.schemas.graph import Button, Node, TemplateKind, TemplateSnapshot
from ctaflow.services import graph as graph_module
from ctaflow.services.graph import reconcile_node, snap
from ctaflow.services.handles import label_for_handle


class TestPlacement:

    def test_snap_rounds_to_grid(self):
        assert snap(120) == 128
        assert snap(340) == 336
        assert snap(7) == 0
        assert snap(8) == 16

    def test_first_node_lands_at_grid_origin(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)

        assert (node.position.x, node.position.y) == (128, 128)
        assert graph.dirty

    def test_new_node_goes_right_of_existing_bounding_box(self, graph, text_snapshot):
        graph.add_node(text_snapshot)
        second = graph.add_node(text_snapshot)

        # 128 + 260 + 80 = 468, snapped to 464
        assert (second.position.x, second.position.y) == (464, 128)

    def test_batch_uses_two_column_grid(self, graph, text_snapshot, image_snapshot):
        added = graph.add_nodes_batch([text_snapshot, image_snapshot, text_snapshot])

        assert [(n.position.x, n.position.y) for n in added] == [
            (128, 128), (464, 128), (128, 352)
        ]
        assert len({n.id for n in added}) == 3

    def test_empty_batch_is_noop(self, graph):
        assert graph.add_nodes_batch([]) == []
        assert not graph.dirty


class TestNodeFromTemplate:

    def test_buttons_indexed_by_position(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)

        assert [b.index for b in node.buttons] == [0, 1]
        assert [b.handle for b in node.buttons] == ["btn-0", "btn-1"]
        assert node.trigger_button_text == "Yes"
        assert node.trigger_button_type == "cta"

    def test_body_params_sized_to_placeholders(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)

        assert node.body_params == [""]
        assert node.url_button_params == ["", "", ""]

    def test_blank_template_gets_defaults(self, graph):
        node = graph.add_node(TemplateSnapshot())

        assert node.template_name == "Untitled"
        assert node.message_body == "Message body preview..."
        assert node.template_type is TemplateKind.TEXT

    def test_parameter_value_becomes_button_value(self, graph):
        snapshot = TemplateSnapshot.model_validate({
            "name": "visit",
            "type": "text_template",
            "body": "Go",
            "buttons": [{"text": "Open", "type": "URL", "parameterValue": "https://x.com/{{1}}"}],
        })

        node = graph.add_node(snapshot)

        assert node.buttons[0].value == "https://x.com/{{1}}"
        assert node.buttons[0].is_dynamic_url


class TestConnect:

    def test_connect_snapshots_label_and_sets_target(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])

        edge = graph.connect(a.id, "btn-1", b.id)

        assert edge is not None
        assert edge.label == "No"
        assert graph.get_node(a.id).buttons[1].target_node_id == b.id

    def test_second_connect_from_same_handle_is_rejected(self, graph, text_snapshot):
        a, b, c = graph.add_nodes_batch([text_snapshot] * 3)

        first = graph.connect(a.id, "btn-0", b.id)
        second = graph.connect(a.id, "btn-0", c.id)

        assert first is not None
        assert second is None
        assert [(e.source, e.target) for e in graph.edges] == [(a.id, b.id)]

    def test_concurrent_connects_from_one_handle_keep_one_edge(self, graph, text_snapshot, monkeypatch):
        a, b, c = graph.add_nodes_batch([text_snapshot] * 3)
        barrier = threading.Barrier(2, timeout=0.2)

        def slow_label(buttons, handle):
            # both callers meet here unless connect is serialized
            try:
                barrier.wait()
            except threading.BrokenBarrierError:
                pass
            return label_for_handle(buttons, handle)

        monkeypatch.setattr(graph_module, "label_for_handle", slow_label)
        results = []
        workers = [
            threading.Thread(target=lambda t=target: results.append(graph.connect(a.id, "btn-0", t)))
            for target in (b.id, c.id)
        ]
        for w in workers:
            w.start()
        for w in workers:
            w.join(2)

        assert len(results) == 2
        assert len([r for r in results if r is not None]) == 1
        assert len([e for e in graph.edges if e.source == a.id and e.source_handle == "btn-0"]) == 1

    def test_missing_handle_is_rejected(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])

        assert graph.connect(a.id, None, b.id) is None
        assert graph.connect(a.id, "", b.id) is None
        assert graph.edges == []

    def test_unknown_node_is_rejected(self, graph, text_snapshot):
        a = graph.add_node(text_snapshot)

        assert graph.connect(a.id, "btn-0", "ghost") is None
        assert graph.connect("ghost", "btn-0", a.id) is None

    def test_disconnect_clears_button_target(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        edge = graph.connect(a.id, "btn-0", b.id)

        assert graph.disconnect(edge.id)
        assert graph.edges == []
        assert graph.get_node(a.id).buttons[0].target_node_id is None

    def test_reachability_lists_edge_targets(self, graph, text_snapshot):
        a, b, c = graph.add_nodes_batch([text_snapshot] * 3)
        graph.connect(a.id, "btn-0", b.id)

        assert graph.compute_reachability() == {b.id}


class TestDelete:

    def test_delete_node_cascades_edges(self, graph, text_snapshot):
        a, b, c = graph.add_nodes_batch([text_snapshot] * 3)
        graph.connect(a.id, "btn-0", b.id)
        graph.connect(b.id, "btn-0", c.id)
        graph.connect(c.id, "btn-0", a.id)

        assert graph.delete_node(b.id)

        assert graph.get_node(b.id) is None
        assert all(b.id not in (e.source, e.target) for e in graph.edges)
        assert [(e.source, e.target) for e in graph.edges] == [(c.id, a.id)]
        assert graph.get_node(a.id).buttons[0].target_node_id is None

    def test_delete_unknown_node_is_noop(self, graph):
        assert not graph.delete_node("ghost")
        assert not graph.dirty

    def test_delete_selection_removes_nodes_and_edges(self, graph, text_snapshot):
        a, b, c = graph.add_nodes_batch([text_snapshot] * 3)
        keep = graph.connect(a.id, "btn-0", b.id)
        drop = graph.connect(a.id, "btn-1", c.id)
        graph.connect(b.id, "btn-0", c.id)

        assert graph.delete_selection(node_ids=[c.id], edge_ids=[drop.id])

        assert [n.id for n in graph.nodes] == [a.id, b.id]
        assert [e.id for e in graph.edges] == [keep.id]

    def test_empty_selection_is_noop(self, graph, text_snapshot):
        graph.add_node(text_snapshot)
        graph.dirty = False

        assert not graph.delete_selection()
        assert not graph.dirty


class TestUpdateNodeData:

    def test_body_params_follow_placeholder_count(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)
        graph.update_node_data(node.id, {"message_body": "{{1}} {{2}}", "body_params": ["a", "b"]})

        shrunk = graph.update_node_data(node.id, {"message_body": "Hi {{1}}"})
        assert shrunk.body_params == ["a"]

        grown = graph.update_node_data(node.id, {"message_body": "{{1}} {{2}} {{3}}"})
        assert grown.body_params == ["a", "", ""]

    def test_unrelated_edits_keep_handles(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)
        before = [b.handle for b in node.buttons]

        updated = graph.update_node_data(node.id, {
            "required_tag": "vip",
            "message_body": "Hello {{1}}",
            "header_media_url": "https://cdn.example.com/a.png",
        })

        assert [b.handle for b in updated.buttons] == before

    def test_profile_slot_clamped_to_placeholder_count(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)

        updated = graph.update_node_data(node.id, {
            "message_body": "Hi {{1}}, order {{2}}",
            "use_profile_name": True,
            "profile_name_slot": 5,
        })

        assert updated.use_profile_name
        assert updated.profile_name_slot == 2

    def test_profile_name_disabled_for_media_templates(self, graph, image_snapshot):
        node = graph.add_node(image_snapshot)

        updated = graph.update_node_data(node.id, {
            "message_body": "Hi {{1}}",
            "use_profile_name": True,
        })

        assert not updated.use_profile_name
        assert updated.profile_name_slot is None

    def test_button_change_resyncs_trigger_and_targets(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        graph.connect(a.id, "btn-1", b.id)

        updated = graph.update_node_data(a.id, {"buttons": [
            {"text": "Sure", "index": 0},
            {"text": "Nope", "index": 1},
        ]})

        assert updated.trigger_button_text == "Sure"
        assert updated.buttons[1].target_node_id == b.id
        assert updated.buttons[0].target_node_id is None

    def test_unknown_fields_are_ignored(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)

        updated = graph.update_node_data(node.id, {"id": "hijack", "colour": "red", "required_tag": "x"})

        assert updated.id == node.id
        assert updated.required_tag == "x"

    def test_unknown_node_returns_none(self, graph):
        assert graph.update_node_data("ghost", {"required_tag": "x"}) is None


class TestReconcile:

    def test_url_params_padded_and_trimmed(self):
        node = reconcile_node(Node(id="x", url_button_params=["a", "b", "c", "d"]))
        assert node.url_button_params == ["a", "b", "c"]

        node = reconcile_node(Node(id="y", url_button_params=["a"]))
        assert node.url_button_params == ["a", "", ""]

    def test_trigger_mirrors_first_button(self):
        node = reconcile_node(Node(id="x", buttons=[Button(text="Go"), Button(text="Stop", index=1)]))
        assert node.trigger_button_text == "Go"


class TestReadOnlyAndObservers:

    def test_read_only_graph_ignores_mutations(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        graph.dirty = False
        graph.readonly = True

        assert graph.add_node(text_snapshot) is None
        assert graph.connect(a.id, "btn-0", b.id) is None
        assert not graph.delete_node(a.id)
        assert not graph.move_node(a.id, 1, 1)
        assert graph.update_node_data(a.id, {"required_tag": "x"}) is None
        graph.rename("Other")

        assert len(graph.nodes) == 2
        assert graph.name == "Test flow"
        assert not graph.dirty

    def test_listeners_see_every_mutation(self, graph, text_snapshot):
        seen = []
        graph.add_listener(lambda g, action: seen.append(action))

        node = graph.add_node(text_snapshot)
        graph.move_node(node.id, 10, 20)
        graph.rename("Renamed")

        assert seen == ["add_nodes[1]", f"move_node:{node.id}", "rename"]

    def test_revision_counts_content_changes(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)
        before = graph.revision

        graph.move_node(node.id, 10, 20)
        graph.measure_node(node.id, 300, 180)
        graph.rename("Renamed")

        assert graph.revision == before + 2

    def test_measure_is_not_a_content_change(self, graph, text_snapshot):
        node = graph.add_node(text_snapshot)
        graph.dirty = False

        graph.measure_node(node.id, 300, 180)

        assert (node.width, node.height) == (300, 180)
        assert not graph.dirty

    def test_clone_is_deep(self, graph, text_snapshot):
        a, b = graph.add_nodes_batch([text_snapshot, text_snapshot])
        graph.connect(a.id, "btn-0", b.id)

        copy = graph.clone()
        copy.update_node_data(a.id, {"message_body": "changed"})
        copy.get_node(b.id).position.x = 9999

        assert graph.get_node(a.id).message_body == "Hi {{1}}, pick one"
        assert graph.get_node(b.id).position.x != 9999

    def test_is_empty(self, ids):
        from ctaflow.services.graph import FlowGraph

        assert FlowGraph(id_factory=ids).is_empty()
        assert not FlowGraph(name="Named", id_factory=ids).is_empty()
