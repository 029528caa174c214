"""Tests for uid assignment across accessibility snapshots."""

from conftest import FakeContext, FakePage, ax, button_page_tree

from page_session.page import PageRecord
from page_session.snapshot import SnapshotIndexer, find_uid_by_backend_node_id, format_snapshot


def make_record():
    return PageRecord(handle=FakePage(FakeContext("default")), id=1)


class TestSnapshotIndexer:
    def test_assigns_uids_depth_first(self):
        indexer = SnapshotIndexer()
        record = make_record()
        tree = ax(
            "RootWebArea",
            "Page",
            1,
            children=[
                ax("navigation", "Main", 2, children=[ax("link", "Home", 3)]),
                ax("button", "Submit", 4),
            ],
        )

        snapshot = indexer.index(record, tree)

        assert snapshot.snapshot_id == "1"
        assert snapshot.root.id == "1_0"
        nav, button = snapshot.root.children
        assert nav.id == "1_1"
        assert nav.children[0].id == "1_2"
        assert button.id == "1_3"
        assert set(snapshot.id_to_node) == {"1_0", "1_1", "1_2", "1_3"}

    def test_unchanged_page_keeps_uids(self):
        indexer = SnapshotIndexer()
        record = make_record()

        first = indexer.index(record, button_page_tree())
        second = indexer.index(record, button_page_tree())

        assert second.snapshot_id == "2"
        assert set(first.id_to_node) == {"1_0", "1_1"}
        assert set(second.id_to_node) == set(first.id_to_node)
        assert second.root.children[0].id == first.root.children[0].id == "1_1"

    def test_new_nodes_get_ids_from_current_snapshot(self):
        indexer = SnapshotIndexer()
        record = make_record()
        indexer.index(record, button_page_tree())

        tree = button_page_tree()
        tree["children"].append(ax("checkbox", "Remember me", 5))
        snapshot = indexer.index(record, tree)

        assert snapshot.root.id == "1_0"
        assert snapshot.root.children[0].id == "1_1"
        assert snapshot.root.children[1].id == "2_0"

    def test_vanished_nodes_are_forgotten(self):
        indexer = SnapshotIndexer()
        record = make_record()
        tree = button_page_tree()
        tree["children"].append(ax("link", "Gone soon", 3))
        first = indexer.index(record, tree)
        assert "1_2" in first.id_to_node

        second = indexer.index(record, button_page_tree())
        record.snapshot = second

        assert "1_2" not in second.id_to_node
        assert record.get_node_by_uid("1_2") is None
        assert "L1_3" not in record.backend_key_to_uid

        # The node coming back is a new node with a new uid.
        third = indexer.index(record, tree)
        assert third.root.children[1].id == "3_0"

    def test_new_page_load_gets_new_uids(self):
        indexer = SnapshotIndexer()
        record = make_record()
        indexer.index(record, button_page_tree(loader_id="L1"))

        snapshot = indexer.index(record, button_page_tree(loader_id="L2"))

        assert snapshot.root.id == "2_0"
        assert snapshot.root.children[0].id == "2_1"
        assert set(record.backend_key_to_uid) == {"L2_1", "L2_2"}

    def test_uid_counter_is_shared_across_pages(self):
        indexer = SnapshotIndexer()
        first_page = make_record()
        second_page = PageRecord(handle=FakePage(FakeContext("default")), id=2)

        indexer.index(first_page, button_page_tree())
        snapshot = indexer.index(second_page, button_page_tree())

        assert snapshot.root.id == "2_0"

    def test_nodes_without_backend_id_get_distinct_uids(self):
        indexer = SnapshotIndexer()
        record = make_record()
        tree = ax(
            "RootWebArea",
            "Page",
            1,
            children=[ax("StaticText", "Hello"), ax("StaticText", "World")],
        )

        first = indexer.index(record, tree)
        second = indexer.index(record, tree)

        assert [child.id for child in first.root.children] == ["1_1", "1_2"]
        assert len(first.id_to_node) == 3
        assert first.id_to_node["1_2"].name == "World"
        assert [child.id for child in second.root.children] == ["2_0", "2_1"]
        assert set(record.backend_key_to_uid) == {"L1_1"}

    def test_option_value_falls_back_to_name(self):
        indexer = SnapshotIndexer()
        tree = ax(
            "listbox",
            "Size",
            1,
            children=[ax("option", "Large", 2), ax("option", "Small", 3, value="S")],
        )

        snapshot = indexer.index(make_record(), tree)

        large, small = snapshot.root.children
        assert large.value == "Large"
        assert small.value == "S"

    def test_selected_element_in_snapshot(self):
        indexer = SnapshotIndexer()

        snapshot = indexer.index(make_record(), button_page_tree(), inspected_backend_node_id=2)

        assert snapshot.has_selected_element
        assert snapshot.selected_element_uid == "1_1"

    def test_selected_element_outside_snapshot(self):
        indexer = SnapshotIndexer()

        snapshot = indexer.index(make_record(), button_page_tree(), inspected_backend_node_id=99)

        assert snapshot.has_selected_element
        assert snapshot.selected_element_uid is None

    def test_no_selected_element(self):
        snapshot = SnapshotIndexer().index(make_record(), button_page_tree())

        assert not snapshot.has_selected_element
        assert snapshot.selected_element_uid is None

    def test_verbose_flag_is_kept(self):
        snapshot = SnapshotIndexer().index(make_record(), button_page_tree(), verbose=True)
        assert snapshot.verbose


class TestSnapshotHelpers:
    def test_find_uid_by_backend_node_id(self):
        snapshot = SnapshotIndexer().index(make_record(), button_page_tree())

        assert find_uid_by_backend_node_id(snapshot, 2) == "1_1"
        assert find_uid_by_backend_node_id(snapshot, 42) is None

    def test_format_snapshot(self):
        snapshot = SnapshotIndexer().index(
            make_record(), button_page_tree(), inspected_backend_node_id=2
        )

        text = format_snapshot(snapshot)

        assert text.splitlines() == [
            'uid=1_0 RootWebArea "Test page"',
            '  uid=1_1 button "Submit" [selected in DevTools]',
        ]
