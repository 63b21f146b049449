from conftest import edge, org, payload, person

from relgraph.graph_processor import build_risk_index, parse_risk_alert, process_payload, recolor
from relgraph.model import EdgeType, NodeType, Severity
from relgraph.styles import CLASSIFICATION_COLORS, DIMMED_COLOR, MOVED_COLOR


class TestProcessPayload:

    def test_hierarchy_off_drops_org_and_org_edges(self, two_pair_payload):
        model = process_payload(two_pair_payload)

        assert len(model.nodes) == 4
        assert all(node.node_type is NodeType.PERSON for node in model.nodes)
        assert len(model.edges) == 2
        assert all(e.edge_type is EdgeType.CO_OCCURRENCE for e in model.edges)
        assert len(model.clusters) == 2
        assert model.root_name == "Acme"

    def test_hierarchy_on_keeps_primary_org_as_anchor(self, two_pair_payload):
        model = process_payload(two_pair_payload, show_hierarchy=True)

        assert len(model.nodes) == 5
        assert model.anchor is not None and model.anchor.id == "acc"
        assert sum(1 for e in model.edges if e.edge_type is EdgeType.ORG_RELATIONSHIP) == 4

    def test_hierarchy_members_kept_when_hierarchy_off(self):
        data = payload([org("acc"), org("parent", isHierarchyAccount=True, hierarchyLevel="parent"), person("p1")])
        model = process_payload(data)

        ids = {node.id for node in model.nodes}
        assert ids == {"parent", "p1"}
        assert model.hierarchy_count == 1

    def test_every_edge_references_kept_nodes(self, sample_graph):
        model = process_payload(sample_graph)
        kept = {id(node) for node in model.nodes}

        for e in model.edges:
            assert id(e.source) in kept
            assert id(e.target) in kept
            assert e.source is not e.target

    def test_null_and_empty_payloads_give_empty_model(self):
        for raw in (None, {}, {"nodes": None}, {"edges": []}, [], [person("p1")], "nodes", 5, {"nodes": 3}):
            model = process_payload(raw)
            assert model.is_empty
            assert model.edges == []

    def test_non_list_sections_are_treated_as_empty(self):
        data = payload(
            [person("p1", strengthFactors=5, classification=["Champion"]), person("p2", title={"x": 1})],
            warnings=7,
            riskAlerts=3,
        )
        data["edges"] = 5
        model = process_payload(data)

        assert [node.id for node in model.nodes] == ["p1", "p2"]
        assert model.edges == []
        assert model.risk_alerts == []
        assert model.notices == []
        assert model.nodes[0].strength_factors == []
        assert model.nodes[0].classification is None
        assert model.nodes[1].title is None

    def test_unhashable_type_values_are_dropped(self):
        data = payload(
            [person("p1"), {"id": "p2", "nodeType": ["Contact"]}],
            [edge("p1", "p1", "co_occurrence"), {"source": "p1", "target": "p2", "edgeType": {"a": 1}}],
            riskAlerts=[{"subjectId": "p1", "severity": ["high"]}, {"subjectId": "p1", "severity": "high"}],
        )
        model = process_payload(data)

        assert [node.id for node in model.nodes] == ["p1"]
        assert model.edges == []
        assert model.risk_index == {"p1": Severity.HIGH}

    def test_malformed_entries_are_dropped(self):
        data = payload(
            [
                person("p1"),
                {"name": "no id", "nodeType": "Contact"},
                {"id": "x", "nodeType": "Spaceship"},
                person("p1", "duplicate"),
                person("p2"),
            ],
            [
                edge("p1", "p1", "co_occurrence"),
                edge("p1", "ghost", "co_occurrence"),
                edge("p1", "p2", "telepathy"),
                edge("p1", "p2", "co_occurrence"),
            ],
        )
        model = process_payload(data)

        assert [node.id for node in model.nodes] == ["p1", "p2"]
        assert model.nodes[0].name == "p1"
        assert len(model.edges) == 1

    def test_duplicate_of_excluded_org_does_not_reappear(self):
        data = payload([org("acc"), org("acc", "second copy"), person("p1")])
        model = process_payload(data)

        assert [node.id for node in model.nodes] == ["p1"]


class TestMovedPeople:

    def _moved(self, **extra):
        return person("p1", "Grace", hasMovedCompany=True, destinationName="Contoso", **extra)

    def test_moved_flag_adds_one_destination_and_one_edge(self):
        base = process_payload(payload([person("p1", "Grace"), person("p2")]))
        moved = process_payload(payload([self._moved(destinationId="acc-9"), person("p2")]))

        assert len(moved.nodes) == len(base.nodes) + 1
        assert len(moved.edges) == len(base.edges) + 1
        destination = moved.node("acc-9")
        assert destination.node_type is NodeType.SYNTHETIC_DESTINATION
        assert destination.origin_id == "p1"
        assert destination.navigation_id == "acc-9"
        moved_edge = moved.edges[-1]
        assert moved_edge.edge_type is EdgeType.MOVED_TO
        assert moved_edge.source.id == "p1" and moved_edge.target is destination

    def test_destination_without_id_gets_generated_id_and_no_navigation(self):
        model = process_payload(payload([self._moved()]))
        destination = model.nodes[-1]

        assert destination.id == "moved_to_0"
        assert destination.navigation_id is None

    def test_destination_id_colliding_with_real_node_falls_back(self):
        model = process_payload(payload([self._moved(destinationId="p2"), person("p2")]))
        synthetic = [n for n in model.nodes if n.node_type is NodeType.SYNTHETIC_DESTINATION]

        assert len(synthetic) == 1
        assert synthetic[0].id == "moved_to_0"
        assert synthetic[0].record_id == "p2"
        assert len({n.id for n in model.nodes}) == len(model.nodes)

    def test_payload_supplied_destinations_are_ignored(self):
        data = payload([self._moved(), {"id": "stale", "name": "Old", "nodeType": "Moved_To_Company"}])
        model = process_payload(data)
        synthetic = [n for n in model.nodes if n.node_type is NodeType.SYNTHETIC_DESTINATION]

        assert [n.origin_id for n in synthetic] == ["p1"]

    def test_moved_without_destination_name_adds_nothing(self):
        model = process_payload(payload([person("p1", hasMovedCompany=True)]))

        assert len(model.nodes) == 1
        assert model.nodes[0].color == MOVED_COLOR
        assert model.moved_count == 1


class TestRiskAndNotices:

    def test_high_severity_wins_regardless_of_order(self):
        alerts = [
            parse_risk_alert({"severity": "high", "riskType": "a", "message": "", "subjectId": "p1"}),
            parse_risk_alert({"severity": "medium", "riskType": "b", "message": "", "subjectId": "p1"}),
            parse_risk_alert({"severity": "medium", "riskType": "c", "message": "", "subjectId": "p2"}),
        ]
        assert build_risk_index(alerts) == {"p1": Severity.HIGH, "p2": Severity.MEDIUM}
        assert build_risk_index(reversed(alerts))["p1"] is Severity.HIGH

    def test_unknown_severity_is_skipped(self):
        assert parse_risk_alert({"severity": "catastrophic", "subjectId": "p1"}) is None

    def test_truncation_and_warnings_become_notices(self):
        data = payload([person("p1"), person("p2")], isTruncated=True, totalCount=500, warnings=["Partial data", ""])
        model = process_payload(data)

        assert model.is_truncated
        levels = [(n.level, n.title) for n in model.notices]
        assert levels == [("warning", "Large Account"), ("info", "Info")]
        assert "Showing 2 of 500+ contacts" in model.notices[0].message
        assert model.notices[1].message == "Partial data"

    def test_sample_risk_index(self, sample_model):
        assert sample_model.risk_index["003SAMPLE0000007"] is Severity.HIGH
        assert sample_model.risk_index["003SAMPLE0000004"] is Severity.MEDIUM


class TestRecolor:

    def test_filters_dim_non_matching_people_only(self, sample_model):
        radii_before = [node.radius for node in sample_model.nodes]
        recolor(sample_model, {"Champion"})

        champion = sample_model.node("003SAMPLE0000001")
        blocker = sample_model.node("003SAMPLE0000004")
        moved = sample_model.node("003SAMPLE0000007")
        deal = sample_model.node("006SAMPLE0000001")
        assert champion.color == CLASSIFICATION_COLORS["Champion"]
        assert blocker.color == DIMMED_COLOR
        assert moved.color == MOVED_COLOR
        assert deal.color != DIMMED_COLOR
        assert [node.radius for node in sample_model.nodes] == radii_before

    def test_clearing_filters_restores_colours(self, sample_model):
        recolor(sample_model, {"Champion"})
        recolor(sample_model, set())

        assert sample_model.node("003SAMPLE0000004").color == CLASSIFICATION_COLORS["Blocker"]
