import random

from relgraph.clustering import build_cooccurrence_graph, detect_clusters, partition, propagate_labels, visit_rng
from relgraph.model import Edge, EdgeType, Node, NodeType


def _people(*ids, classification=None):
    return [Node(id=i, name=i, node_type=NodeType.PERSON, classification=classification) for i in ids]


def _co(nodes_by_id, a, b, count=1):
    return Edge(nodes_by_id[a], nodes_by_id[b], EdgeType.CO_OCCURRENCE, interaction_count=count)


class TestCooccurrenceGraph:

    def test_parallel_edges_accumulate_weight(self):
        people = _people("a", "b")
        by_id = {n.id: n for n in people}
        graph = build_cooccurrence_graph(people, [_co(by_id, "a", "b", 3), _co(by_id, "b", "a", 2)])

        assert graph["a"]["b"]["weight"] == 5

    def test_non_person_and_non_cooccurrence_edges_ignored(self):
        people = _people("a", "b")
        deal = Node(id="d", name="Deal", node_type=NodeType.DEAL)
        edges = [
            Edge(people[0], deal, EdgeType.CO_OCCURRENCE),
            Edge(people[0], people[1], EdgeType.DEAL_ROLE),
        ]
        graph = build_cooccurrence_graph(people + [deal], edges)

        assert set(graph.nodes) == {"a", "b"}
        assert graph.number_of_edges() == 0

    def test_zero_interaction_count_counts_as_one(self):
        people = _people("a", "b")
        by_id = {n.id: n for n in people}
        graph = build_cooccurrence_graph(people, [_co(by_id, "a", "b", 0)])

        assert graph["a"]["b"]["weight"] == 1


class TestDetectClusters:

    def _two_triangles(self):
        people = _people("a", "b", "c", "x", "y", "z")
        by_id = {n.id: n for n in people}
        edges = [
            _co(by_id, "a", "b", 5),
            _co(by_id, "b", "c", 5),
            _co(by_id, "a", "c", 5),
            _co(by_id, "x", "y", 5),
            _co(by_id, "y", "z", 5),
            _co(by_id, "x", "z", 5),
            _co(by_id, "c", "x", 1),
        ]
        return people, edges

    def test_two_dense_groups_are_found(self):
        people, edges = self._two_triangles()
        clusters = detect_clusters(people, edges)

        assert partition(clusters) == frozenset({frozenset("abc"), frozenset("xyz")})

    def test_partition_ignores_input_order(self):
        results = set()
        for seed in range(12):
            people, edges = self._two_triangles()
            shuffler = random.Random(seed)
            shuffler.shuffle(people)
            shuffler.shuffle(edges)
            results.add(partition(detect_clusters(people, edges)))

        assert len(results) == 1

    def test_isolated_people_are_singletons_and_non_people_get_minus_one(self):
        people = _people("a", "b")
        deal = Node(id="d", name="Deal", node_type=NodeType.DEAL)
        clusters = detect_clusters(people + [deal], [])

        assert len(clusters) == 2
        assert deal.cluster_id == -1
        assert sorted(n.cluster_id for n in people) == [0, 1]

    def test_largest_cluster_takes_root_name(self):
        people = _people("a", "b", "c", "solo", classification="Champion")
        by_id = {n.id: n for n in people}
        edges = [_co(by_id, "a", "b"), _co(by_id, "b", "c")]
        clusters = detect_clusters(people, edges, root_name="Acme")

        labels = sorted(cluster.label for cluster in clusters.values())
        assert labels == ["Acme", "Champion group (1)"]

    def test_label_uses_dominant_classification(self):
        people = _people("a", "b", "c")
        people[0].classification = "Blocker"
        people[1].classification = "Blocker"
        by_id = {n.id: n for n in people}
        edges = [_co(by_id, "a", "b"), _co(by_id, "b", "c")]
        clusters = detect_clusters(people, edges)

        assert [c.label for c in clusters.values()] == ["Blocker group (3)"]

    def test_cluster_ids_are_dense_in_node_order(self, sample_model):
        ids = sorted(sample_model.clusters)
        assert ids == list(range(len(ids)))
        first_person = next(n for n in sample_model.nodes if n.node_type is NodeType.PERSON)
        assert first_person.cluster_id == 0


class TestPropagateLabels:

    def test_connected_pair_settles_on_one_label(self):
        people = _people("a", "b")
        by_id = {n.id: n for n in people}
        graph = build_cooccurrence_graph(people, [_co(by_id, "a", "b")])
        labels = propagate_labels(graph)

        assert labels["a"] == labels["b"]

    def test_nodes_without_neighbours_keep_own_label(self):
        people = _people("a", "b", "c")
        graph = build_cooccurrence_graph(people, [])

        assert propagate_labels(graph) == {"a": "a", "b": "b", "c": "c"}

    def test_visit_order_depends_only_on_graph_content(self):
        people = _people("a", "b", "c")
        by_id = {n.id: n for n in people}
        forward = build_cooccurrence_graph(people, [_co(by_id, "a", "b", 2), _co(by_id, "b", "c")])
        backward = build_cooccurrence_graph(people[::-1], [_co(by_id, "c", "b"), _co(by_id, "b", "a", 2)])
        heavier = build_cooccurrence_graph(people, [_co(by_id, "a", "b", 5), _co(by_id, "b", "c")])

        assert visit_rng(forward).random() == visit_rng(backward).random()
        assert visit_rng(forward).random() != visit_rng(heavier).random()


def _build(ids, links, order_rng=None):
    """People and co-occurrence edges for ``links``; ``order_rng`` shuffles both input lists."""
    ids = list(ids)
    links = list(links)
    if order_rng is not None:
        order_rng.shuffle(ids)
        order_rng.shuffle(links)
    people = _people(*ids)
    by_id = {n.id: n for n in people}
    return people, [_co(by_id, a, b, w) for a, b, w in links]


def _partitions_over_input_orders(ids, links, runs=50):
    results = set()
    for seed in range(runs):
        people, edges = _build(ids, links, random.Random(seed))
        results.add(partition(detect_clusters(people, edges)))
    return results


class TestPartitionStability:

    def test_unit_path_of_four(self):
        links = [("n0", "n1", 1), ("n1", "n2", 1), ("n2", "n3", 1)]

        assert len(_partitions_over_input_orders(["n0", "n1", "n2", "n3"], links)) == 1

    def test_star(self):
        ids = ["hub"] + [f"leaf{i}" for i in range(6)]
        links = [("hub", leaf, 1) for leaf in ids[1:]]

        results = _partitions_over_input_orders(ids, links)

        assert results == {frozenset({frozenset(ids)})}

    def test_random_small_graphs(self):
        for graph_seed in range(40):
            gen = random.Random(graph_seed)
            ids = [f"n{i}" for i in range(8)]
            links = [
                (a, b, gen.randint(1, 3))
                for i, a in enumerate(ids)
                for b in ids[i + 1:]
                if gen.random() < 0.3
            ]

            assert len(_partitions_over_input_orders(ids, links, runs=15)) == 1, graph_seed

    def test_repeated_runs_on_one_graph_agree(self):
        links = [("n0", "n1", 1), ("n1", "n2", 1), ("n2", "n3", 1), ("n3", "n4", 2)]
        people, edges = _build(["n0", "n1", "n2", "n3", "n4"], links)

        first = partition(detect_clusters(people, edges))
        for _ in range(20):
            assert partition(detect_clusters(people, edges)) == first
