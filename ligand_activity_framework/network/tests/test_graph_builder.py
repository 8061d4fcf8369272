"""
Tests for the Interaction Graph Builder

Tests source weighting, pair aggregation, hub correction and layer merging.
"""

import logging

import networkx as nx
import numpy as np
import pytest

from ligand_activity_framework.errors import EmptyGraph, InvalidInput
from ligand_activity_framework.network import (
    Edge,
    GraphBuilderConfig,
    HubCorrectionMethod,
    InteractionGraphBuilder,
    Layer,
    SourceWeights,
    build_weighted_network,
    linear_hub_correction,
    power_hub_correction,
)
from ligand_activity_framework.paths import infer_supporting_datasources


@pytest.fixture
def source_weights():
    return SourceWeights(weights={"kegg": 1.0, "omnipath": 0.5, "trrust": 1.0})


@pytest.fixture
def small_network(source_weights):
    return (
        InteractionGraphBuilder(source_weights)
        .add_records([("L", "R", "kegg")], Layer.LIGAND_RECEPTOR)
        .add_records([("R", "TF", "omnipath", 2.0)], Layer.SIGNALING)
        .add_records([("TF", "T1", "trrust"), ("TF", "T2", "trrust", 0.5)], Layer.GENE_REGULATORY)
        .build()
    )


class TestLayer:
    """Tests for Layer parsing."""

    def test_parse_value_and_name(self):
        assert Layer.parse("lr") == Layer.LIGAND_RECEPTOR
        assert Layer.parse("SIGNALING") == Layer.SIGNALING
        assert Layer.parse(Layer.GENE_REGULATORY) == Layer.GENE_REGULATORY

    def test_parse_unknown(self):
        with pytest.raises(InvalidInput):
            Layer.parse("ppi")


class TestEdge:
    """Tests for raw Edge validation."""

    def test_negative_weight_rejected(self):
        with pytest.raises(InvalidInput):
            Edge("A", "B", "kegg", Layer.SIGNALING, weight=-1.0)

    def test_empty_node_rejected(self):
        with pytest.raises(InvalidInput):
            Edge("", "B", "kegg", Layer.SIGNALING)

    @pytest.mark.parametrize(
        "source_node, target_node, source",
        [(float("nan"), "B", "kegg"), ("A", None, "kegg"), ("A", "B", float("nan")), ("A", "B", "")],
    )
    def test_missing_or_non_string_ids_rejected(self, source_node, target_node, source):
        with pytest.raises(InvalidInput):
            Edge(source_node, target_node, source, Layer.SIGNALING)

    def test_zero_weight_allowed(self):
        edge = Edge("A", "B", "kegg", Layer.SIGNALING, weight=0.0)
        assert edge.pair == ("A", "B")


class TestSourceWeights:
    """Tests for the source weighting table."""

    def test_from_mapping(self):
        weights = SourceWeights.from_mapping({
            "weights": {"kegg": 1, "omnipath": 0.3},
            "default_weight": 0.1,
            "hub_factors": {"sig": 0.5},
        })
        assert "kegg" in weights
        assert weights.default_weight == 0.1
        assert weights.hub_factor(Layer.SIGNALING) == 0.5
        assert weights.hub_factor(Layer.GENE_REGULATORY) == 0.0

    def test_negative_weight_rejected(self):
        with pytest.raises(InvalidInput):
            SourceWeights(weights={"kegg": -0.1})

    def test_uniform(self):
        weights = SourceWeights.uniform(["a", "b"], weight=2.0)
        assert weights.weights == {"a": 2.0, "b": 2.0}


class TestHubCorrection:
    """Tests for the pluggable hub corrections."""

    @pytest.mark.parametrize("correction", [linear_hub_correction, power_hub_correction])
    def test_identity_at_zero_factor(self, correction):
        weights = np.array([1.0, 2.0, 3.0])
        degrees = np.array([1.0, 5.0, 50.0])
        np.testing.assert_allclose(correction(weights, degrees, 0.0), weights)

    @pytest.mark.parametrize("correction", [linear_hub_correction, power_hub_correction])
    @pytest.mark.parametrize("hub_factor", [0.1, 0.5, 1.0, 3.0])
    def test_monotone_non_increasing_in_degree(self, correction, hub_factor):
        degrees = np.arange(1, 200, dtype=float)
        corrected = correction(np.ones_like(degrees), degrees, hub_factor)
        assert np.all(np.diff(corrected) <= 0)

    def test_linear_closed_form(self):
        corrected = linear_hub_correction(np.array([1.0]), np.array([3.0]), 1.0)
        np.testing.assert_allclose(corrected, [1.0 / 3.0])

    def test_negative_factor_rejected(self):
        with pytest.raises(InvalidInput):
            power_hub_correction(np.ones(2), np.ones(2), -1.0)

    def test_config_resolves_string(self):
        config = GraphBuilderConfig(hub_correction="power")
        assert config.resolve_hub_correction() is power_hub_correction

    def test_custom_callable(self):
        def halve(weights, out_degree, hub_factor):
            return weights / 2.0

        network = (
            InteractionGraphBuilder(
                SourceWeights(weights={"s": 1.0}, hub_factors={Layer.SIGNALING: 1.0}),
                GraphBuilderConfig(hub_correction=halve),
            )
            .add_records([("A", "B", "s")], Layer.SIGNALING)
            .build()
        )
        assert network.graph.edges["A", "B"]["weight"] == pytest.approx(0.5)


class TestInteractionGraphBuilder:
    """Tests for InteractionGraphBuilder."""

    def test_multi_source_aggregation(self, source_weights):
        network = (
            InteractionGraphBuilder(source_weights)
            .add_records(
                [("A", "B", "kegg"), ("A", "B", "omnipath", 2.0)],
                Layer.SIGNALING,
            )
            .build()
        )
        (edge,) = network.layer_edges(Layer.SIGNALING)
        assert edge.weight == pytest.approx(1.0 + 0.5 * 2.0)
        assert edge.sources == frozenset({"kegg", "omnipath"})
        assert len(network.raw_edges("A", "B")) == 2

    def test_unknown_source_raises(self, source_weights):
        builder = InteractionGraphBuilder(source_weights).add_records(
            [("A", "B", "unlisted")], Layer.SIGNALING
        )
        with pytest.raises(InvalidInput, match="unlisted"):
            builder.build()

    def test_default_weight_is_logged(self, caplog):
        weights = SourceWeights(weights={"kegg": 1.0}, default_weight=0.25)
        builder = InteractionGraphBuilder(weights).add_records(
            [("A", "B", "unlisted")], Layer.SIGNALING
        )
        with caplog.at_level(logging.WARNING):
            network = builder.build()
        assert network.graph.edges["A", "B"]["weight"] == pytest.approx(0.25)
        assert "unlisted" in caplog.text

    def test_zero_source_weight_disables_source(self):
        weights = SourceWeights(weights={"kept": 1.0, "off": 0.0})
        network = (
            InteractionGraphBuilder(weights)
            .add_records([("A", "B", "kept"), ("A", "C", "off")], Layer.SIGNALING)
            .build()
        )
        assert network.has_node("B")
        assert not network.has_node("C")

    def test_empty_graph(self):
        weights = SourceWeights(weights={"off": 0.0})
        builder = InteractionGraphBuilder(weights).add_records([("A", "B", "off")], Layer.SIGNALING)
        with pytest.raises(EmptyGraph):
            builder.build()

    def test_no_edges_is_empty_graph(self):
        with pytest.raises(EmptyGraph):
            InteractionGraphBuilder().build()

    def test_self_loops_removed(self, source_weights):
        network = (
            InteractionGraphBuilder(source_weights)
            .add_records([("A", "A", "kegg"), ("A", "B", "kegg")], Layer.SIGNALING)
            .build()
        )
        assert not network.graph.has_edge("A", "A")
        assert network.n_edges == 1

    def test_hub_correction_applied_per_layer(self):
        weights = SourceWeights(weights={"s": 1.0}, hub_factors={Layer.SIGNALING: 1.0})
        network = (
            InteractionGraphBuilder(weights)
            .add_records([("H", "A", "s"), ("H", "B", "s"), ("H", "C", "s")], Layer.SIGNALING)
            .add_records([("H", "T", "s")], Layer.GENE_REGULATORY)
            .build()
        )
        for edge in network.layer_edges(Layer.SIGNALING):
            assert edge.weight == pytest.approx(1.0 / 3.0)
        # The regulatory layer has no hub factor and its own out-degree
        assert network.graph.edges["H", "T"]["weight"] == pytest.approx(1.0)

    def test_hub_correction_method_enum(self):
        weights = SourceWeights(weights={"s": 1.0}, hub_factors={"sig": 1.0})
        network = (
            InteractionGraphBuilder(weights, GraphBuilderConfig(HubCorrectionMethod.POWER))
            .add_records([("H", "A", "s"), ("H", "B", "s"), ("H", "C", "s"), ("H", "D", "s")], Layer.SIGNALING)
            .build()
        )
        assert network.graph.edges["H", "A"]["weight"] == pytest.approx(0.25)

    def test_layers_merged_by_summing(self, source_weights):
        network = (
            InteractionGraphBuilder(source_weights)
            .add_records([("A", "B", "kegg")], Layer.LIGAND_RECEPTOR)
            .add_records([("A", "B", "omnipath")], Layer.SIGNALING)
            .build()
        )
        data = network.graph.edges["A", "B"]
        assert data["weight"] == pytest.approx(1.5)
        assert data["layers"] == frozenset({Layer.LIGAND_RECEPTOR, Layer.SIGNALING})

    def test_min_weight_drops_raw_records(self, source_weights):
        network = (
            InteractionGraphBuilder(source_weights, GraphBuilderConfig(min_weight=0.6))
            .add_records([("A", "B", "kegg"), ("B", "C", "kegg"), ("A", "C", "omnipath")], Layer.SIGNALING)
            .build()
        )
        assert not network.graph.has_edge("A", "C")
        assert network.raw_edges("A", "C") == []
        assert len(network.raw_edges("A", "B")) == 1

        with pytest.raises(InvalidInput, match="No interaction"):
            infer_supporting_datasources([("A", "C")], network)

    def test_wrong_layer_rejected(self, source_weights):
        edge = Edge("A", "B", "kegg", Layer.SIGNALING)
        with pytest.raises(InvalidInput):
            InteractionGraphBuilder(source_weights).add_edges([edge], layer=Layer.GENE_REGULATORY)

    def test_malformed_record(self, source_weights):
        with pytest.raises(InvalidInput):
            InteractionGraphBuilder(source_weights).add_records([("A", "B")], Layer.SIGNALING)

    def test_clear(self, source_weights):
        builder = InteractionGraphBuilder(source_weights).add_records([("A", "B", "kegg")], Layer.SIGNALING)
        with pytest.raises(EmptyGraph):
            builder.clear().build()


class TestWeightedNetwork:
    """Tests for the combined network accessors."""

    def test_graph_is_frozen(self, small_network):
        assert nx.is_frozen(small_network.graph)
        with pytest.raises(nx.NetworkXError):
            small_network.graph.add_edge("X", "Y")

    def test_node_index(self, small_network):
        assert small_network.nodes == sorted(["L", "R", "TF", "T1", "T2"])
        for node in small_network.nodes:
            assert small_network.nodes[small_network.index_of(node)] == node

    def test_adjacency_matrix(self, small_network):
        adj = small_network.adjacency_matrix()
        assert adj.shape == (5, 5)
        i, j = small_network.index_of("R"), small_network.index_of("TF")
        assert adj[i, j] == pytest.approx(1.0)

        gr_only = small_network.adjacency_matrix([Layer.GENE_REGULATORY])
        assert gr_only.nnz == 2

    def test_successors(self, small_network):
        assert dict(small_network.successors("TF")) == pytest.approx({"T1": 1.0, "T2": 0.5})
        assert small_network.successors("T1") == []

    def test_nodes_in_layers(self, small_network):
        assert small_network.nodes_in_layers([Layer.LIGAND_RECEPTOR]) == {"L", "R"}

    def test_stats(self, small_network):
        stats = small_network.get_stats()
        assert stats.n_nodes == 5
        assert stats.n_edges == 4
        assert stats.layer_edge_counts == {"lr": 1, "sig": 1, "gr": 2}
        assert stats.max_out_degree == 2

    def test_to_dataframe(self, small_network):
        df = small_network.to_dataframe()
        assert list(df.columns) == ["from", "to", "weight", "layer", "sources"]
        assert len(df) == 4

    def test_build_weighted_network(self, source_weights):
        network = build_weighted_network(
            [Edge("L", "R", "kegg", Layer.LIGAND_RECEPTOR)],
            [Edge("R", "TF", "omnipath", Layer.SIGNALING)],
            [Edge("TF", "T", "trrust", Layer.GENE_REGULATORY)],
            source_weights,
        )
        assert network.to_edge_list() == [("L", "R", 1.0), ("R", "TF", 0.5), ("TF", "T", 1.0)]
