"""
Tests for the Ligand Activity Pipeline

Tests configuration loading, table readers and writers, the end-to-end
pipeline and the command-line interface.
"""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from ligand_activity_framework import (
    DataConfig,
    InvalidInput,
    LigandActivityPipeline,
    PipelineConfig,
    __version__,
)
from ligand_activity_framework import io
from ligand_activity_framework.cli import main
from ligand_activity_framework.network import Edge, Layer, SourceWeights
from ligand_activity_framework.propagation import Solver
from ligand_activity_framework.scoring import (
    ExpressionMatrix,
    ExpressionScaling,
    PhenotypeScores,
    SingleSampleConfig,
)

DEMO_CONFIG = Path(__file__).resolve().parents[2] / "configs" / "demo.yaml"


def _write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


@pytest.fixture
def layers():
    """Two ligands on disjoint branches: L1 -> R1 -> TF1 -> {G1, G2}, L2 -> R2 -> TF2 -> {G3, G4}."""
    lr = [Edge("L1", "R1", "db", Layer.LIGAND_RECEPTOR), Edge("L2", "R2", "db", Layer.LIGAND_RECEPTOR)]
    sig = [Edge("R1", "TF1", "db", Layer.SIGNALING), Edge("R2", "TF2", "db", Layer.SIGNALING)]
    gr = [
        Edge("TF1", "G1", "db", Layer.GENE_REGULATORY, 0.9),
        Edge("TF1", "G2", "db2", Layer.GENE_REGULATORY, 0.5),
        Edge("TF2", "G3", "db", Layer.GENE_REGULATORY, 0.9),
        Edge("TF2", "G4", "db", Layer.GENE_REGULATORY, 0.5),
    ]
    return lr, sig, gr


@pytest.fixture
def pipeline():
    config = PipelineConfig(
        data=DataConfig("lr.tsv", "sig.tsv", "gr.tsv", "ligands.txt"),
        single_sample=SingleSampleConfig(min_genes=3),
        expression_scaling=ExpressionScaling.NONE,
        verbose=False,
    )
    return LigandActivityPipeline(config)


class TestPipelineConfig:
    """Tests for configuration loading."""

    def test_from_yaml_demo(self):
        config = PipelineConfig.from_yaml(str(DEMO_CONFIG))
        assert Path(config.data.lr_edges_path).is_absolute()
        assert Path(config.data.lr_edges_path).exists()
        assert config.propagation.solver == Solver.ITERATIVE
        assert config.expression_scaling == ExpressionScaling.QUANTILE
        assert config.paths.extraction.top_n_regulators == 3
        assert config.data.hub_factors == {"sig": 0.5, "gr": 0.5}

    def test_unknown_option(self):
        with pytest.raises(InvalidInput):
            PipelineConfig.from_dict({"data": {"lr_edges_path": "a"}, "bogus": 1})

    def test_invalid_enum_value(self):
        data = {"lr_edges_path": "a", "sig_edges_path": "b", "gr_edges_path": "c", "ligands_path": "d"}
        with pytest.raises(InvalidInput):
            PipelineConfig.from_dict({"data": data, "propagation": {"solver": "magic"}})

    def test_missing_data_section(self, tmp_path):
        path = _write(tmp_path / "config.yaml", yaml.safe_dump({"verbose": False}))
        with pytest.raises(InvalidInput):
            PipelineConfig.from_yaml(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PipelineConfig.from_yaml(str(tmp_path / "absent.yaml"))

    def test_apply_n_workers(self):
        config = PipelineConfig(data=DataConfig("a", "b", "c", "d"))
        config.apply_n_workers(3)
        assert config.propagation.n_workers == 3
        assert config.activity.n_workers == 3
        assert config.single_sample.n_workers == 3


class TestIO:
    """Tests for the table readers and writer."""

    def test_read_edge_table(self, tmp_path):
        path = _write(tmp_path / "lr.tsv", "from\tto\tsource\tweight\nA\tB\tdb\t\nA\tC\tdb\t0.5\n")
        edges = io.read_edge_table(path, "lr")
        assert edges[0] == Edge("A", "B", "db", Layer.LIGAND_RECEPTOR, None)
        assert edges[1].weight == pytest.approx(0.5)

    def test_read_edge_table_csv_without_weight(self, tmp_path):
        path = _write(tmp_path / "gr.csv", "from,to,source\nTF,G,trrust\n")
        edges = io.read_edge_table(path, Layer.GENE_REGULATORY)
        assert edges == [Edge("TF", "G", "trrust", Layer.GENE_REGULATORY)]

    def test_missing_columns(self, tmp_path):
        path = _write(tmp_path / "sig.tsv", "from\tto\nA\tB\n")
        with pytest.raises(InvalidInput):
            io.read_edge_table(path, Layer.SIGNALING)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            io.read_edge_table(tmp_path / "none.tsv", Layer.SIGNALING)

    def test_empty_node_cell(self, tmp_path):
        path = _write(tmp_path / "lr.tsv", "from\tto\tsource\nL\tR\tdb\n\tR2\tdb\n")
        with pytest.raises(InvalidInput, match=r"lines \[3\]"):
            io.read_edge_table(path, Layer.LIGAND_RECEPTOR)

    def test_empty_source_cell(self, tmp_path):
        path = _write(tmp_path / "lr.tsv", "from\tto\tsource\nL\tR\tdb\nL\tR2\t\n")
        with pytest.raises(InvalidInput):
            io.read_edge_table(path, Layer.LIGAND_RECEPTOR)

    def test_non_numeric_edge_weight(self, tmp_path):
        path = _write(tmp_path / "lr.tsv", "from\tto\tsource\tweight\nL\tR\tdb\thigh\n")
        with pytest.raises(InvalidInput):
            io.read_edge_table(path, Layer.LIGAND_RECEPTOR)

    def test_non_numeric_source_weight(self, tmp_path):
        path = _write(tmp_path / "w.tsv", "source\tweight\ndb\tstrong\n")
        with pytest.raises(InvalidInput):
            io.read_source_weights(path)

    def test_non_numeric_expression(self, tmp_path):
        path = _write(tmp_path / "expr.tsv", "sample\tA\tB\nS1\t1\tlow\n")
        with pytest.raises(InvalidInput):
            io.read_expression_matrix(path)

    def test_non_numeric_phenotype(self, tmp_path):
        path = _write(tmp_path / "pheno.tsv", "sample\tscore\nS1\tyes\n")
        with pytest.raises(InvalidInput):
            io.read_phenotype_scores(path)

    def test_read_source_weights(self, tmp_path):
        path = _write(tmp_path / "w.tsv", "source\tweight\ndb\t0.7\n")
        weights = io.read_source_weights(path, default_weight=1.0, hub_factors={"gr": 0.2})
        assert weights.weights == {"db": 0.7}
        assert weights.hub_factor(Layer.GENE_REGULATORY) == pytest.approx(0.2)

    def test_duplicate_sources(self, tmp_path):
        path = _write(tmp_path / "w.tsv", "source\tweight\ndb\t0.7\ndb\t0.2\n")
        with pytest.raises(InvalidInput):
            io.read_source_weights(path)

    def test_read_gene_list(self, tmp_path):
        path = _write(tmp_path / "genes.txt", "# header\nTGFB1\n\nIL6\nTGFB1\n")
        assert io.read_gene_list(path) == ["TGFB1", "IL6"]

    def test_read_gene_list_column(self, tmp_path):
        path = _write(tmp_path / "genes.tsv", "gene\tscore\nA\t1\nB\t2\n")
        assert io.read_gene_list(path, column="gene") == ["A", "B"]

    def test_read_expression_matrix(self, tmp_path):
        path = _write(tmp_path / "expr.tsv", "gene\tS1\tS2\nA\t1\t2\nB\t3\t4\n")
        matrix = io.read_expression_matrix(path, transpose=True)
        assert matrix.samples == ["S1", "S2"]
        assert matrix.genes == ["A", "B"]
        assert matrix.get_sample("S2")["B"] == pytest.approx(4.0)

    def test_expression_missing_values(self, tmp_path):
        path = _write(tmp_path / "expr.tsv", "sample\tA\tB\nS1\t1\t\n")
        with pytest.raises(InvalidInput):
            io.read_expression_matrix(path)

    def test_read_phenotype_scores(self, tmp_path):
        path = _write(tmp_path / "pheno.tsv", "sample\tscore\nS1\t1.5\nS2\t\n")
        scores = io.read_phenotype_scores(path)
        assert scores.scores == {"S1": 1.5}

    def test_write_table(self, tmp_path):
        df = pd.DataFrame({"ligand": ["A"], "score": [0.5]})
        path = io.write_table(df, tmp_path / "nested" / "out.tsv")
        assert path.read_text().splitlines() == ["ligand\tscore", "A\t0.5"]


class TestLigandActivityPipeline:
    """Tests for the end-to-end pipeline."""

    def test_gene_set_run(self, pipeline, layers):
        lr, sig, gr = layers
        result = pipeline.analyze(
            lr, sig, gr,
            source_weights=SourceWeights(default_weight=1.0),
            ligands=["L1", "L2", "ABSENT"],
            genes_of_interest=["G1", "G2"],
        )

        assert result.ligand_target.ligands == ["L1", "L2"]
        assert result.activity_table.top_ligands(1) == ["L1"]
        assert result.top_ligands(1) == ["L1"]
        assert result.sample_activity is None

        paths = result.signaling_paths
        assert {p.target for p in paths.paths} == {"G1", "G2"}
        assert paths.paths_for("L1", "G1")[0].nodes == ["L1", "R1", "TF1", "G1"]
        assert {row.source for row in result.datasources.get("TF1", "G2")} == {"db2"}
        assert "GENE-SET ACTIVITY" in result.summary

    def test_expression_and_phenotype(self, pipeline, layers):
        lr, sig, gr = layers
        rng = np.random.default_rng(0)
        genes = ["G1", "G2", "G3", "G4", "TF1", "TF2"]
        samples = [f"S{i}" for i in range(12)]
        expression = ExpressionMatrix(samples, genes, rng.uniform(1.0, 10.0, size=(12, 6)))
        phenotype = PhenotypeScores({s: float(i) for i, s in enumerate(samples)})

        result = pipeline.analyze(
            lr, sig, gr,
            source_weights=SourceWeights(default_weight=1.0),
            ligands=["L1", "L2"],
            expression=expression,
            phenotype=phenotype,
        )

        assert result.sample_activity.values.shape == (12, 2)
        assert result.normalized_activity.ligands == ["L1", "L2"]
        assert {row.ligand for row in result.regression} == {"L1", "L2"}
        assert "PHENOTYPE ASSOCIATION" in result.summary

    def test_ligand_combination(self, pipeline, layers):
        lr, sig, gr = layers
        result = pipeline.analyze(
            lr, sig, gr,
            source_weights=SourceWeights(default_weight=1.0),
            ligands=["L1", ("L1", "L2")],
            genes_of_interest=["G1", "G2"],
        )

        assert result.ligand_target.ligands == ["L1", "L1-L2"]
        assert {row.ligand for row in result.activity_table} == {"L1", "L1-L2"}
        assert "L1-L2" in result.top_ligands(2)

        # Paths of the combination start at its member ligands
        paths = result.signaling_paths
        assert paths.paths_for("L1", "G1")[0].nodes == ["L1", "R1", "TF1", "G1"]
        assert ("L2", "G1") in paths.unreachable

    def test_unknown_source_without_default(self, pipeline, layers):
        lr, sig, gr = layers
        with pytest.raises(InvalidInput):
            pipeline.analyze(lr, sig, gr, SourceWeights(weights={"db": 1.0}), ligands=["L1"])

    @pytest.mark.integration
    def test_demo_run_writes_outputs(self, tmp_path):
        config = PipelineConfig.from_yaml(str(DEMO_CONFIG))
        config.output_dir = str(tmp_path)
        config.verbose = False
        result = LigandActivityPipeline(config).run()

        assert "BMP2" not in result.ligand_target.ligands
        assert result.activity_table.top_ligands(1) == ["TGFB1"]
        for name in [
            "ligand_target_matrix.tsv",
            "ligand_activities.tsv",
            "sample_activities.tsv",
            "normalized_activities.tsv",
            "phenotype_association.tsv",
            "summary.txt",
        ]:
            assert (tmp_path / name).exists()


class TestCLI:
    """Tests for the command-line interface."""

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.integration
    def test_demo(self, tmp_path):
        result = CliRunner().invoke(main, ["--config", str(DEMO_CONFIG), "--output", str(tmp_path), "--quiet"])
        assert result.exit_code == 0, result.output
        assert "Pipeline completed successfully!" in result.output
        assert (tmp_path / "summary.txt").exists()

    def test_malformed_edge_table(self, tmp_path):
        for name, text in [
            ("lr.tsv", "from\tto\tsource\nL1\tR1\tdb\n\tR2\tdb\n"),
            ("sig.tsv", "from\tto\tsource\nR1\tTF1\tdb\n"),
            ("gr.tsv", "from\tto\tsource\tweight\nTF1\tG1\tdb\tstrong\n"),
        ]:
            _write(tmp_path / name, text)
        _write(tmp_path / "ligands.txt", "L1\n")
        config = {
            "data": {
                "lr_edges_path": str(tmp_path / "lr.tsv"),
                "sig_edges_path": str(tmp_path / "sig.tsv"),
                "gr_edges_path": str(tmp_path / "gr.tsv"),
                "ligands_path": str(tmp_path / "ligands.txt"),
            },
            "verbose": False,
        }
        path = _write(tmp_path / "config.yaml", yaml.safe_dump(config))
        result = CliRunner().invoke(main, ["--config", str(path), "--output", str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "empty from/to/source" in result.output

    def test_invalid_config(self, tmp_path):
        path = _write(tmp_path / "bad.yaml", yaml.safe_dump({"verbose": True}))
        result = CliRunner().invoke(main, ["--config", str(path)])
        assert result.exit_code == 1
        assert "missing 'data' section" in result.output

    def test_missing_input_file(self, tmp_path):
        config = {
            "data": {
                "lr_edges_path": "lr.tsv",
                "sig_edges_path": "sig.tsv",
                "gr_edges_path": "gr.tsv",
                "ligands_path": "ligands.txt",
            },
            "verbose": False,
        }
        path = _write(tmp_path / "config.yaml", yaml.safe_dump(config))
        result = CliRunner().invoke(main, ["--config", str(path)])
        assert result.exit_code == 1
        assert "Input file not found" in result.output
