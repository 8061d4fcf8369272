"""
Ligand Activity Pipeline

End-to-end run from interaction tables and expression data to ranked ligands
and the signaling paths explaining them.

This pipeline integrates:
- network: source-weighted interaction network
- propagation: ligand-target regulatory potentials
- scoring: gene-set activities, per-sample activities, normalization, regression
- paths: signaling paths and supporting data sources

Example Usage:
    from ligand_activity_framework import LigandActivityPipeline, PipelineConfig

    config = PipelineConfig.from_yaml("configs/demo.yaml")
    result = LigandActivityPipeline(config).run()
    print(result.summary)
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

import networkx as nx
import yaml

from . import io
from .errors import InvalidInput
from .network import Edge, GraphBuilderConfig, Layer, SourceWeights, WeightedNetwork, build_weighted_network
from .paths import (
    PathExtractionConfig,
    SignalingPathExtractor,
    SignalingPathResult,
    SourceAnnotationTable,
    infer_supporting_datasources,
)
from .propagation import LigandTargetMatrix, PropagationConfig, RandomWalkPropagator, seed_label
from .propagation.random_walk import Seed
from .scoring import (
    ActivityNormalizer,
    ActivityRegressor,
    ActivityScoringConfig,
    ExpressionMatrix,
    ExpressionScaling,
    GeneSet,
    LigandActivityScorer,
    LigandActivityTable,
    NormalizationConfig,
    NormalizedActivity,
    PhenotypeScores,
    RegressionConfig,
    RegressionRanking,
    SampleActivityMatrix,
    SingleSampleActivityEngine,
    SingleSampleConfig,
    scale_expression,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class DataConfig:
    """Input files."""

    # Required: interaction layers and ligands
    lr_edges_path: str
    sig_edges_path: str
    gr_edges_path: str
    ligands_path: str

    # Source weighting
    source_weights_path: Optional[str] = None
    default_source_weight: Optional[float] = None  # None: unknown sources are an error
    hub_factors: Dict[str, float] = field(default_factory=dict)

    # Optional: restrict matrix rows
    targets_path: Optional[str] = None

    # Optional: gene-set activity
    genes_of_interest_path: Optional[str] = None
    background_path: Optional[str] = None  # Default: all matrix rows

    # Optional: per-sample activity and phenotype regression
    expression_path: Optional[str] = None
    expression_genes_as_rows: bool = False
    phenotype_path: Optional[str] = None
    phenotype_column: str = "score"


@dataclass
class PathOutputConfig:
    """Which ligands and targets get signaling paths."""

    enabled: bool = True
    n_ligands: int = 5  # Top ranked ligands
    n_targets: int = 10  # Top predicted targets per ligand
    extraction: PathExtractionConfig = field(default_factory=PathExtractionConfig)


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    data: DataConfig
    graph: GraphBuilderConfig = field(default_factory=GraphBuilderConfig)
    propagation: PropagationConfig = field(default_factory=PropagationConfig)
    activity: ActivityScoringConfig = field(default_factory=ActivityScoringConfig)
    single_sample: SingleSampleConfig = field(default_factory=SingleSampleConfig)
    expression_scaling: ExpressionScaling = ExpressionScaling.QUANTILE
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    regression: RegressionConfig = field(default_factory=RegressionConfig)
    paths: PathOutputConfig = field(default_factory=PathOutputConfig)

    # Pipeline behavior
    verbose: bool = True
    n_workers: Optional[int] = None  # Overrides every component's n_workers

    # Output
    output_dir: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Build from a nested mapping (as loaded from YAML)."""
        return _from_mapping(cls, data)

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """
        Load configuration from a YAML file.

        Relative input paths are resolved against the file's directory.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if "data" not in raw:
            raise InvalidInput(f"{config_path}: missing 'data' section")

        config = cls.from_dict(raw)
        base = config_path.parent
        for f in dataclasses.fields(config.data):
            value = getattr(config.data, f.name)
            if f.name.endswith("_path") and value and not Path(value).is_absolute():
                setattr(config.data, f.name, str(base / value))
        return config

    def apply_n_workers(self, n_workers: int) -> None:
        self.n_workers = n_workers
        for component in (self.propagation, self.activity, self.single_sample):
            component.n_workers = n_workers


def _from_mapping(cls: Type[T], data: Optional[Mapping[str, Any]]) -> T:
    """Instantiate a config dataclass, converting nested sections and enum values."""
    data = dict(data or {})
    known = {f.name: f for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise InvalidInput(f"Unknown {cls.__name__} options: {unknown}")

    kwargs = {}
    for name, value in data.items():
        ftype = known[name].type
        if isinstance(ftype, type) and dataclasses.is_dataclass(ftype):
            value = _from_mapping(ftype, value)
        elif isinstance(ftype, type) and issubclass(ftype, Enum):
            try:
                value = ftype(value)
            except ValueError:
                raise InvalidInput(f"Invalid {cls.__name__}.{name}: {value!r}") from None
        kwargs[name] = value
    return cls(**kwargs)


# =============================================================================
# Pipeline Result
# =============================================================================

@dataclass
class PipelineResult:
    """Every artifact produced by one pipeline run."""

    network: WeightedNetwork
    ligand_target: LigandTargetMatrix

    activity_table: Optional[LigandActivityTable] = None
    sample_activity: Optional[SampleActivityMatrix] = None
    normalized_activity: Optional[NormalizedActivity] = None
    regression: Optional[RegressionRanking] = None
    signaling_paths: Optional[SignalingPathResult] = None
    datasources: Optional[SourceAnnotationTable] = None

    config: Optional[PipelineConfig] = None
    runtime_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def top_ligands(self, n: int = 10) -> List[str]:
        """Top ligands by regression if available, else by gene-set activity."""
        if self.regression is not None:
            return self.regression.top_ligands(n)
        if self.activity_table is not None:
            return self.activity_table.top_ligands(n)
        return []

    @property
    def summary(self) -> str:
        """Generate a summary of the pipeline results."""
        stats = self.network.get_stats()
        lines = [
            "=" * 60,
            "LIGAND ACTIVITY PIPELINE RESULTS",
            "=" * 60,
            f"Timestamp: {self.timestamp}",
            f"Runtime: {self.runtime_seconds:.1f} seconds",
            "",
            "NETWORK:",
            f"  Nodes: {stats.n_nodes}",
            f"  Edges: {stats.n_edges}",
            "",
            "LIGAND-TARGET MATRIX:",
            f"  {self.ligand_target.n_genes} genes x {self.ligand_target.n_ligands} ligands",
        ]

        if self.activity_table is not None:
            lines.extend(["", "GENE-SET ACTIVITY:"])
            for row in self.activity_table.ranked()[:5]:
                lines.append(
                    f"  {row.ligand}: aupr_corrected={row.aupr_corrected:.3f} auroc={row.auroc:.3f}"
                )
            if self.activity_table.skipped:
                lines.append(f"  Skipped ligands: {len(self.activity_table.skipped)}")

        if self.sample_activity is not None:
            lines.extend([
                "",
                "PER-SAMPLE ACTIVITY:",
                f"  {self.sample_activity.n_samples} samples x {self.sample_activity.n_ligands} ligands",
                f"  Undefined entries: {self.sample_activity.n_undefined}",
            ])

        if self.regression is not None:
            lines.extend(["", "PHENOTYPE ASSOCIATION:"])
            for row in self.regression.rows[:5]:
                flag = " (low n)" if row.low_n else ""
                lines.append(f"  {row.ligand}: r={row.pearson:.3f} n={row.n_samples}{flag}")

        if self.signaling_paths is not None:
            lines.extend([
                "",
                "SIGNALING PATHS:",
                f"  Paths: {len(self.signaling_paths)}",
                f"  Subnetwork edges: {self.signaling_paths.subnetwork.number_of_edges()}",
            ])

        lines.append("=" * 60)
        return "\n".join(lines)


# =============================================================================
# Main Pipeline
# =============================================================================

class LigandActivityPipeline:
    """
    End-to-end ligand activity inference.

    Builds the network, propagates every ligand, scores ligands against the
    available expression data and explains the top ligands by signaling paths.
    """

    def __init__(self, config: PipelineConfig):
        """
        Initialize the pipeline.

        Args:
            config: Complete pipeline configuration
        """
        self.config = config
        if config.n_workers is not None:
            config.apply_n_workers(config.n_workers)
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Configure logging based on verbosity setting."""
        level = logging.INFO if self.config.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    def run(self) -> PipelineResult:
        """
        Read every configured input and run the pipeline.

        Returns:
            PipelineResult
        """
        data = self.config.data
        logger.info("Step 1: Loading inputs")

        if data.source_weights_path:
            source_weights = io.read_source_weights(
                data.source_weights_path,
                default_weight=data.default_source_weight,
                hub_factors=data.hub_factors,
            )
        else:
            source_weights = SourceWeights(
                default_weight=data.default_source_weight,
                hub_factors=data.hub_factors,
            )

        expression = None
        if data.expression_path:
            expression = io.read_expression_matrix(
                data.expression_path, transpose=data.expression_genes_as_rows
            )

        result = self.analyze(
            lr_edges=io.read_edge_table(data.lr_edges_path, Layer.LIGAND_RECEPTOR),
            sig_edges=io.read_edge_table(data.sig_edges_path, Layer.SIGNALING),
            gr_edges=io.read_edge_table(data.gr_edges_path, Layer.GENE_REGULATORY),
            source_weights=source_weights,
            ligands=io.read_gene_list(data.ligands_path),
            targets=io.read_gene_list(data.targets_path) if data.targets_path else None,
            genes_of_interest=(
                io.read_gene_list(data.genes_of_interest_path)
                if data.genes_of_interest_path else None
            ),
            background=io.read_gene_list(data.background_path) if data.background_path else None,
            expression=expression,
            phenotype=(
                io.read_phenotype_scores(data.phenotype_path, score_column=data.phenotype_column)
                if data.phenotype_path else None
            ),
        )

        if self.config.output_dir:
            self.save_results(result, self.config.output_dir)
        return result

    def analyze(
        self,
        lr_edges: Sequence[Edge],
        sig_edges: Sequence[Edge],
        gr_edges: Sequence[Edge],
        source_weights: SourceWeights,
        ligands: Sequence[Seed],
        targets: Optional[Sequence[str]] = None,
        genes_of_interest: Optional[Sequence[str]] = None,
        background: Optional[Sequence[str]] = None,
        expression: Optional[ExpressionMatrix] = None,
        phenotype: Optional[PhenotypeScores] = None,
    ) -> PipelineResult:
        """
        Run the pipeline on in-memory inputs.

        Args:
            lr_edges: Ligand-receptor edges
            sig_edges: Signaling edges
            gr_edges: Gene-regulatory edges
            source_weights: Source weighting table
            ligands: Candidate ligands; a tuple of ligands is scored as one
                combination labelled by its members joined with "-"
            targets: Matrix rows to keep (default: every network node)
            genes_of_interest: Gene set for gene-set activity
            background: Background universe (default: matrix rows)
            expression: Samples x genes expression for per-sample activity
            phenotype: Per-sample phenotype for regression

        Returns:
            PipelineResult
        """
        start_time = datetime.now()
        logger.info("Starting ligand activity pipeline")

        # Step 2: Network
        logger.info("Step 2: Building interaction network")
        network = build_weighted_network(
            lr_edges, sig_edges, gr_edges, source_weights, self.config.graph
        )

        # Step 3: Propagation
        logger.info("Step 3: Constructing ligand-target matrix")
        propagator = RandomWalkPropagator(network, self.config.propagation)
        ligand_target = propagator.construct_ligand_target_matrix(list(ligands), targets)
        members = {
            seed_label(seed): [seed] if isinstance(seed, str) else list(seed) for seed in ligands
        }

        result = PipelineResult(network=network, ligand_target=ligand_target, config=self.config)

        # Step 4: Gene-set activity
        if genes_of_interest is not None:
            logger.info("Step 4: Scoring ligands against the gene set")
            universe = list(background) if background is not None else ligand_target.genes
            gene_set = GeneSet(frozenset(genes_of_interest), frozenset(universe))
            result.activity_table = LigandActivityScorer(self.config.activity).score(
                ligand_target, list(members), gene_set
            )

        # Step 5: Per-sample activity, normalization and regression
        if expression is not None:
            logger.info("Step 5: Scoring ligands per sample")
            scaled = scale_expression(expression, self.config.expression_scaling)
            result.sample_activity = SingleSampleActivityEngine(self.config.single_sample).score(
                ligand_target, scaled, background=background
            )
            result.normalized_activity = ActivityNormalizer(self.config.normalization).normalize(
                result.sample_activity
            )
            if phenotype is not None:
                result.regression = ActivityRegressor(self.config.regression).regress(
                    result.normalized_activity, phenotype
                )

        # Step 6: Signaling paths
        if self.config.paths.enabled:
            top = result.top_ligands(self.config.paths.n_ligands)
            if top:
                logger.info(f"Step 6: Extracting signaling paths for {len(top)} ligands")
                result.signaling_paths, result.datasources = self._explain(
                    network, ligand_target, top, genes_of_interest, members
                )

        result.runtime_seconds = (datetime.now() - start_time).total_seconds()
        logger.info(f"Pipeline completed in {result.runtime_seconds:.1f} seconds")
        return result

    def _explain(
        self,
        network: WeightedNetwork,
        ligand_target: LigandTargetMatrix,
        ligands: Sequence[str],
        genes_of_interest: Optional[Sequence[str]],
        members: Optional[Mapping[str, List[str]]] = None,
    ):
        """
        Paths from each ligand to its top predicted targets.

        A combination column starts its paths at every member ligand present
        in the network.
        """
        members = members or {}
        extractor = SignalingPathExtractor(
            network, self.config.paths.extraction, ligand_target
        )
        gene_filter = list(genes_of_interest) if genes_of_interest is not None else None

        paths = []
        subnetwork = None
        intermediates: Dict[Any, List[str]] = {}
        unreachable = []
        for ligand in ligands:
            starts = [m for m in members.get(ligand, [ligand]) if network.has_node(m)]
            links = ligand_target.weighted_links(ligand, genes=gene_filter)
            targets = [link.target for link in links if link.target not in starts][: self.config.paths.n_targets]
            if not starts or not targets:
                continue
            partial = extractor.extract(starts, targets)
            paths.extend(partial.paths)
            intermediates.update(partial.intermediates)
            unreachable.extend(partial.unreachable)
            subnetwork = partial.subnetwork if subnetwork is None else nx.compose(subnetwork, partial.subnetwork)

        if subnetwork is None:
            return None, None

        combined = SignalingPathResult(
            paths=paths,
            subnetwork=subnetwork,
            intermediates=intermediates,
            unreachable=unreachable,
            metadata={"ligands": list(ligands)},
        )
        return combined, infer_supporting_datasources(combined, network)

    def save_results(self, result: PipelineResult, output_dir: str) -> None:
        """Save result tables to the output directory."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)

        io.write_table(result.ligand_target.to_dataframe(), out / "ligand_target_matrix.tsv", index=True)
        if result.activity_table is not None:
            io.write_table(result.activity_table, out / "ligand_activities.tsv")
        if result.sample_activity is not None:
            io.write_table(result.sample_activity.to_dataframe(), out / "sample_activities.tsv", index=True)
        if result.normalized_activity is not None:
            io.write_table(
                result.normalized_activity.to_dataframe(), out / "normalized_activities.tsv", index=True
            )
        if result.regression is not None:
            io.write_table(result.regression, out / "phenotype_association.tsv")
        if result.signaling_paths is not None:
            io.write_table(result.signaling_paths, out / "signaling_path_edges.tsv")
        if result.datasources is not None:
            io.write_table(result.datasources, out / "signaling_path_sources.tsv")

        with open(out / "summary.txt", "w") as f:
            f.write(result.summary)

        logger.info(f"Results saved to {out}")
