"""
Scoring

Ranks candidate ligands against expression data.

Components:
- LigandActivityScorer: gene-set discrimination (AUROC, AUPR, correlations)
- SingleSampleActivityEngine: per-sample / per-cell correlation activities
- ActivityNormalizer: robust z-scores per ligand column
- ActivityRegressor: association of activities with a phenotype score

Example Usage:
    from ligand_activity_framework.scoring import (
        GeneSet, LigandActivityScorer, SingleSampleActivityEngine,
        ActivityNormalizer, ActivityRegressor, PhenotypeScores,
    )

    table = LigandActivityScorer().score(ligand_target, ligands, GeneSet(degs, background))
    table.top_ligands(20)

    raw = SingleSampleActivityEngine().score(ligand_target, expression, ligands)
    normalized = ActivityNormalizer().normalize(raw)
    ranking = ActivityRegressor().regress(normalized, PhenotypeScores(scores))
"""

from .activity import (
    ActivityScoringConfig,
    ActivityStatistic,
    GeneSet,
    LigandActivity,
    LigandActivityScorer,
    LigandActivityTable,
    predict_ligand_activities,
)
from .metrics import (
    aupr,
    auroc,
    classification_metrics,
    correlate_columns,
    pearson,
    spearman,
    top_k_recovery,
)
from .normalization import (
    ActivityNormalizer,
    ColumnStatus,
    NormalizationConfig,
    NormalizationMethod,
    NormalizedActivity,
    robust_zscore,
)
from .regression import (
    ActivityRegressor,
    LigandAssociation,
    PhenotypeScores,
    RegressionConfig,
    RegressionRanking,
)
from .single_sample import (
    CorrelationMethod,
    ExpressionMatrix,
    ExpressionScaling,
    SampleActivityMatrix,
    SingleSampleActivityEngine,
    SingleSampleConfig,
    expressed_genes,
    get_expressed_genes,
    predict_single_sample_activities,
    scale_expression,
)

__all__ = [
    # Gene-set activity
    "ActivityScoringConfig",
    "ActivityStatistic",
    "GeneSet",
    "LigandActivity",
    "LigandActivityScorer",
    "LigandActivityTable",
    "predict_ligand_activities",
    # Metrics
    "aupr",
    "auroc",
    "classification_metrics",
    "correlate_columns",
    "pearson",
    "spearman",
    "top_k_recovery",
    # Single sample
    "CorrelationMethod",
    "ExpressionMatrix",
    "ExpressionScaling",
    "SampleActivityMatrix",
    "SingleSampleActivityEngine",
    "SingleSampleConfig",
    "expressed_genes",
    "get_expressed_genes",
    "predict_single_sample_activities",
    "scale_expression",
    # Normalization
    "ActivityNormalizer",
    "ColumnStatus",
    "NormalizationConfig",
    "NormalizationMethod",
    "NormalizedActivity",
    "robust_zscore",
    # Regression
    "ActivityRegressor",
    "LigandAssociation",
    "PhenotypeScores",
    "RegressionConfig",
    "RegressionRanking",
]
