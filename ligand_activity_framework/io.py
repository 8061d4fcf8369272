"""
Tabular input / output.

Thin pandas readers for the interaction, expression and phenotype tables the
pipeline consumes, and a TSV writer for its outputs. Files are tab-separated
unless the extension is .csv.
"""

from pathlib import Path
from typing import Any, Iterable, List, Optional, Union
import logging

import pandas as pd

from .errors import InvalidInput
from .network import Edge, Layer, SourceWeights
from .scoring import ExpressionMatrix, PhenotypeScores

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_table(path: PathLike, **kwargs: Any) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    sep = "," if path.suffix.lower() == ".csv" else "\t"
    return pd.read_csv(path, sep=sep, **kwargs)


def _require_columns(df: pd.DataFrame, columns: Iterable[str], path: PathLike) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidInput(f"{path}: missing required columns {missing}")


def _as_float(values: Any, column: str, path: PathLike) -> Any:
    """Cast a Series or DataFrame to float, InvalidInput on non-numeric cells."""
    try:
        return values.astype(float)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{path}: non-numeric value in {column}: {e}") from None


def read_edge_table(path: PathLike, layer: Union[Layer, str]) -> List[Edge]:
    """
    Read one interaction layer.

    Required columns: from, to, source. Optional column: weight.

    Args:
        path: Edge table
        layer: Layer the edges belong to

    Returns:
        List of Edge records

    Raises:
        InvalidInput: missing columns, empty required cells or non-numeric weights
    """
    layer = Layer.parse(layer)
    df = _read_table(path, dtype={"from": str, "to": str, "source": str})
    _require_columns(df, ["from", "to", "source"], path)

    incomplete = df[["from", "to", "source"]].isna().any(axis=1)
    if incomplete.any():
        # Line numbers count the header as line 1
        lines = [int(i) + 2 for i in df.index[incomplete]]
        raise InvalidInput(f"{path}: empty from/to/source on lines {lines[:10]}")

    weights = _as_float(df["weight"], "weight", path) if "weight" in df.columns else None
    edges = []
    for i, record in enumerate(df.to_dict("records")):
        weight = None
        if weights is not None and not pd.isna(weights.iloc[i]):
            weight = float(weights.iloc[i])
        edges.append(
            Edge(
                source_node=record["from"],
                target_node=record["to"],
                source=record["source"],
                layer=layer,
                weight=weight,
            )
        )

    logger.info(f"Read {len(edges)} {layer.value} edges from {path}")
    return edges


def read_source_weights(
    path: PathLike,
    default_weight: Optional[float] = None,
    hub_factors: Optional[dict] = None,
) -> SourceWeights:
    """
    Read a (source, weight) table.

    Args:
        path: Source weight table
        default_weight: Weight for sources not in the table
        hub_factors: Hub correction factor per layer

    Returns:
        SourceWeights
    """
    df = _read_table(path, dtype={"source": str})
    _require_columns(df, ["source", "weight"], path)
    if df["source"].isna().any():
        raise InvalidInput(f"{path}: empty source in weight table")
    if df["source"].duplicated().any():
        raise InvalidInput(f"{path}: duplicate sources in weight table")

    weights = dict(zip(df["source"], _as_float(df["weight"], "weight", path)))
    logger.info(f"Read weights for {len(weights)} data sources from {path}")
    return SourceWeights(
        weights=weights,
        default_weight=default_weight,
        hub_factors=hub_factors or {},
    )


def read_gene_list(path: PathLike, column: Optional[str] = None) -> List[str]:
    """
    Read a gene list: one gene per line, or a named column of a table.

    Duplicates are dropped, first occurrence kept.
    """
    if column is None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        with open(path) as f:
            genes = [line.strip() for line in f if line.strip() and not line.startswith("#")]
    else:
        df = _read_table(path, dtype={column: str})
        _require_columns(df, [column], path)
        genes = [g for g in df[column].dropna()]
    return list(dict.fromkeys(genes))


def read_expression_matrix(path: PathLike, transpose: bool = False) -> ExpressionMatrix:
    """
    Read an expression matrix with sample ids in the first column.

    Args:
        path: Samples x genes table (genes x samples when transpose is set)
        transpose: Input has genes as rows

    Returns:
        ExpressionMatrix
    """
    df = _read_table(path, index_col=0)
    if transpose:
        df = df.T
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    if df.isna().any().any():
        raise InvalidInput(f"{path}: expression matrix contains missing values")

    matrix = ExpressionMatrix.from_dataframe(_as_float(df, "expression values", path))
    logger.info(f"Read expression for {matrix.n_samples} samples x {matrix.n_genes} genes from {path}")
    return matrix


def read_phenotype_scores(
    path: PathLike,
    sample_column: str = "sample",
    score_column: str = "score",
) -> PhenotypeScores:
    """Read a (sample, score) table; rows with a missing score are dropped."""
    df = _read_table(path, dtype={sample_column: str})
    _require_columns(df, [sample_column, score_column], path)
    if df[sample_column].duplicated().any():
        raise InvalidInput(f"{path}: duplicate sample ids in phenotype table")

    df = df.dropna(subset=[score_column])
    return PhenotypeScores(
        dict(zip(df[sample_column], _as_float(df[score_column], score_column, path))),
        name=score_column,
    )


def write_table(table: Any, path: PathLike, index: bool = False) -> Path:
    """
    Write a result table as TSV.

    Args:
        table: DataFrame or any object with to_dataframe()
        path: Output path (parent directories are created)
        index: Write the DataFrame index

    Returns:
        Path written
    """
    df = table if isinstance(table, pd.DataFrame) else table.to_dataframe()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=index)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path
