"""
Tests for Activity Normalization

Tests the robust z-score closed form and the zero-MAD guards.
"""

import math

import numpy as np
import pytest

from ligand_activity_framework.errors import InvalidInput
from ligand_activity_framework.scoring import (
    ActivityNormalizer,
    ColumnStatus,
    NormalizationConfig,
    NormalizationMethod,
    SampleActivityMatrix,
    robust_zscore,
)


def _activity(columns, defined=None):
    values = np.column_stack(columns).astype(float)
    if defined is None:
        defined = np.isfinite(values)
    n_samples = values.shape[0]
    return SampleActivityMatrix(
        samples=[f"S{i}" for i in range(n_samples)],
        ligands=[f"L{j}" for j in range(values.shape[1])],
        values=values,
        defined=defined,
        n_genes=np.full(n_samples, 100),
    )


class TestRobustZscore:
    """Tests for the robust z-score."""

    def test_closed_form(self):
        x = np.array([1.0, 2.0, 3.0, 4.0, 100.0])
        # median 3, raw MAD 1
        expected = (x - 3.0) / 1.4826
        np.testing.assert_allclose(robust_zscore(x), expected)

        normalized = ActivityNormalizer().normalize(_activity([x]))
        np.testing.assert_allclose(normalized.column("L0"), expected)
        assert normalized.status["L0"] == ColumnStatus.NORMALIZED
        assert normalized.centers["L0"] == pytest.approx(3.0)
        assert normalized.scales["L0"] == pytest.approx(1.4826)

    def test_undefined_entries_excluded(self):
        x = np.array([1.0, 2.0, 3.0, 4.0, 100.0, np.nan])
        normalized = ActivityNormalizer().normalize(_activity([x]))
        z = normalized.column("L0")
        np.testing.assert_allclose(z[:5], (x[:5] - 3.0) / 1.4826)
        assert math.isnan(z[5])
        assert not normalized.defined[5, 0]

    def test_median_zero_for_symmetric_column(self):
        x = np.array([-2.0, -1.0, 0.0, 1.0, 2.0])
        z = ActivityNormalizer().normalize(_activity([x])).column("L0")
        assert np.median(z) == pytest.approx(0.0)

    def test_zscore_method(self):
        x = np.array([1.0, 2.0, 3.0, 4.0])
        config = NormalizationConfig(method=NormalizationMethod.ZSCORE)
        z = ActivityNormalizer(config).normalize(_activity([x])).column("L0")
        np.testing.assert_allclose(z, (x - x.mean()) / x.std())


class TestZeroSpread:
    """Tests for MAD = 0 columns."""

    def test_unnormalizable_without_min_scale(self, caplog):
        x = np.array([2.0, 2.0, 2.0, 5.0, np.nan])
        normalized = ActivityNormalizer().normalize(_activity([x]))
        z = normalized.column("L0")

        assert normalized.status["L0"] == ColumnStatus.UNNORMALIZABLE
        np.testing.assert_allclose(z[:4], 0.0)
        assert math.isnan(z[4])
        assert math.isnan(normalized.scales["L0"])
        assert normalized.ligands_with_status(ColumnStatus.UNNORMALIZABLE) == ["L0"]
        assert "unnormalizable" in caplog.text

    def test_min_scale_floor(self, caplog):
        x = np.array([2.0, 2.0, 2.0, 5.0])
        config = NormalizationConfig(min_scale=0.5)
        normalized = ActivityNormalizer(config).normalize(_activity([x]))

        assert normalized.status["L0"] == ColumnStatus.SCALE_FLOORED
        np.testing.assert_allclose(normalized.column("L0"), [0.0, 0.0, 0.0, 6.0])
        assert "min_scale" in caplog.text

    def test_invalid_min_scale(self):
        with pytest.raises(InvalidInput):
            ActivityNormalizer(NormalizationConfig(min_scale=0.0))

    def test_empty_column(self):
        x = np.array([np.nan, np.nan, np.nan])
        y = np.array([1.0, 2.0, 4.0])
        normalized = ActivityNormalizer().normalize(_activity([x, y]))
        assert normalized.status["L0"] == ColumnStatus.EMPTY
        assert np.all(np.isnan(normalized.column("L0")))
        assert normalized.status["L1"] == ColumnStatus.NORMALIZED

    def test_columns_independent(self):
        x = np.array([2.0, 2.0, 2.0, 2.0])
        y = np.array([1.0, 2.0, 3.0, 10.0])
        normalized = ActivityNormalizer().normalize(_activity([x, y]))
        assert normalized.status["L0"] == ColumnStatus.UNNORMALIZABLE
        assert normalized.status["L1"] == ColumnStatus.NORMALIZED
        df = normalized.to_dataframe()
        assert list(df.columns) == ["L0", "L1"]
