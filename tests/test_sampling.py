"""Tests for stratified sampling and occurrence records."""

from __future__ import annotations

import logging
import warnings

import numpy as np
import pytest

from habitat_model.sampling import occurrences_from_records, stratified_sample

from conftest import make_stack


@pytest.fixture
def binary_raster():
    """10 x 10 raster: left half 1, right half 0, one no-data column."""
    data = np.zeros((10, 10))
    data[:, :5] = 1
    data[:, 9] = np.nan
    return make_stack(data, ["presence"])


class TestStratifiedSample:
    """Test sampling cells from a categorical raster."""

    def test_draws_requested_count_per_class(self, binary_raster) -> None:
        points = stratified_sample(binary_raster, n_per_class=20, seed=1)
        assert points["label"].value_counts().to_dict() == {0: 20, 1: 20}

    def test_same_seed_same_points(self, binary_raster) -> None:
        a = stratified_sample(binary_raster, n_per_class=20, seed=7)
        b = stratified_sample(binary_raster, n_per_class=20, seed=7)
        assert a.geometry.equals(b.geometry)
        assert a["label"].equals(b["label"])

    def test_different_seed_different_points(self, binary_raster) -> None:
        a = stratified_sample(binary_raster, n_per_class=20, seed=7)
        b = stratified_sample(binary_raster, n_per_class=20, seed=8)
        assert not a.geometry.equals(b.geometry)

    def test_points_at_cell_centres_matching_label(self, binary_raster) -> None:
        points = stratified_sample(binary_raster, n_per_class=20, seed=1)
        xs, ys = points.geometry.x.to_numpy(), points.geometry.y.to_numpy()

        np.testing.assert_allclose(xs % 1, 0.5)
        np.testing.assert_allclose(ys % 1, 0.5)
        # left half (x < 5) is class 1
        np.testing.assert_array_equal((xs < 5).astype(int), points["label"].to_numpy())

    def test_nodata_cells_never_drawn(self, binary_raster) -> None:
        points = stratified_sample(binary_raster, n_per_class=40, seed=3)
        assert (points.geometry.x < 9).all()

    def test_small_class_returns_all_cells(self, binary_raster, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            points = stratified_sample(binary_raster, n_per_class=45, seed=1)

        counts = points["label"].value_counts().to_dict()
        assert counts == {1: 45, 0: 40}
        assert "only 40 cells" in caplog.text
        # no duplicated cells
        assert not points.geometry.duplicated().any()

    def test_year_recorded(self, binary_raster) -> None:
        points = stratified_sample(binary_raster, n_per_class=5, year=2020)
        assert (points["year"] == 2020).all()

    def test_crs_carried_over(self, binary_raster) -> None:
        points = stratified_sample(binary_raster, n_per_class=5)
        assert points.crs.to_epsg() == 4326

    def test_non_binary_raster_rejected(self) -> None:
        landcover = make_stack(np.array([[1.0, 2.0, 3.0], [0.0, 1.0, np.nan]]), ["landcover"])
        with pytest.raises(ValueError, match="0/1"):
            stratified_sample(landcover, n_per_class=1)

    def test_no_deprecation_warnings(self, binary_raster) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error", PendingDeprecationWarning)
            stratified_sample(binary_raster, n_per_class=5)

    def test_multiband_rejected(self) -> None:
        with pytest.raises(ValueError, match="single-band"):
            stratified_sample(make_stack(np.zeros((2, 3, 3))))


class TestOccurrencesFromRecords:
    """Test turning occurrence-service records into points."""

    def test_skips_records_without_coordinates(self) -> None:
        records = [
            {"decimalLongitude": -123.1, "decimalLatitude": 49.2, "year": 2019},
            {"decimalLongitude": None, "decimalLatitude": 49.0},
            {"decimalLongitude": -122.5, "decimalLatitude": 48.9},
        ]
        points = occurrences_from_records(records)

        assert len(points) == 2
        assert (points["label"] == 1).all()
        assert points["year"].iloc[0] == 2019
        assert points["year"].isna().iloc[1]
        assert points.geometry.x.tolist() == [-123.1, -122.5]
