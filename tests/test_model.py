"""Tests for the boosted regression tree model."""

from __future__ import annotations

from pathlib import Path

import joblib
import numpy as np
import pandas as pd
import pytest

from habitat_model.errors import TrainingError
from habitat_model.model import BoostingConfig, DistributionModel

from conftest import separable_table


class TestBoostingConfig:
    """Test hyperparameter mapping."""

    def test_maps_to_sklearn(self) -> None:
        gbm = BoostingConfig(learning_rate=0.05, tree_complexity=3, bag_fraction=0.75).build()
        assert gbm.learning_rate == 0.05
        assert gbm.max_depth == 3
        assert gbm.subsample == 0.75
        assert gbm.loss == "log_loss"

    def test_unknown_family_rejected(self) -> None:
        with pytest.raises(ValueError, match="gaussian"):
            DistributionModel(BoostingConfig(family="gaussian"))


class TestTrainingErrors:
    """Test that degenerate training data is refused."""

    def test_too_few_rows(self, fast_config) -> None:
        table = separable_table(n=8)
        with pytest.raises(TrainingError, match="at least"):
            DistributionModel(fast_config).train(table, ["x"])

    def test_single_class(self, fast_config) -> None:
        table = separable_table()
        table["label"] = 1
        with pytest.raises(TrainingError, match="both"):
            DistributionModel(fast_config).train(table, ["x"])

    def test_labels_other_than_zero_one(self, fast_config) -> None:
        table = separable_table()
        table.loc[:30, "label"] = 2
        with pytest.raises(TrainingError, match="0 or 1"):
            DistributionModel(fast_config).train(table, ["x", "z"])

    def test_fractional_labels(self, fast_config) -> None:
        table = separable_table().astype({"label": float})
        table.loc[0, "label"] = 0.5
        with pytest.raises(TrainingError, match="0 or 1"):
            DistributionModel(fast_config).train(table, ["x", "z"])

    def test_missing_column(self, fast_config, training_table) -> None:
        with pytest.raises(TrainingError, match="bio01"):
            DistributionModel(fast_config).train(training_table, ["x", "bio01"])

    def test_missing_values(self, fast_config, training_table) -> None:
        training_table.loc[3, "x"] = np.nan
        with pytest.raises(TrainingError, match="missing"):
            DistributionModel(fast_config).train(training_table, ["x"])


class TestTraining:
    """Test fitting and inspecting a model."""

    def test_train_stats(self, trained_model) -> None:
        stats = trained_model.train_stats
        assert stats["n_train"] == 200
        assert stats["n_positive_train"] == 100
        assert stats["n_trees"] == 60

    def test_importance_ranks_signal_first(self, trained_model) -> None:
        importance = trained_model.importance
        assert list(importance.index) == ["x", "z"]
        assert importance.sum() == pytest.approx(100)
        assert importance.is_monotonic_decreasing

    def test_probabilities_follow_rule(self, trained_model) -> None:
        probs = trained_model.predict_proba(pd.DataFrame({"x": [-1.5, 1.5], "z": [0.0, 0.0]}))
        assert probs[0] < 0.5 < probs[1]

    def test_untrained_model_refuses_to_predict(self) -> None:
        with pytest.raises(RuntimeError):
            DistributionModel().predict_proba(np.zeros((1, 2)))


class TestPersistence:
    """Test saving and loading models."""

    def test_round_trip(self, trained_model, training_table, tmp_path: Path) -> None:
        path = tmp_path / "models" / "brt.joblib"
        trained_model.save(path)

        loaded = DistributionModel.load(path)

        assert loaded.predictors == ["x", "z"]
        assert loaded.config == trained_model.config
        assert loaded.train_stats == trained_model.train_stats
        np.testing.assert_array_equal(
            loaded.predict_proba(training_table), trained_model.predict_proba(training_table)
        )

    def test_load_missing_raises_ioerror(self, tmp_path: Path) -> None:
        with pytest.raises(IOError):
            DistributionModel.load(tmp_path / "missing.joblib")

    def test_load_corrupt_file_names_path(self, tmp_path: Path) -> None:
        path = tmp_path / "m.joblib"
        path.write_text("not a model")
        with pytest.raises(IOError, match="m.joblib") as excinfo:
            DistributionModel.load(path)
        assert excinfo.value.__cause__ is not None

    def test_load_foreign_object_names_path(self, tmp_path: Path) -> None:
        path = tmp_path / "other.joblib"
        joblib.dump({"model": None}, path)
        with pytest.raises(IOError, match="other.joblib"):
            DistributionModel.load(path)

    def test_untrained_cannot_be_saved(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            DistributionModel().save(tmp_path / "m.joblib")
