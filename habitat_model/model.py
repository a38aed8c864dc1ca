"""
Boosted regression tree model training and persistence.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Sequence

import joblib
import numpy as np
import pandas as pd
from sklearn.ensemble import GradientBoostingClassifier

from .errors import TrainingError

logger = logging.getLogger(__name__)

MIN_TRAINING_ROWS = 10

# Keys written by DistributionModel.save
SAVED_KEYS = ("model", "predictors", "config", "train_stats")

# Loss families accepted by BoostingConfig, mapped to scikit-learn loss names
LOSS_FAMILIES = {
    "bernoulli": "log_loss",
    "adaboost": "exponential",
}


@dataclass(frozen=True)
class BoostingConfig:
    """
    Fixed hyperparameters for the boosted regression tree.

    `tree_complexity` is the maximum depth of each tree, `bag_fraction` the
    share of rows each tree is fitted on. Training stops early once the
    held-out deviance has not improved for `n_iter_no_change` trees.
    """

    learning_rate: float = 0.01
    tree_complexity: int = 5
    bag_fraction: float = 0.5
    n_trees: int = 1000
    n_iter_no_change: Optional[int] = 50
    family: str = "bernoulli"
    random_state: int = 42

    def build(self) -> GradientBoostingClassifier:
        if self.family not in LOSS_FAMILIES:
            raise ValueError(f"Unknown loss family: {self.family}. Choose from {list(LOSS_FAMILIES)}")
        return GradientBoostingClassifier(
            loss=LOSS_FAMILIES[self.family],
            learning_rate=self.learning_rate,
            n_estimators=self.n_trees,
            max_depth=self.tree_complexity,
            subsample=self.bag_fraction,
            n_iter_no_change=self.n_iter_no_change,
            random_state=self.random_state,
        )


class DistributionModel:
    """
    Presence/absence classifier over environmental covariates.
    """

    def __init__(self, config: Optional[BoostingConfig] = None):
        """
        Initialize the model.

        Args:
            config: Boosting hyperparameters (defaults to BoostingConfig())
        """
        self.config = config or BoostingConfig()
        self.model = self.config.build()
        self.predictors: list[str] = []
        self.is_trained = False
        self.train_stats = {}

    def train(
        self,
        table: pd.DataFrame,
        predictors: Sequence[str],
        label: str = "label",
    ) -> dict:
        """
        Fit the model on a covariate table.

        Args:
            table: Training rows with a label column and predictor columns
            predictors: Columns to use as predictors
            label: Name of the 0/1 label column

        Returns:
            Dictionary with training statistics
        """
        predictors = list(predictors)
        missing = [c for c in [label, *predictors] if c not in table.columns]
        if missing:
            raise TrainingError(f"Training table is missing columns: {missing}")
        if not predictors:
            raise TrainingError("No predictor columns given")
        if len(table) < MIN_TRAINING_ROWS:
            raise TrainingError(f"Need at least {MIN_TRAINING_ROWS} training rows, got {len(table)}")

        X = table[predictors].to_numpy(dtype=np.float64)
        if np.isnan(X).any():
            raise TrainingError("Training predictors contain missing values")

        classes = pd.unique(table[label]).tolist()
        unexpected = [c for c in classes if c not in (0, 1)]
        if unexpected:
            raise TrainingError(f"Training labels must be 0 or 1, found {sorted(map(str, unexpected))[:10]}")
        if len(classes) < 2:
            raise TrainingError(f"All training labels are {classes[0]}; need both presences and absences")
        y = table[label].to_numpy().astype(int)

        logger.info(
            f"Training boosted trees on {len(X)} rows, {len(predictors)} predictors "
            f"(lr={self.config.learning_rate}, tc={self.config.tree_complexity}, bag={self.config.bag_fraction})"
        )
        self.model.fit(X, y)
        self.predictors = predictors
        self.is_trained = True

        self.train_stats = {
            "n_train": len(X),
            "n_positive_train": int(y.sum()),
            "n_negative_train": int(len(y) - y.sum()),
            "n_trees": int(self.model.n_estimators_),
            "train_deviance": float(self.model.train_score_[-1]),
        }
        logger.info(f"  Fitted {self.train_stats['n_trees']} trees")
        return self.train_stats

    @property
    def importance(self) -> pd.Series:
        """Relative influence of each predictor (sums to 100), descending."""
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")
        influence = pd.Series(self.model.feature_importances_ * 100, index=self.predictors, name="relative_influence")
        return influence.sort_values(ascending=False)

    def predict_proba(self, X: pd.DataFrame | np.ndarray) -> np.ndarray:
        """
        Predict presence probabilities.

        Args:
            X: DataFrame containing the predictor columns, or an array with
               columns in `self.predictors` order

        Returns:
            Array of probabilities for the presence class
        """
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")
        if isinstance(X, pd.DataFrame):
            X = X[self.predictors].to_numpy(dtype=np.float64)
        return self.model.predict_proba(X)[:, 1]

    def save(self, path: str | Path) -> None:
        """Save the trained model to disk."""
        if not self.is_trained:
            raise RuntimeError("Model has not been trained yet")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        save_data = {
            "model": self.model,
            "predictors": self.predictors,
            "config": asdict(self.config),
            "train_stats": self.train_stats,
        }
        joblib.dump(save_data, path)
        logger.info(f"Saved model to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "DistributionModel":
        """Load a trained model from disk."""
        path = Path(path)
        if not path.exists():
            raise IOError(f"Model file not found: {path}")
        try:
            data = joblib.load(path)
        except Exception as e:
            raise IOError(f"Could not read model {path}: {e}") from e

        missing = [k for k in SAVED_KEYS if not isinstance(data, dict) or k not in data]
        if missing:
            raise IOError(f"Model file {path} is missing {missing}")

        model = cls(config=BoostingConfig(**data["config"]))
        model.model = data["model"]
        model.predictors = list(data["predictors"])
        model.train_stats = data["train_stats"]
        model.is_trained = True

        return model
