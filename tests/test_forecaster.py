"""
Test Suite for Forecast Orchestrator Module
===========================================

Tests for the train/predict lifecycle, training thresholds and outcomes.
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cartcast.cart import Leaf
from cartcast.dataset import TabularDataset
from cartcast.forecaster import ForecastOrchestrator, MIN_TRAINING_EXAMPLES


def regime_dataset(n_rows=30, seed=0):
    """
    a(t+1) = 2·b(t) + small noise, with b switching between 1 and 5 every 3 rows.
    """
    rng = np.random.default_rng(seed)
    b = [1.0 if (t // 3) % 2 == 0 else 5.0 for t in range(n_rows)]
    a = [0.0] * n_rows
    for t in range(n_rows - 1):
        a[t + 1] = 2 * b[t] + rng.uniform(-0.01, 0.01)
    return TabularDataset.from_records(["a", "b"], [[a[t], b[t]] for t in range(n_rows)])


def linear_dataset(n_rows):
    return TabularDataset.from_records(
        ["a", "b"],
        [[float(t), float(t % 4)] for t in range(n_rows)]
    )


@pytest.fixture
def orchestrator():
    return ForecastOrchestrator(lags=(1,), use_cyclic_time=False)


class TestUsageOrder:
    """Tests for operations invoked out of order."""

    def test_train_without_target(self, orchestrator):
        with pytest.raises(RuntimeError, match="choose a target first"):
            orchestrator.train()

    def test_predict_without_model(self, orchestrator):
        orchestrator.select_target(regime_dataset(), "a")
        with pytest.raises(RuntimeError, match="Train a model first"):
            orchestrator.predict_next()

    def test_save_without_model(self, orchestrator, tmp_path):
        with pytest.raises(RuntimeError):
            orchestrator.save_model(str(tmp_path / "model.json"))


class TestTargetSelection:
    """Tests for dataset loading and target switching."""

    def test_load_dataset_picks_first_numeric(self, orchestrator):
        dataset = TabularDataset.from_records(
            ["label", "x", "y"],
            [["p", 1, 2], ["q", 3, 4]]
        )
        assert orchestrator.load_dataset(dataset) == "x"
        assert orchestrator.target == "x"

    def test_load_dataset_without_numeric_columns(self, orchestrator):
        dataset = TabularDataset.from_records(["label"], [["p"], ["q"]])
        assert orchestrator.load_dataset(dataset) is None

    def test_unknown_target_rejected(self, orchestrator):
        dataset = regime_dataset()
        orchestrator.select_target(dataset, "a")
        with pytest.raises(ValueError):
            orchestrator.select_target(dataset, "missing")
        assert orchestrator.target == "a"

    def test_new_target_discards_model(self, orchestrator):
        """Changing the target invalidates the trained model."""
        dataset = regime_dataset()
        orchestrator.select_target(dataset, "a")
        assert orchestrator.train().trained
        assert orchestrator.is_trained

        orchestrator.select_target(dataset, "b")

        assert not orchestrator.is_trained
        with pytest.raises(RuntimeError):
            orchestrator.predict_next()

    def test_training_set_cached_per_selection(self, orchestrator):
        dataset = regime_dataset()
        orchestrator.select_target(dataset, "a")
        first = orchestrator.training_set
        assert orchestrator.training_set is first

        orchestrator.select_target(dataset, "a")
        assert orchestrator.training_set is not first


class TestTrainingThreshold:
    """Tests for the minimum number of training examples."""

    def test_default_threshold(self):
        assert MIN_TRAINING_EXAMPLES == 20

    def test_nineteen_examples_refused(self, orchestrator):
        """21 rows with lag 1 give 19 examples: refused, no model."""
        orchestrator.select_target(linear_dataset(21), "a")
        outcome = orchestrator.train()

        assert not outcome.trained
        assert outcome.n_examples == 19
        assert outcome.model is None
        assert "need >= 20" in outcome.message
        assert not orchestrator.is_trained

    def test_twenty_examples_trained(self, orchestrator):
        """22 rows with lag 1 give 20 examples: trained."""
        orchestrator.select_target(linear_dataset(22), "a")
        outcome = orchestrator.train()

        assert outcome.trained
        assert outcome.n_examples == 20
        assert outcome.message == "Trained CART with 3 features on 20 rows."
        assert orchestrator.model is outcome.model

    def test_refusal_keeps_prior_model(self, orchestrator):
        """A refused training run leaves the existing model in place."""
        orchestrator.select_target(regime_dataset(), "a")
        assert orchestrator.train().trained
        prior = orchestrator.model

        orchestrator.min_training_examples = 1000
        outcome = orchestrator.train()

        assert not outcome.trained
        assert orchestrator.model is prior

    def test_fit_metrics_reported(self, orchestrator):
        orchestrator.select_target(regime_dataset(), "a")
        outcome = orchestrator.train()
        assert set(outcome.metrics) >= {'rmse', 'mae', 'r2'}
        assert outcome.metrics['n_samples'] == outcome.n_examples


class TestPrediction:
    """Tests for next-step forecasts."""

    def test_regime_switching_series(self, orchestrator):
        """The forecast follows the regime of the latest exogenous value."""
        dataset = regime_dataset()
        orchestrator.select_target(dataset, "a")
        outcome = orchestrator.train()
        assert outcome.trained
        assert outcome.model.feature_width == 3

        prediction = orchestrator.predict_next()

        last_b = dataset.column_values("b")[-1]
        assert prediction.available
        assert prediction.value == pytest.approx(2 * last_b, abs=0.05)
        assert prediction.message == "Predicted next 1 step: a(t+1)."
        assert orchestrator.last_prediction is prediction

    def test_constant_target(self, orchestrator):
        """A constant series is forecast as that constant."""
        dataset = TabularDataset.from_records(
            ["a", "b"],
            [[7.0, float(t)] for t in range(30)]
        )
        orchestrator.select_target(dataset, "a")
        outcome = orchestrator.train()

        assert isinstance(outcome.model.root, Leaf)
        assert orchestrator.predict_next().value == 7.0

    def test_incomplete_latest_row(self, orchestrator):
        """A missing value in the latest row yields no forecast, not an error."""
        records = [[float(t), float(t % 4)] for t in range(30)]
        records[-1][1] = None
        orchestrator.select_target(TabularDataset.from_records(["a", "b"], records), "a")
        assert orchestrator.train().trained

        prediction = orchestrator.predict_next()

        assert not prediction.available
        assert prediction.value is None
        assert prediction.message == "Not enough history to build features for t+1. Add more rows."


class TestPersistence:
    """Tests for saving and loading models through the orchestrator."""

    def test_save_and_reload(self, orchestrator, tmp_path):
        dataset = regime_dataset()
        orchestrator.select_target(dataset, "a")
        orchestrator.train()
        path = str(tmp_path / "model.json")
        orchestrator.save_model(path)

        other = ForecastOrchestrator(lags=(1,), use_cyclic_time=False)
        other.select_target(dataset, "a")
        loaded = other.load_model(path)

        assert loaded == orchestrator.model
        assert other.predict_next().value == orchestrator.predict_next().value

    def test_load_rejects_other_layout(self, orchestrator, tmp_path):
        """A model saved for another feature width cannot be loaded."""
        orchestrator.select_target(regime_dataset(), "a")
        orchestrator.train()
        path = str(tmp_path / "model.json")
        orchestrator.save_model(path)

        wider = TabularDataset.from_records(
            ["a", "b", "c"],
            [[float(t), 1.0, 2.0] for t in range(30)]
        )
        other = ForecastOrchestrator(lags=(1,), use_cyclic_time=False)
        other.select_target(wider, "a")

        with pytest.raises(ValueError, match="expects 3 features"):
            other.load_model(path)
        assert not other.is_trained


class TestFromConfig:

    def test_sections_applied(self):
        config = {
            'features': {'lags': [1, 4], 'use_cyclic_time': False},
            'model': {'max_depth': 2, 'min_leaf': 3, 'n_jobs': 2},
            'training': {'min_examples': 5},
        }
        orchestrator = ForecastOrchestrator.from_config(config)

        assert orchestrator.assembler.lags == (1, 4)
        assert orchestrator.assembler.use_cyclic_time is False
        assert orchestrator.max_depth == 2
        assert orchestrator.min_leaf == 3
        assert orchestrator.n_jobs == 2
        assert orchestrator.min_training_examples == 5

    def test_defaults(self):
        orchestrator = ForecastOrchestrator.from_config({})
        assert orchestrator.assembler.lags == (1, 2, 3)
        assert orchestrator.max_depth == 4
        assert orchestrator.min_leaf == 8
        assert orchestrator.min_training_examples == 20


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
