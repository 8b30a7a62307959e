"""
Forecast Orchestrator Module
============================

Owns the train / predict lifecycle for one dataset and one target at a time.

The orchestrator enforces what the tree engine does not: a target must be
selected before training, a model must exist before predicting, a minimum
number of training examples is required, and selecting a new target
discards the old model because the feature layout changes with it.

Insufficient data is reported through outcome objects, not exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from . import cart
from .cart import TreeModel
from .dataset import TabularDataset
from .evaluation import evaluate_fit
from .features import DEFAULT_LAGS, FeatureAssembler, TrainingSet

logger = logging.getLogger(__name__)

MIN_TRAINING_EXAMPLES = 20


@dataclass(frozen=True)
class TrainOutcome:
    trained: bool
    n_examples: int
    message: str
    model: Optional[TreeModel] = None
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PredictionOutcome:
    value: Optional[float]
    target: str
    message: str

    @property
    def available(self) -> bool:
        return self.value is not None


class ForecastOrchestrator:
    """
    Sequences feature assembly, tree training and next-step prediction.

    Attributes:
        dataset: Active dataset, or None
        target: Active target column, or None
        model: Model trained for the active target, or None
    """

    def __init__(
        self,
        lags: Sequence[int] = DEFAULT_LAGS,
        use_cyclic_time: bool = True,
        max_depth: int = cart.DEFAULT_MAX_DEPTH,
        min_leaf: int = cart.DEFAULT_MIN_LEAF,
        min_training_examples: int = MIN_TRAINING_EXAMPLES,
        n_jobs: int = 1
    ):
        """
        Initialize the orchestrator.

        Args:
            lags: Lag offsets for the feature assembler
            use_cyclic_time: Add weekday/month encodings when a timestamp exists
            max_depth: Maximum tree depth
            min_leaf: Minimum leaf size
            min_training_examples: Training is refused below this many examples
            n_jobs: Threads for the tree's split search
        """
        self.assembler = FeatureAssembler(lags=lags, use_cyclic_time=use_cyclic_time)
        self.max_depth = max_depth
        self.min_leaf = min_leaf
        self.min_training_examples = min_training_examples
        self.n_jobs = n_jobs

        self.dataset: Optional[TabularDataset] = None
        self.target: Optional[str] = None
        self.model: Optional[TreeModel] = None
        self.last_prediction: Optional[PredictionOutcome] = None
        self._training_set: Optional[TrainingSet] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ForecastOrchestrator':
        """
        Build an orchestrator from the ``features``, ``model`` and ``training``
        sections of a configuration dictionary.
        """
        feature_config = config.get('features', {}) or {}
        model_config = config.get('model', {}) or {}
        training_config = config.get('training', {}) or {}

        return cls(
            lags=feature_config.get('lags', DEFAULT_LAGS),
            use_cyclic_time=feature_config.get('use_cyclic_time', True),
            max_depth=model_config.get('max_depth', cart.DEFAULT_MAX_DEPTH),
            min_leaf=model_config.get('min_leaf', cart.DEFAULT_MIN_LEAF),
            min_training_examples=training_config.get('min_examples', MIN_TRAINING_EXAMPLES),
            n_jobs=model_config.get('n_jobs', 1)
        )

    def load_dataset(self, dataset: TabularDataset) -> Optional[str]:
        """
        Make ``dataset`` active and select its first numeric column as target.

        Returns:
            The selected target, or None if the dataset has no numeric column
        """
        self.dataset = dataset
        self.target = dataset.numeric_columns[0] if dataset.numeric_columns else None
        self._reset()
        logger.info(
            f"Loaded dataset with {len(dataset)} rows; default target: {self.target}"
        )
        return self.target

    def select_target(self, dataset: TabularDataset, column: str) -> None:
        """
        Record the active target and invalidate any trained model.

        Raises:
            ValueError: If ``column`` is not a numeric column of ``dataset``
        """
        self.assembler.validate_target(dataset, column)
        self.dataset = dataset
        self.target = column
        self._reset()
        logger.info(f"Selected target '{column}'")

    def _reset(self) -> None:
        self.model = None
        self.last_prediction = None
        self._training_set = None

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    @property
    def training_set(self) -> TrainingSet:
        """
        Training set for the active target, assembled once per selection.

        Raises:
            RuntimeError: If no target is selected
        """
        if self.dataset is None or self.target is None:
            raise RuntimeError("Load data and choose a target first.")
        if self._training_set is None:
            self._training_set = self.assembler.assemble(self.dataset, self.target)
        return self._training_set

    def train(self) -> TrainOutcome:
        """
        Train a tree for the active target.

        Returns:
            TrainOutcome; ``trained`` is False when there are too few examples,
            in which case the previous model (if any) is kept

        Raises:
            RuntimeError: If no target is selected
        """
        training_set = self.training_set
        n_examples = len(training_set)

        if n_examples < self.min_training_examples:
            message = (
                f"Not enough rows to train (need >= {self.min_training_examples} "
                f"after cleaning, have {n_examples})."
            )
            logger.warning(message)
            return TrainOutcome(trained=False, n_examples=n_examples, message=message)

        logger.info("=" * 60)
        logger.info(f"TRAINING CART FOR '{self.target}'")
        logger.info("=" * 60)

        model = cart.train(
            training_set,
            max_depth=self.max_depth,
            min_leaf=self.min_leaf,
            n_jobs=self.n_jobs
        )
        metrics = evaluate_fit(model, training_set)

        self.model = model
        self.last_prediction = None

        message = f"Trained CART with {model.feature_width} features on {n_examples} rows."
        logger.info(message)
        return TrainOutcome(
            trained=True,
            n_examples=n_examples,
            message=message,
            model=model,
            metrics=metrics
        )

    def predict_next(self) -> PredictionOutcome:
        """
        Forecast the target one step after the most recent row.

        Returns:
            PredictionOutcome; ``value`` is None when the latest rows lack the
            history needed to build the feature vector

        Raises:
            RuntimeError: If no model has been trained
        """
        if self.model is None or self.target is None:
            raise RuntimeError("Train a model first.")

        next_vector = self.training_set.next_vector
        if next_vector is None:
            message = "Not enough history to build features for t+1. Add more rows."
            logger.warning(message)
            outcome = PredictionOutcome(value=None, target=self.target, message=message)
        else:
            value = cart.predict(self.model, next_vector)
            message = f"Predicted next 1 step: {self.target}(t+1)."
            logger.info(f"{message} Value: {value:.6f}")
            outcome = PredictionOutcome(value=value, target=self.target, message=message)

        self.last_prediction = outcome
        return outcome

    def save_model(self, filepath: str) -> None:
        """
        Persist the current model as JSON.

        Raises:
            RuntimeError: If no model has been trained
        """
        if self.model is None:
            raise RuntimeError("Cannot save untrained model.")
        cart.save_model(self.model, filepath)

    def load_model(self, filepath: str) -> TreeModel:
        """
        Load a saved model for the active target.

        Raises:
            RuntimeError: If no target is selected
            ValueError: If the saved width differs from the current feature layout
        """
        model = cart.load_model(filepath)
        expected = self.training_set.width
        if model.feature_width != expected:
            raise ValueError(
                f"Saved model expects {model.feature_width} features, "
                f"but '{self.target}' uses {expected}"
            )
        self.model = model
        self.last_prediction = None
        return model


def print_prediction_result(outcome: PredictionOutcome) -> None:
    """
    Print a formatted prediction to console.

    Args:
        outcome: Result of ForecastOrchestrator.predict_next
    """
    print("\n" + "=" * 50)
    print(f"PREDICTION - {outcome.target}(t+1)")
    print("=" * 50)
    if outcome.available:
        print(f"  {outcome.target}: {outcome.value:.4f}")
    print(f"  {outcome.message}")
    print("=" * 50 + "\n")
