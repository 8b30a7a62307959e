"""
CART Engine Module
==================

Greedy binary regression tree trained by recursive variance-reduction
splitting, and evaluated by top-down traversal.

The engine only sees fixed-width numeric vectors; it knows nothing about
columns, lags or time.

Features:
    - Depth and leaf-size bounded training with deterministic tie-breaking
    - Quantile-position candidate thresholds (9 per feature and node)
    - Optional thread-pool split search with identical results
    - JSON serialization and persistence of trained models
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 4
DEFAULT_MIN_LEAF = 8
GAIN_EPSILON = 1e-12
N_QUANTILE_BINS = 10


@dataclass(frozen=True)
class Leaf:
    """Terminal node: predicts the mean label of the rows that reached it."""

    value: float
    size: int
    depth: int


@dataclass(frozen=True)
class Split:
    """Internal node: rows with ``x[feature] <= threshold`` go left, the rest right."""

    feature: int
    threshold: float
    left: 'Node'
    right: 'Node'
    size: int
    depth: int


Node = Union[Leaf, Split]

# (feature, threshold, went_left) for each Split on a root-to-leaf path
PathStep = Tuple[int, float, bool]


@dataclass(frozen=True)
class TreeModel:
    """
    A trained tree and the feature width it accepts.

    Attributes:
        root: Root node
        feature_width: Length of the vectors the tree was trained on
        training_info: Hyperparameters and bookkeeping from training
    """

    root: Node
    feature_width: int
    training_info: Dict[str, Any] = field(default_factory=dict, compare=False)

    def predict(self, vector: Sequence[float]) -> float:
        return predict(self, vector)

    def predict_batch(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        return predict_batch(self, vectors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'featureWidth': self.feature_width,
            'root': node_to_dict(self.root)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TreeModel':
        try:
            width = int(data['featureWidth'])
            root = node_from_dict(data['root'])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed model record: {e}") from e
        _check_feature_indices(root, width)
        return cls(root=root, feature_width=width)


def _check_feature_indices(node: 'Node', width: int) -> None:
    """
    Raises:
        ValueError: If any split reads a slot outside [0, width)
    """
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Split):
            if not 0 <= current.feature < width:
                raise ValueError(
                    f"Split feature {current.feature} is outside the model's "
                    f"{width} features"
                )
            stack.extend((current.left, current.right))


@dataclass(frozen=True)
class _Candidate:
    gain: float
    feature: int
    threshold: float


def _variance(y: np.ndarray) -> float:
    """Population variance; 0 for an empty set."""
    if len(y) == 0:
        return 0.0
    return float(np.var(y))


def candidate_thresholds(values: np.ndarray) -> np.ndarray:
    """
    Thresholds at the 10%, 20%, ..., 90% positions of the distinct sorted values.

    Positions that coincide yield one threshold, so fewer than 9 candidates are
    returned for features with few distinct values.

    Args:
        values: One feature's values among a node's rows

    Returns:
        Ascending array of candidate thresholds
    """
    distinct = np.unique(values)
    if len(distinct) == 0:
        return distinct
    positions = sorted({(q * len(distinct)) // N_QUANTILE_BINS for q in range(1, N_QUANTILE_BINS)})
    return distinct[positions]


def _best_split_for_feature(
    feature: int,
    column: np.ndarray,
    y: np.ndarray,
    parent_variance: float,
    min_leaf: int
) -> Optional[_Candidate]:
    n = len(y)
    best = None
    for threshold in candidate_thresholds(column):
        left_mask = column <= threshold
        n_left = int(np.count_nonzero(left_mask))
        n_right = n - n_left
        if n_left < min_leaf or n_right < min_leaf:
            continue
        gain = (
            parent_variance
            - (n_left / n) * _variance(y[left_mask])
            - (n_right / n) * _variance(y[~left_mask])
        )
        # Strictly greater keeps the lowest threshold on ties
        if best is None or gain > best.gain:
            best = _Candidate(gain=gain, feature=feature, threshold=float(threshold))
    return best


class _TreeBuilder:
    """Recursive partitioning over (rows, depth)."""

    def __init__(self, max_depth: int, min_leaf: int, n_jobs: int = 1):
        self.max_depth = max_depth
        self.min_leaf = min_leaf
        self.n_jobs = n_jobs

    def _search(self, X: np.ndarray, y: np.ndarray) -> Optional[_Candidate]:
        parent_variance = _variance(y)
        n_features = X.shape[1]

        if self.n_jobs == 1:
            candidates = [
                _best_split_for_feature(f, X[:, f], y, parent_variance, self.min_leaf)
                for f in range(n_features)
            ]
        else:
            candidates = Parallel(n_jobs=self.n_jobs, prefer="threads")(
                delayed(_best_split_for_feature)(f, X[:, f], y, parent_variance, self.min_leaf)
                for f in range(n_features)
            )

        # Feature order reduction: ties go to the lowest feature index
        best = None
        for candidate in candidates:
            if candidate is not None and (best is None or candidate.gain > best.gain):
                best = candidate
        return best

    def build(self, X: np.ndarray, y: np.ndarray, depth: int = 0) -> Node:
        n = len(y)
        if n <= self.min_leaf or depth >= self.max_depth:
            return Leaf(value=float(np.mean(y)), size=n, depth=depth)

        best = self._search(X, y)
        if best is None or best.gain <= GAIN_EPSILON:
            return Leaf(value=float(np.mean(y)), size=n, depth=depth)

        left_mask = X[:, best.feature] <= best.threshold
        return Split(
            feature=best.feature,
            threshold=best.threshold,
            left=self.build(X[left_mask], y[left_mask], depth + 1),
            right=self.build(X[~left_mask], y[~left_mask], depth + 1),
            size=n,
            depth=depth
        )


def _validate_hyperparameters(max_depth: int, min_leaf: int) -> None:
    if int(max_depth) != max_depth or max_depth < 0:
        raise ValueError(f"max_depth must be a non-negative integer, got {max_depth!r}")
    if int(min_leaf) != min_leaf or min_leaf < 1:
        raise ValueError(f"min_leaf must be a positive integer, got {min_leaf!r}")


def fit_arrays(
    X: np.ndarray,
    y: np.ndarray,
    max_depth: int = DEFAULT_MAX_DEPTH,
    min_leaf: int = DEFAULT_MIN_LEAF,
    n_jobs: int = 1
) -> TreeModel:
    """
    Train a regression tree on a feature matrix and label vector.

    Args:
        X: Feature array of shape (n_samples, n_features)
        y: Labels of shape (n_samples,)
        max_depth: Nodes at this depth become leaves
        min_leaf: Minimum rows on each side of a split; nodes with at most
            this many rows become leaves
        n_jobs: Threads for the per-feature split search (1 = sequential)

    Returns:
        Trained TreeModel

    Raises:
        ValueError: On empty, misshapen or non-finite input or bad hyperparameters
    """
    _validate_hyperparameters(max_depth, min_leaf)

    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)

    if X.ndim != 2:
        raise ValueError(f"X must be 2-dimensional, got shape {X.shape}")
    if y.ndim != 1:
        raise ValueError(f"y must be 1-dimensional, got shape {y.shape}")
    if len(X) == 0:
        raise ValueError("Cannot train on an empty training set")
    if len(X) != len(y):
        raise ValueError(f"X has {len(X)} rows but y has {len(y)} labels")
    if not np.all(np.isfinite(X)) or not np.all(np.isfinite(y)):
        raise ValueError("Training data must contain only finite values")

    start_time = datetime.now()
    logger.info(
        f"Training CART on X={X.shape} (max_depth={max_depth}, min_leaf={min_leaf})"
    )

    root = _TreeBuilder(int(max_depth), int(min_leaf), n_jobs).build(X, y)

    end_time = datetime.now()
    training_info = {
        'training_duration_seconds': (end_time - start_time).total_seconds(),
        'n_samples': int(X.shape[0]),
        'n_features': int(X.shape[1]),
        'trained_at': end_time.isoformat(),
        'hyperparameters': {
            'max_depth': int(max_depth),
            'min_leaf': int(min_leaf)
        }
    }
    model = TreeModel(root=root, feature_width=int(X.shape[1]), training_info=training_info)

    logger.info(
        f"Trained CART with {count_splits(root)} splits and {count_leaves(root)} leaves "
        f"in {training_info['training_duration_seconds']:.3f} seconds"
    )
    return model


def train(
    examples: Any,
    max_depth: int = DEFAULT_MAX_DEPTH,
    min_leaf: int = DEFAULT_MIN_LEAF,
    n_jobs: int = 1
) -> TreeModel:
    """
    Train a regression tree from training examples.

    Args:
        examples: A TrainingSet, or a sequence of objects with ``features``
            and ``label`` attributes
        max_depth: Maximum tree depth (default 4)
        min_leaf: Minimum leaf size (default 8)
        n_jobs: Threads for split search

    Returns:
        Trained TreeModel
    """
    if hasattr(examples, 'X') and hasattr(examples, 'y'):
        return fit_arrays(examples.X, examples.y, max_depth, min_leaf, n_jobs)

    examples = list(examples)
    if not examples:
        raise ValueError("Cannot train on an empty training set")
    X = np.vstack([np.asarray(e.features, dtype=float) for e in examples])
    y = np.array([e.label for e in examples], dtype=float)
    return fit_arrays(X, y, max_depth, min_leaf, n_jobs)


def _evaluate(node: Node, vector: np.ndarray) -> float:
    while True:
        if isinstance(node, Leaf):
            return node.value
        if isinstance(node, Split):
            node = node.left if vector[node.feature] <= node.threshold else node.right
            continue
        raise TypeError(f"Unknown tree node type: {type(node).__name__}")


def predict(model: TreeModel, vector: Sequence[float]) -> float:
    """
    Predict a single value.

    Raises:
        ValueError: If the vector width differs from the model's feature width
    """
    vector = np.asarray(vector, dtype=float)
    if vector.ndim != 1 or vector.shape[0] != model.feature_width:
        raise ValueError(
            f"Expected a vector of {model.feature_width} features, but got shape {vector.shape}"
        )
    return _evaluate(model.root, vector)


def predict_batch(model: TreeModel, vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Predict one value per row of ``vectors``.

    Raises:
        ValueError: If the rows do not have the model's feature width
    """
    X = np.asarray(vectors, dtype=float)
    if X.ndim >= 1 and X.shape[0] == 0:
        return np.empty(0, dtype=float)
    if X.ndim != 2 or X.shape[1] != model.feature_width:
        raise ValueError(
            f"Expected {model.feature_width} features, but got shape {X.shape}"
        )
    return np.array([_evaluate(model.root, row) for row in X], dtype=float)


def count_splits(node: Node) -> int:
    if isinstance(node, Leaf):
        return 0
    return 1 + count_splits(node.left) + count_splits(node.right)


def count_leaves(node: Node) -> int:
    if isinstance(node, Leaf):
        return 1
    return count_leaves(node.left) + count_leaves(node.right)


def tree_depth(node: Node) -> int:
    if isinstance(node, Leaf):
        return node.depth
    return max(tree_depth(node.left), tree_depth(node.right))


def iter_leaves(node: Node, path: Tuple[PathStep, ...] = ()) -> Iterator[Tuple[Leaf, Tuple[PathStep, ...]]]:
    """
    Yield every leaf with the decisions that lead to it, left to right.

    Args:
        node: Subtree root
        path: Decisions already taken above ``node``

    Yields:
        (leaf, path) where path is a tuple of (feature, threshold, went_left)
    """
    if isinstance(node, Leaf):
        yield node, path
        return
    yield from iter_leaves(node.left, path + ((node.feature, node.threshold, True),))
    yield from iter_leaves(node.right, path + ((node.feature, node.threshold, False),))


def node_to_dict(node: Node) -> Dict[str, Any]:
    if isinstance(node, Leaf):
        return {'kind': 'leaf', 'value': node.value, 'size': node.size, 'depth': node.depth}
    return {
        'kind': 'split',
        'feature': node.feature,
        'threshold': node.threshold,
        'left': node_to_dict(node.left),
        'right': node_to_dict(node.right),
        'size': node.size,
        'depth': node.depth
    }


def node_from_dict(data: Dict[str, Any]) -> Node:
    """
    Rebuild a node (and its subtree) from its serialized record.

    Raises:
        ValueError: On an unknown kind or missing fields
    """
    kind = data.get('kind') if isinstance(data, dict) else None
    try:
        if kind == 'leaf':
            return Leaf(value=float(data['value']), size=int(data['size']), depth=int(data['depth']))
        if kind == 'split':
            return Split(
                feature=int(data['feature']),
                threshold=float(data['threshold']),
                left=node_from_dict(data['left']),
                right=node_from_dict(data['right']),
                size=int(data['size']),
                depth=int(data['depth'])
            )
    except KeyError as e:
        raise ValueError(f"Tree node record is missing field {e}") from e
    raise ValueError(f"Unknown tree node kind: {kind!r}")


def save_model(model: TreeModel, filepath: str) -> None:
    """
    Save a trained model as JSON.

    Args:
        model: Model to save
        filepath: Destination path
    """
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(model.to_dict(), f, indent=2)
    logger.info(f"Model saved to {filepath}")


def load_model(filepath: str) -> TreeModel:
    """
    Load a model saved by ``save_model``.

    Args:
        filepath: Path to the saved model

    Returns:
        Loaded TreeModel
    """
    with open(filepath, 'r') as f:
        data = json.load(f)
    model = TreeModel.from_dict(data)
    logger.info(f"Model loaded from {filepath}")
    return model


def describe_tree(model: TreeModel, feature_names: Optional[List[str]] = None) -> str:
    """Render the tree as indented text, one node per line."""
    lines: List[str] = []

    def name(feature: int) -> str:
        if feature_names is not None and feature < len(feature_names):
            return feature_names[feature]
        return f"x[{feature}]"

    def walk(node: Node) -> None:
        indent = "  " * node.depth
        if isinstance(node, Leaf):
            lines.append(f"{indent}leaf: {node.value:.6g} (n={node.size})")
        else:
            lines.append(f"{indent}{name(node.feature)} <= {node.threshold:.6g} (n={node.size})")
            walk(node.left)
            walk(node.right)

    walk(model.root)
    return "\n".join(lines)


def print_model_summary(model: TreeModel, feature_names: Optional[List[str]] = None) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
        feature_names: Slot names used to label splits (optional)
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print("Model Type: CART regression tree")
    print(f"Number of input features: {model.feature_width}")
    print(f"Splits: {count_splits(model.root)}")
    print(f"Leaves: {count_leaves(model.root)}")
    print(f"Depth: {tree_depth(model.root)}")

    hyperparameters = model.training_info.get('hyperparameters')
    if hyperparameters:
        print("\nHyperparameters:")
        print(f"  - max_depth: {hyperparameters['max_depth']}")
        print(f"  - min_leaf: {hyperparameters['min_leaf']}")

    if 'n_samples' in model.training_info:
        print("\nTraining Info:")
        print(f"  - Duration: {model.training_info['training_duration_seconds']:.3f}s")
        print(f"  - Samples: {model.training_info['n_samples']}")

    print("\nTree:")
    print(describe_tree(model, feature_names))
    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    X_demo = np.random.rand(200, 3)
    y_demo = np.where(X_demo[:, 1] > 0.5, 10.0, 0.0) + np.random.randn(200) * 0.1

    demo_model = fit_arrays(X_demo, y_demo)
    print_model_summary(demo_model, ["x0", "x1", "x2"])
    print(f"Prediction at x1=0.9: {demo_model.predict([0.5, 0.9, 0.5]):.4f}")
