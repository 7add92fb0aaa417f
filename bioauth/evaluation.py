"""
Evaluation Module

Runs a trained classifier over a labeled directory and aggregates the
outcomes. Two modes share the same enumeration (label = parent folder):

  - Identification: predicted label == folder label counts as correct;
    reports accuracy = correct / (correct + incorrect).
  - Authentication: binary framing where the folder "other" is the negative
    class and every other folder is a positive (subject) class. Outcomes
    are accumulated as true/false positives/negatives and turned into
    precision, recall and F1 once the pass is complete.

Metrics whose denominator is zero (an empty dataset, no positive
predictions, ...) are reported as None and a warning is logged, instead of
a NaN or a misleading 0.

Usage:
    from bioauth.evaluation import ModelEvaluator

    evaluator = ModelEvaluator(classifier)
    result = evaluator.evaluate_authentication("data/auth_subject3_test")
    print(result.counts, result.f1_score)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
from sklearn.metrics import ConfusionMatrixDisplay

from bioauth.classifier.interfaces import ImageClassifier, ProgressCallback
from bioauth.image_store import LabeledImage, load_labeled_images, read_image_bytes

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

NEGATIVE_LABEL = "other"


class Outcome(str, Enum):
    """Authentication outcome of a single prediction."""

    TRUE_POSITIVE = "true_positive"
    TRUE_NEGATIVE = "true_negative"
    FALSE_POSITIVE = "false_positive"
    FALSE_NEGATIVE = "false_negative"


def classify_outcome(actual: str, predicted: str, negative_label: str = NEGATIVE_LABEL) -> Outcome:
    """
    Map an (actual, predicted) label pair to an authentication outcome.

    The checks run in this order:
        1. correct, actual is a subject    -> true positive
        2. correct, actual is negative     -> true negative
        3. wrong, actual is a subject      -> false negative
        4. anything else (wrong, actual negative) -> false positive

    A subject image predicted as a *different* subject is therefore a false
    negative, the same as one predicted as negative.
    """
    if predicted == actual and actual != negative_label:
        return Outcome.TRUE_POSITIVE
    elif predicted == actual and actual == negative_label:
        return Outcome.TRUE_NEGATIVE
    elif predicted != actual and actual != negative_label:
        return Outcome.FALSE_NEGATIVE
    else:
        return Outcome.FALSE_POSITIVE


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    """numerator / denominator, or None when the denominator is zero."""
    if denominator == 0:
        return None
    return numerator / denominator


# ============================================================
# Result containers
# ============================================================

@dataclass
class ConfusionCounts:
    """Binary confusion counters, accumulated one prediction at a time."""

    true_positive: int = 0
    true_negative: int = 0
    false_positive: int = 0
    false_negative: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.TRUE_POSITIVE:
            self.true_positive += 1
        elif outcome is Outcome.TRUE_NEGATIVE:
            self.true_negative += 1
        elif outcome is Outcome.FALSE_POSITIVE:
            self.false_positive += 1
        else:
            self.false_negative += 1

    @property
    def total(self) -> int:
        return self.true_positive + self.true_negative + self.false_positive + self.false_negative

    @property
    def precision(self) -> Optional[float]:
        """tp / (tp + fp); None without positive predictions."""
        return safe_ratio(self.true_positive, self.true_positive + self.false_positive)

    @property
    def recall(self) -> Optional[float]:
        """tp / (tp + fn); None without positive samples."""
        return safe_ratio(self.true_positive, self.true_positive + self.false_negative)

    @property
    def f1_score(self) -> Optional[float]:
        """Harmonic mean of precision and recall; None if either is undefined or both are 0."""
        precision, recall = self.precision, self.recall
        if precision is None or recall is None:
            return None
        return safe_ratio(2 * precision * recall, precision + recall)

    def as_matrix(self) -> np.ndarray:
        """2x2 matrix in scikit-learn layout: rows = actual (neg, pos), cols = predicted."""
        return np.array([
            [self.true_negative, self.false_positive],
            [self.false_negative, self.true_positive],
        ])

    def __str__(self) -> str:
        return (
            f"True Positive: {self.true_positive}, False Negative: {self.false_negative}, "
            f"True Negative: {self.true_negative}, False Positive: {self.false_positive}"
        )


@dataclass
class IdentificationResult:
    """Outcome of an identification (multiclass) evaluation pass."""

    correct: int = 0
    incorrect: int = 0

    @property
    def total(self) -> int:
        return self.correct + self.incorrect

    @property
    def accuracy(self) -> Optional[float]:
        """correct / total; None for an empty dataset."""
        return safe_ratio(self.correct, self.total)


@dataclass
class AuthenticationResult:
    """Outcome of an authentication (binary) evaluation pass."""

    counts: ConfusionCounts

    @property
    def total(self) -> int:
        return self.counts.total

    @property
    def precision(self) -> Optional[float]:
        return self.counts.precision

    @property
    def recall(self) -> Optional[float]:
        return self.counts.recall

    @property
    def f1_score(self) -> Optional[float]:
        return self.counts.f1_score


def format_metric(value: Optional[float]) -> str:
    return "undefined" if value is None else f"{value:.4f}"


# ============================================================
# Evaluator
# ============================================================

class ModelEvaluator:
    """
    Evaluation engine for a trained image classifier.

    Each pass enumerates the dataset, predicts every image in order and
    only keeps running counters. A failing prediction (corrupt image,
    model error) aborts the pass and its counts are lost.
    """

    def __init__(
        self,
        classifier: ImageClassifier,
        negative_label: str = NEGATIVE_LABEL,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            classifier: Fitted classifier to evaluate.
            negative_label: Folder name of the negative class in
                            authentication mode.
            progress: Receives one status line per image (default: logger.debug).
        """
        self.classifier = classifier
        self.negative_label = negative_label
        self.progress = progress if progress is not None else logger.debug

    def _predict(self, image: LabeledImage) -> str:
        return self.classifier.predict(read_image_bytes(image.path))

    def evaluate_identification(self, dataset_root: PathLike) -> IdentificationResult:
        """
        Multiclass evaluation: count exact label matches.

        Raises:
            FileNotFoundError: If dataset_root doesn't exist.
        """
        images: List[LabeledImage] = list(load_labeled_images(dataset_root))
        n_images = len(images)
        result = IdentificationResult()

        for i, image in enumerate(images, 1):
            if self._predict(image) == image.label:
                result.correct += 1
            else:
                result.incorrect += 1
            self.progress(
                f"Image {i} of {n_images}: Correct {result.correct}, Incorrect {result.incorrect}"
            )

        logger.info(f"Correct {result.correct}, Incorrect {result.incorrect}")
        if result.accuracy is None:
            logger.warning(f"Accuracy is undefined: no images found under {dataset_root}")
        else:
            logger.info(f"Accuracy Score: {result.accuracy:.4f}")
        return result

    def evaluate_authentication(
        self,
        dataset_root: PathLike,
        plot_path: Optional[PathLike] = None,
    ) -> AuthenticationResult:
        """
        Binary evaluation: accumulate tp / tn / fp / fn, then derive metrics.

        Args:
            dataset_root: Directory with subject<N>/ and other/ folders.
            plot_path: If given, save a confusion-matrix plot there.

        Raises:
            FileNotFoundError: If dataset_root doesn't exist.
        """
        images: List[LabeledImage] = list(load_labeled_images(dataset_root))
        n_images = len(images)
        counts = ConfusionCounts()

        for i, image in enumerate(images, 1):
            outcome = classify_outcome(image.label, self._predict(image), self.negative_label)
            counts.record(outcome)
            self.progress(f"Total: {n_images}, Index {i}, {counts}")

        result = AuthenticationResult(counts=counts)
        logger.info(f"Total: {n_images}, {counts}")

        for name in ("precision", "recall", "f1_score"):
            if getattr(result, name) is None:
                logger.warning(f"{name} is undefined for these counts ({counts})")
        logger.info(
            f"Precision: {format_metric(result.precision)}, "
            f"Recall: {format_metric(result.recall)}, "
            f"F1 Score: {format_metric(result.f1_score)}"
        )

        if plot_path is not None:
            save_confusion_matrix_plot(counts, plot_path, negative_label=self.negative_label)
        return result


def evaluate_identification(
    classifier: ImageClassifier,
    dataset_root: PathLike,
    progress: Optional[ProgressCallback] = None,
) -> IdentificationResult:
    """Shortcut for ModelEvaluator(classifier).evaluate_identification(dataset_root)."""
    return ModelEvaluator(classifier, progress=progress).evaluate_identification(dataset_root)


def evaluate_authentication(
    classifier: ImageClassifier,
    dataset_root: PathLike,
    negative_label: str = NEGATIVE_LABEL,
    progress: Optional[ProgressCallback] = None,
    plot_path: Optional[PathLike] = None,
) -> AuthenticationResult:
    """Shortcut for ModelEvaluator(...).evaluate_authentication(dataset_root)."""
    evaluator = ModelEvaluator(classifier, negative_label=negative_label, progress=progress)
    return evaluator.evaluate_authentication(dataset_root, plot_path=plot_path)


# ============================================================
# Visualization
# ============================================================

def save_confusion_matrix_plot(
    counts: ConfusionCounts,
    save_path: PathLike,
    negative_label: str = NEGATIVE_LABEL,
    positive_label: str = "subject",
) -> Path:
    """Save the 2x2 authentication confusion matrix as an image."""
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)

    disp = ConfusionMatrixDisplay(
        confusion_matrix=counts.as_matrix(),
        display_labels=[negative_label, positive_label],
    )
    fig, ax = plt.subplots(figsize=(6, 5))
    disp.plot(ax=ax)
    ax.set_title(f"Authentication Confusion Matrix (F1 = {format_metric(counts.f1_score)})")
    fig.tight_layout()
    fig.savefig(save_path, dpi=150)
    plt.close(fig)

    logger.info(f"Saved confusion matrix plot to {save_path}")
    return save_path
