"""
Training Orchestrator Module

Turns a labeled image tree into a saved model artifact:

  1. Enumerate images (label = parent folder name)
  2. Shuffle and split into train / validation / test
  3. Fit the classifier (TransferLearningClassifier unless one is injected)
  4. Save the artifact as <save_location>model<model_name><timestamp>

Split fractions are passed explicitly as a SplitFractions triple.
SplitFractions.from_test_fraction reproduces the historical behaviour of
carving the validation set out of the test split, where a test fraction t
leaves train = 1-t, validation = t*t and test = t*(1-t).

Usage:
    from bioauth.training import SplitFractions, train_model
    from bioauth.classifier import Hyperparameters

    path = train_model(
        "data/auth_subject3",
        SplitFractions.from_test_fraction(0.2),
        Hyperparameters(learning_rate=0.01, batch_size=10, epochs=30),
        save_location="models/",
    )
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from bioauth.classifier.interfaces import Hyperparameters, ImageClassifier, ProgressCallback
from bioauth.image_store import LabeledImage, load_labeled_images

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FRACTION_TOLERANCE = 1e-6


@dataclass(frozen=True)
class SplitFractions:
    """
    Share of the dataset assigned to each split. Must sum to 1.0.

    Raises:
        ValueError: On negative parts, an empty train share, or a sum != 1.
    """

    train: float
    validation: float
    test: float

    def __post_init__(self):
        for name in ("train", "validation", "test"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} fraction must be >= 0, got {getattr(self, name)}")
        if self.train <= 0:
            raise ValueError("train fraction must be > 0")
        total = self.train + self.validation + self.test
        if abs(total - 1.0) > FRACTION_TOLERANCE:
            raise ValueError(f"Split fractions must sum to 1.0, got {total:.6f}")

    @classmethod
    def from_test_fraction(cls, test_fraction: float) -> "SplitFractions":
        """
        Fractions produced by splitting off test_fraction, then splitting that
        held-out part again (at the same fraction) to obtain a validation set.

        A second split at 0.1 that keeps its larger part for validation
        gives validation ~ 0.9 * t and test ~ 0.1 * t instead; pass
        SplitFractions(1 - t, 0.9 * t, 0.1 * t) for that ratio.

        Example:
            SplitFractions.from_test_fraction(0.2)
            # SplitFractions(train=0.8, validation=0.04, test=0.16)
        """
        if not 0.0 <= test_fraction < 1.0:
            raise ValueError(f"test_fraction must be in [0, 1), got {test_fraction}")
        held_out = test_fraction
        validation = held_out * held_out
        return cls(train=1.0 - held_out, validation=validation, test=held_out - validation)


@dataclass
class DatasetSplit:
    """Images assigned to each split."""

    train: List[LabeledImage] = field(default_factory=list)
    validation: List[LabeledImage] = field(default_factory=list)
    test: List[LabeledImage] = field(default_factory=list)


def split_images(
    images: Sequence[LabeledImage],
    fractions: SplitFractions,
    seed: Optional[int] = None,
) -> DatasetSplit:
    """
    Shuffle images and slice them into train / validation / test.

    Split sizes are rounded down for train and validation; the test split
    takes whatever remains, so no image is lost.
    """
    shuffled = list(images)
    random.Random(seed).shuffle(shuffled)

    n_total = len(shuffled)
    n_train = int(n_total * fractions.train + FRACTION_TOLERANCE)
    n_validation = int(n_total * fractions.validation + FRACTION_TOLERANCE)

    return DatasetSplit(
        train=shuffled[:n_train],
        validation=shuffled[n_train:n_train + n_validation],
        test=shuffled[n_train + n_validation:],
    )


def build_artifact_path(
    save_location: PathLike,
    model_name: str = "",
    created_at: Optional[datetime] = None,
) -> Path:
    """
    Path of a model artifact: save_location + "model" + model_name + UTC timestamp.

    save_location is used as a plain string prefix, so "models/" puts the
    file inside models/ while "models/auth_" yields "models/auth_model...".
    """
    if created_at is None:
        created_at = datetime.now(timezone.utc)
    timestamp = created_at.strftime("%Y%m%d%H%M%S%f")
    return Path(f"{save_location}model{model_name}{timestamp}")


def train_model(
    image_root: PathLike,
    fractions: SplitFractions,
    hyperparameters: Hyperparameters,
    save_location: PathLike,
    classifier: Optional[ImageClassifier] = None,
    model_name: str = "",
    device_config: Optional["DeviceConfig"] = None,
    progress: Optional[ProgressCallback] = None,
    seed: Optional[int] = None,
) -> Path:
    """
    Train a classifier on the images under image_root and save it.

    Args:
        image_root: Dataset root; each image's label is its parent folder.
        fractions: Train / validation / test shares.
        hyperparameters: Passed through to the classifier.
        save_location: Prefix of the artifact path (see build_artifact_path).
        classifier: Classifier to fit. Defaults to a TransferLearningClassifier
                    on device_config.
        model_name: Inserted into the artifact file name.
        device_config: DeviceConfig (from bioauth.classifier.transfer_learning)
                       for the default classifier.
        progress: Receives status lines during training (default: logger.info).
        seed: Shuffle seed. Defaults to hyperparameters.seed.

    Returns:
        Path of the saved model artifact.

    Raises:
        FileNotFoundError: If image_root doesn't exist.
        ValueError: If there are no images or the train split is empty.
    """
    if progress is None:
        progress = logger.info
    if seed is None:
        seed = hyperparameters.seed

    images = list(load_labeled_images(image_root))
    if not images:
        raise ValueError(f"No images found under {image_root}")

    split = split_images(images, fractions, seed=seed)
    if not split.train:
        raise ValueError(
            f"Train split is empty ({len(images)} images, train fraction {fractions.train})"
        )

    labels = sorted({image.label for image in images})
    logger.info(
        f"Loaded {len(images)} images in {len(labels)} classes from {image_root}: "
        f"{len(split.train)} train / {len(split.validation)} validation / {len(split.test)} test"
    )

    if classifier is None:
        # Lazy import: pulls in torch
        from bioauth.classifier.transfer_learning import TransferLearningClassifier
        classifier = TransferLearningClassifier(device_config)

    progress("Training....")
    classifier.fit(split.train, split.validation, hyperparameters, progress)

    artifact_path = build_artifact_path(save_location, model_name)
    classifier.save(artifact_path)
    logger.info(f"Model artifact written to {artifact_path}")
    return artifact_path
