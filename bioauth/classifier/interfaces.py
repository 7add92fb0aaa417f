"""
Classifier Interfaces Module

The trainer and the evaluation engine never talk to PyTorch directly. They
go through the narrow ImageClassifier interface defined here:

    fit(train, validation, hyperparameters, progress)   train on labeled images
    predict(image_bytes) -> label                       classify one image
    save(path)                                          write the model artifact

TransferLearningClassifier (classifier/transfer_learning.py) is the real
implementation. StubClassifier is a deterministic stand-in so dataset and
evaluation logic can be tested without a CNN.

Usage:
    from bioauth.classifier.interfaces import Hyperparameters, StubClassifier

    classifier = StubClassifier(default_label="other")
    classifier.fit(train_images, validation_images, Hyperparameters())
    label = classifier.predict(image_bytes)
"""

import json
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from bioauth.image_store import LabeledImage

ProgressCallback = Callable[[str], None]

SUPPORTED_ARCHITECTURES = ("resnet18", "resnet50", "resnet101", "mobilenet_v2")

# Backbones downsample by 32; at 64 the last feature map is 2x2
MIN_IMAGE_SIZE = 64


@dataclass
class Hyperparameters:
    """
    Training settings handed to ImageClassifier.fit.

    Attributes:
        learning_rate: Optimizer step size.
        batch_size: Images per optimization step.
        epochs: Fixed number of epochs. None enables early stopping
                (see early_stopping_* and max_epochs).
        architecture: Backbone name, one of SUPPORTED_ARCHITECTURES.
        image_size: Side length images are resized to. At least MIN_IMAGE_SIZE,
                    so the last feature map is larger than 1x1.
        pretrained: Start from ImageNet weights.
        freeze_backbone: Only train the classification head.
        early_stopping_patience: Epochs without improvement before stopping.
        early_stopping_min_delta: Minimum validation accuracy gain that
                                  counts as an improvement.
        max_epochs: Upper bound on epochs when early stopping is active.
        seed: Seed for shuffling and weight initialization (None = random).
    """

    learning_rate: float = 0.01
    batch_size: int = 10
    epochs: Optional[int] = None
    architecture: str = "resnet50"
    image_size: int = 224
    pretrained: bool = True
    freeze_backbone: bool = True
    early_stopping_patience: int = 20
    early_stopping_min_delta: float = 0.01
    max_epochs: int = 200
    seed: Optional[int] = None

    def __post_init__(self):
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.epochs is not None and self.epochs < 1:
            raise ValueError(f"epochs must be >= 1 or None, got {self.epochs}")
        if self.architecture not in SUPPORTED_ARCHITECTURES:
            raise ValueError(
                f"Unknown architecture '{self.architecture}'. "
                f"Supported: {', '.join(SUPPORTED_ARCHITECTURES)}"
            )
        if self.image_size < MIN_IMAGE_SIZE:
            raise ValueError(f"image_size must be >= {MIN_IMAGE_SIZE}, got {self.image_size}")
        if self.max_epochs < 1:
            raise ValueError(f"max_epochs must be >= 1, got {self.max_epochs}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Hyperparameters":
        """Build from the "training" section of config.yaml."""
        early_stopping = config.get("early_stopping") or {}
        return cls(
            learning_rate=float(config.get("learning_rate", 0.01)),
            batch_size=int(config.get("batch_size", 10)),
            epochs=config.get("epochs"),
            architecture=config.get("architecture", "resnet50"),
            image_size=int(config.get("image_size", 224)),
            pretrained=bool(config.get("pretrained", True)),
            freeze_backbone=bool(config.get("freeze_backbone", True)),
            early_stopping_patience=int(early_stopping.get("patience", 20)),
            early_stopping_min_delta=float(early_stopping.get("min_delta", 0.01)),
            max_epochs=int(early_stopping.get("max_epochs", 200)),
            seed=config.get("seed"),
        )


class ImageClassifier(ABC):
    """
    Abstract base class for image classifiers.

    Labels are plain strings (the folder names of the dataset). A classifier
    learns its label set in fit() and exposes it through `classes`.
    """

    classes: List[str]

    @abstractmethod
    def fit(
        self,
        train: Sequence[LabeledImage],
        validation: Sequence[LabeledImage],
        hyperparameters: Hyperparameters,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Train on labeled images.

        Args:
            train: Images to learn from.
            validation: Held-out images used for early stopping and metrics.
                        May be empty.
            hyperparameters: Training settings.
            progress: Called with human-readable status lines during training.
        """
        pass

    @abstractmethod
    def predict(self, image_bytes: bytes) -> str:
        """
        Classify a single encoded image.

        Args:
            image_bytes: Raw file contents (PNG, JPEG, ...).

        Returns:
            The predicted label.
        """
        pass

    @abstractmethod
    def save(self, path: Union[str, Path]) -> Path:
        """Write the fitted model to path and return the path."""
        pass


# ============================================================
# Stub Implementation (deterministic, no ML dependencies)
# ============================================================


class StubClassifier(ImageClassifier):
    """
    Deterministic classifier for tests and dry runs.

    Predictions are looked up by exact image bytes; unknown images get
    default_label, or the most frequent training label if no default was
    given. Every fit() call is recorded in fit_calls.
    """

    def __init__(
        self,
        predictions: Optional[Dict[bytes, str]] = None,
        default_label: Optional[str] = None,
    ):
        self.predictions = dict(predictions or {})
        self.default_label = default_label
        self.classes: List[str] = sorted(set(self.predictions.values()))
        self.fit_calls: List[Dict[str, Any]] = []

    def fit(self, train, validation, hyperparameters, progress=None):
        labels = Counter(image.label for image in train)
        self.classes = sorted(set(labels) | set(self.classes))
        if self.default_label is None and labels:
            self.default_label = labels.most_common(1)[0][0]

        self.fit_calls.append({
            "n_train": len(train),
            "n_validation": len(validation),
            "hyperparameters": hyperparameters,
        })
        if progress is not None:
            progress(f"Stub fit: {len(train)} train, {len(validation)} validation images")

    def predict(self, image_bytes: bytes) -> str:
        label = self.predictions.get(image_bytes, self.default_label)
        if label is None:
            raise RuntimeError("StubClassifier has no prediction for this image and no default label")
        return label

    def save(self, path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "type": "stub",
            "classes": self.classes,
            "default_label": self.default_label,
            "predictions": {key.hex(): label for key, label in self.predictions.items()},
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StubClassifier":
        """Read a stub written by save()."""
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        stub = cls(
            predictions={bytes.fromhex(key): label for key, label in payload["predictions"].items()},
            default_label=payload["default_label"],
        )
        stub.classes = list(payload["classes"])
        return stub
