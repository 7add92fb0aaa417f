"""
Classifier Module

The image classifier the trainer and evaluator delegate to.

Components:
    - interfaces: ImageClassifier interface, Hyperparameters, StubClassifier
    - transfer_learning: torchvision implementation (imports torch, so it is
      not loaded by this package; import it explicitly)

Usage:
    from bioauth.classifier import Hyperparameters, StubClassifier
    from bioauth.classifier.transfer_learning import TransferLearningClassifier
"""

from bioauth.classifier.interfaces import (
    SUPPORTED_ARCHITECTURES,
    Hyperparameters,
    ImageClassifier,
    ProgressCallback,
    StubClassifier,
)

__all__ = [
    "SUPPORTED_ARCHITECTURES",
    "Hyperparameters",
    "ImageClassifier",
    "ProgressCallback",
    "StubClassifier",
]
