"""
Transfer Learning Classifier

ImageClassifier implementation backed by a torchvision CNN. An ImageNet
backbone (ResNet or MobileNetV2) gets a new classification head sized to
the dataset's labels; by default only that head is trained.

Training streams one status line per epoch through the progress callback.
With a fixed epoch count the final weights are kept. With epochs=None the
loop runs until validation accuracy stops improving (early stopping) and
the best weights seen are restored.

Usage:
    from bioauth.classifier.transfer_learning import (
        DeviceConfig,
        TransferLearningClassifier,
    )

    classifier = TransferLearningClassifier(DeviceConfig(device="cuda", fallback_to_cpu=True))
    classifier.fit(train_images, validation_images, hyperparameters)
    classifier.save("models/model20240101120000000000")

    classifier = TransferLearningClassifier.load("models/model20240101120000000000")
    label = classifier.predict(image_bytes)

Note:
    - Pretrained weights are downloaded by torchvision on first use
    - Checkpoints store label names, so predict() returns folder names
"""

import copy
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import torch
import torch.nn as nn
from PIL import Image
from torch.utils.data import DataLoader, Dataset
from torchvision import models, transforms

from bioauth.classifier.interfaces import (
    Hyperparameters,
    ImageClassifier,
    ProgressCallback,
)
from bioauth.image_store import LabeledImage, read_image_bytes

logger = logging.getLogger(__name__)

IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]


@dataclass
class DeviceConfig:
    """
    Compute device for training and inference.

    Attributes:
        device: "cuda", "cuda:<index>" or "cpu".
        fallback_to_cpu: If CUDA is requested but unavailable, use the CPU
                         (with a warning) instead of raising.
    """

    device: str = "cuda"
    fallback_to_cpu: bool = False

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DeviceConfig":
        """Build from the "device" section of config.yaml."""
        return cls(
            device=config.get("device", "cuda"),
            fallback_to_cpu=bool(config.get("fallback_to_cpu", False)),
        )

    def resolve(self) -> torch.device:
        """
        Return the torch.device to use.

        Raises:
            RuntimeError: If CUDA is requested, unavailable, and fallback is off.
        """
        if self.device.startswith("cuda") and not torch.cuda.is_available():
            if not self.fallback_to_cpu:
                raise RuntimeError(
                    f"Device '{self.device}' requested but CUDA is not available. "
                    "Set device.fallback_to_cpu to train on the CPU."
                )
            logger.warning("CUDA requested but not available. Falling back to CPU.")
            return torch.device("cpu")
        return torch.device(self.device)


# ============================================================
# Model & Data
# ============================================================

def build_model(
    architecture: str,
    num_classes: int,
    pretrained: bool = True,
    freeze_backbone: bool = True,
) -> nn.Module:
    """
    Create a torchvision backbone with a fresh num_classes-way head.

    Raises:
        ValueError: If the architecture is unknown.
    """
    if architecture == "resnet18":
        model = models.resnet18(weights=models.ResNet18_Weights.DEFAULT if pretrained else None)
    elif architecture == "resnet50":
        model = models.resnet50(weights=models.ResNet50_Weights.DEFAULT if pretrained else None)
    elif architecture == "resnet101":
        model = models.resnet101(weights=models.ResNet101_Weights.DEFAULT if pretrained else None)
    elif architecture == "mobilenet_v2":
        model = models.mobilenet_v2(weights=models.MobileNet_V2_Weights.DEFAULT if pretrained else None)
    else:
        raise ValueError(f"Unknown architecture: {architecture}")

    if freeze_backbone:
        for param in model.parameters():
            param.requires_grad = False

    # New head layers are created with requires_grad=True
    if architecture == "mobilenet_v2":
        model.classifier[1] = nn.Linear(model.classifier[1].in_features, num_classes)
    else:
        model.fc = nn.Linear(model.fc.in_features, num_classes)

    return model


def classification_head(model: nn.Module, architecture: str) -> nn.Module:
    """The layer build_model replaced with the num_classes-way head."""
    if architecture == "mobilenet_v2":
        return model.classifier[1]
    return model.fc


def get_transform(image_size: int) -> transforms.Compose:
    """Resize + ImageNet normalization, shared by training and inference."""
    return transforms.Compose([
        transforms.Resize((image_size, image_size)),
        transforms.ToTensor(),
        transforms.Normalize(IMAGENET_MEAN, IMAGENET_STD),
    ])


def decode_image_bytes(image_bytes: bytes) -> Image.Image:
    """Decode encoded image bytes into an RGB PIL image."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        return image.convert("RGB")


class LabeledImageDataset(Dataset):
    """Torch dataset over LabeledImage records. Corrupt files raise on access."""

    def __init__(
        self,
        images: Sequence[LabeledImage],
        class_to_idx: Dict[str, int],
        transform: transforms.Compose,
    ):
        self.images = list(images)
        self.class_to_idx = class_to_idx
        self.transform = transform

    def __len__(self) -> int:
        return len(self.images)

    def __getitem__(self, idx: int) -> Tuple[torch.Tensor, int]:
        image = self.images[idx]
        tensor = self.transform(decode_image_bytes(read_image_bytes(image.path)))
        return tensor, self.class_to_idx[image.label]


# ============================================================
# Classifier
# ============================================================

class TransferLearningClassifier(ImageClassifier):
    """
    CNN image classifier trained by transfer learning.

    Attributes:
        device: Resolved torch.device.
        classes: Label names, index-aligned with the model's outputs.
        model: The torch module (None until fit() or load()).
        history: Per-epoch metrics from the last fit().
    """

    def __init__(self, device_config: Optional[DeviceConfig] = None):
        self.device_config = device_config or DeviceConfig()
        self.device = self.device_config.resolve()
        self.classes: List[str] = []
        self.model: Optional[nn.Module] = None
        self.architecture: Optional[str] = None
        self.image_size: int = 224
        self.history: List[Dict[str, float]] = []
        self.freeze_backbone = True
        self._transform: Optional[transforms.Compose] = None

    @property
    def is_fitted(self) -> bool:
        return self.model is not None

    def fit(
        self,
        train: Sequence[LabeledImage],
        validation: Sequence[LabeledImage],
        hyperparameters: Hyperparameters,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        if not train:
            raise ValueError("Cannot fit on an empty training set")
        if progress is None:
            progress = logger.info

        hp = hyperparameters
        if hp.seed is not None:
            torch.manual_seed(hp.seed)

        self.classes = sorted({image.label for image in train} | {image.label for image in validation})
        class_to_idx = {label: i for i, label in enumerate(self.classes)}
        self.architecture = hp.architecture
        self.image_size = hp.image_size
        self.freeze_backbone = hp.freeze_backbone
        self._transform = get_transform(hp.image_size)

        self.model = build_model(
            hp.architecture,
            num_classes=len(self.classes),
            pretrained=hp.pretrained,
            freeze_backbone=hp.freeze_backbone,
        ).to(self.device)

        # A trailing batch of one sample gives BatchNorm a single value per channel
        train_loader = DataLoader(
            LabeledImageDataset(train, class_to_idx, self._transform),
            batch_size=hp.batch_size,
            shuffle=True,
            drop_last=len(train) > hp.batch_size and len(train) % hp.batch_size == 1,
        )
        val_loader = None
        if validation:
            val_loader = DataLoader(
                LabeledImageDataset(validation, class_to_idx, self._transform),
                batch_size=hp.batch_size,
                shuffle=False,
            )

        criterion = nn.CrossEntropyLoss()
        trainable = [p for p in self.model.parameters() if p.requires_grad]
        optimizer = torch.optim.Adam(trainable, lr=hp.learning_rate)

        early_stopping = hp.epochs is None
        n_epochs = hp.max_epochs if early_stopping else hp.epochs

        logger.info(
            f"Training {hp.architecture} on {len(train)} images "
            f"({len(self.classes)} classes, device={self.device})"
        )

        self.history = []
        best_acc = 0.0
        best_state = None
        epochs_without_improvement = 0

        for epoch in range(n_epochs):
            train_loss, train_acc = self._train_epoch(train_loader, criterion, optimizer)
            metrics = {"epoch": epoch + 1, "train_loss": train_loss, "train_accuracy": train_acc}

            line = f"Epoch {epoch + 1}: Train Loss: {train_loss:.4f} | Train Acc: {train_acc:.2%}"
            if val_loader is not None:
                val_acc = self._accuracy(val_loader)
                metrics["validation_accuracy"] = val_acc
                line += f" | Val Acc: {val_acc:.2%}"
            self.history.append(metrics)
            progress(line)

            if not early_stopping:
                continue

            monitored = metrics.get("validation_accuracy", train_acc)
            if best_state is None or monitored > best_acc + hp.early_stopping_min_delta:
                best_acc = monitored
                best_state = copy.deepcopy(self.model.state_dict())
                epochs_without_improvement = 0
            else:
                epochs_without_improvement += 1
                if epochs_without_improvement >= hp.early_stopping_patience:
                    progress(f"Early stopping after epoch {epoch + 1} (best accuracy {best_acc:.2%})")
                    break

        if best_state is not None:
            self.model.load_state_dict(best_state)
        self.model.eval()

    def _train_epoch(self, loader, criterion, optimizer) -> Tuple[float, float]:
        if self.freeze_backbone:
            # Frozen BatchNorm layers keep their running statistics
            self.model.eval()
            classification_head(self.model, self.architecture).train()
        else:
            self.model.train()
        running_loss = 0.0
        correct = 0
        total = 0

        for inputs, labels in loader:
            inputs, labels = inputs.to(self.device), labels.to(self.device)

            optimizer.zero_grad()
            outputs = self.model(inputs)
            loss = criterion(outputs, labels)
            loss.backward()
            optimizer.step()

            running_loss += loss.item() * labels.size(0)
            _, predicted = torch.max(outputs.data, 1)
            total += labels.size(0)
            correct += (predicted == labels).sum().item()

        return running_loss / total, correct / total

    def _accuracy(self, loader) -> float:
        self.model.eval()
        correct = 0
        total = 0
        with torch.no_grad():
            for inputs, labels in loader:
                inputs, labels = inputs.to(self.device), labels.to(self.device)
                _, predicted = torch.max(self.model(inputs), 1)
                total += labels.size(0)
                correct += (predicted == labels).sum().item()
        return correct / total if total else 0.0

    def predict(self, image_bytes: bytes) -> str:
        if not self.is_fitted:
            raise RuntimeError("Classifier has no model. Call fit() or load() first.")

        tensor = self._transform(decode_image_bytes(image_bytes)).unsqueeze(0).to(self.device)
        self.model.eval()
        with torch.no_grad():
            index = int(torch.argmax(self.model(tensor), dim=1).item())
        return self.classes[index]

    def save(self, path: Union[str, Path]) -> Path:
        if not self.is_fitted:
            raise RuntimeError("Nothing to save: classifier has not been fitted.")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        torch.save({
            "architecture": self.architecture,
            "classes": self.classes,
            "image_size": self.image_size,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "state_dict": self.model.state_dict(),
        }, path)
        logger.info(f"Saved model to {path}")
        return path

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        device_config: Optional[DeviceConfig] = None,
    ) -> "TransferLearningClassifier":
        """
        Load a checkpoint written by save().

        Raises:
            FileNotFoundError: If path doesn't exist.
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")

        classifier = cls(device_config)
        checkpoint = torch.load(path, map_location=classifier.device)

        classifier.architecture = checkpoint["architecture"]
        classifier.classes = list(checkpoint["classes"])
        classifier.image_size = int(checkpoint["image_size"])
        classifier._transform = get_transform(classifier.image_size)

        model = build_model(
            classifier.architecture,
            num_classes=len(classifier.classes),
            pretrained=False,
            freeze_backbone=False,
        )
        model.load_state_dict(checkpoint["state_dict"])
        classifier.model = model.to(classifier.device)
        classifier.model.eval()

        logger.info(
            f"Loaded {classifier.architecture} model from {path} "
            f"({len(classifier.classes)} classes)"
        )
        return classifier


def load_classifier(
    path: Union[str, Path],
    device_config: Optional[DeviceConfig] = None,
) -> TransferLearningClassifier:
    """Load a saved model artifact for inference."""
    return TransferLearningClassifier.load(path, device_config)
