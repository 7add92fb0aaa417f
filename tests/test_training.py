"""
Tests for the Training Orchestrator and training hyperparameters.

Training runs against StubClassifier, so no CNN is involved.

Run with: pytest tests/test_training.py -v
"""

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bioauth.classifier.interfaces import Hyperparameters, StubClassifier
from bioauth.image_store import LabeledImage
from bioauth.training import (
    SplitFractions,
    build_artifact_path,
    split_images,
    train_model,
)


def make_images(n: int):
    return [LabeledImage(path=Path(f"/data/label{i % 2}/img{i}.png"), label=f"label{i % 2}") for i in range(n)]


@pytest.fixture
def image_root(tmp_path):
    """10 files spread over subject1 / other."""
    root = tmp_path / "dataset"
    for label, count in [("subject1", 4), ("other", 6)]:
        (root / label).mkdir(parents=True)
        for i in range(count):
            (root / label / f"{label}_{i}.png").write_bytes(f"{label}{i}".encode())
    return root


# ============================================================
# SplitFractions
# ============================================================

class TestSplitFractions:

    def test_from_test_fraction(self):
        fractions = SplitFractions.from_test_fraction(0.2)
        assert fractions.train == pytest.approx(0.8)
        assert fractions.validation == pytest.approx(0.04)
        assert fractions.test == pytest.approx(0.16)

    def test_from_zero_test_fraction(self):
        fractions = SplitFractions.from_test_fraction(0.0)
        assert (fractions.train, fractions.validation, fractions.test) == (1.0, 0.0, 0.0)

    @pytest.mark.parametrize("test_fraction", [-0.1, 1.0, 1.5])
    def test_invalid_test_fraction(self, test_fraction):
        with pytest.raises(ValueError):
            SplitFractions.from_test_fraction(test_fraction)

    def test_validation_heavy_held_out_split(self):
        t = 0.2
        fractions = SplitFractions(1 - t, 0.9 * t, 0.1 * t)
        split = split_images(make_images(100), fractions, seed=0)
        assert len(split.train) == 80
        assert len(split.validation) == 18
        assert len(split.test) == 2

    def test_explicit_fractions(self):
        fractions = SplitFractions(0.7, 0.15, 0.15)
        assert fractions.train + fractions.validation + fractions.test == pytest.approx(1.0)

    @pytest.mark.parametrize("parts", [
        (0.5, 0.2, 0.2),
        (0.8, 0.2, 0.2),
        (1.2, -0.1, -0.1),
        (0.0, 0.5, 0.5),
    ])
    def test_rejects_invalid(self, parts):
        with pytest.raises(ValueError):
            SplitFractions(*parts)


class TestSplitImages:

    def test_sizes(self):
        split = split_images(make_images(100), SplitFractions.from_test_fraction(0.2), seed=1)
        assert len(split.train) == 80
        assert len(split.validation) == 4
        assert len(split.test) == 16

    def test_disjoint_and_complete(self):
        images = make_images(37)
        split = split_images(images, SplitFractions(0.6, 0.2, 0.2), seed=3)
        combined = split.train + split.validation + split.test
        assert sorted(i.path for i in combined) == sorted(i.path for i in images)
        assert len(set(i.path for i in combined)) == 37

    def test_seeded_shuffle_is_deterministic(self):
        images = make_images(20)
        a = split_images(images, SplitFractions(0.5, 0.25, 0.25), seed=42)
        b = split_images(images, SplitFractions(0.5, 0.25, 0.25), seed=42)
        assert a.train == b.train
        assert a.test == b.test

    def test_does_not_mutate_input(self):
        images = make_images(10)
        original = list(images)
        split_images(images, SplitFractions(0.5, 0.25, 0.25), seed=7)
        assert images == original


# ============================================================
# Artifact naming
# ============================================================

class TestArtifactPath:

    def test_format(self):
        created = datetime(2024, 1, 2, 3, 4, 5, 678)
        path = build_artifact_path("models/", "auth3_", created)
        assert path == Path("models/modelauth3_20240102030405000678")

    def test_prefix_is_plain_concatenation(self):
        created = datetime(2024, 1, 2, 3, 4, 5)
        assert build_artifact_path("out/run1_", "", created).name == "run1_model20240102030405000000"


# ============================================================
# Hyperparameters
# ============================================================

class TestHyperparameters:

    def test_defaults(self):
        hp = Hyperparameters()
        assert hp.epochs is None
        assert hp.architecture == "resnet50"

    @pytest.mark.parametrize("kwargs", [
        {"learning_rate": 0},
        {"batch_size": 0},
        {"epochs": 0},
        {"architecture": "vgg16"},
        {"image_size": 8},
        {"image_size": 32},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Hyperparameters(**kwargs)

    def test_from_config(self):
        hp = Hyperparameters.from_config({
            "learning_rate": 0.001,
            "batch_size": 4,
            "epochs": None,
            "architecture": "mobilenet_v2",
            "image_size": 64,
            "pretrained": False,
            "early_stopping": {"patience": 3, "min_delta": 0.0, "max_epochs": 10},
            "seed": 5,
        })
        assert hp.learning_rate == 0.001
        assert hp.batch_size == 4
        assert hp.architecture == "mobilenet_v2"
        assert hp.pretrained is False
        assert hp.early_stopping_patience == 3
        assert hp.max_epochs == 10
        assert hp.seed == 5


# ============================================================
# train_model
# ============================================================

class TestTrainModel:

    def test_trains_and_saves(self, image_root, tmp_path):
        classifier = StubClassifier()
        save_location = str(tmp_path / "models") + os.sep

        path = train_model(
            image_root,
            SplitFractions.from_test_fraction(0.2),
            Hyperparameters(epochs=1),
            save_location=save_location,
            classifier=classifier,
            model_name="auth1_",
            seed=0,
        )

        assert path.exists()
        assert path.parent == tmp_path / "models"
        assert path.name.startswith("modelauth1_")
        assert classifier.fit_calls[0]["n_train"] == 8
        assert classifier.classes == ["other", "subject1"]

        reloaded = StubClassifier.load(path)
        assert reloaded.classes == ["other", "subject1"]

    def test_progress_channel(self, image_root, tmp_path):
        lines = []
        train_model(
            image_root,
            SplitFractions(0.5, 0.25, 0.25),
            Hyperparameters(),
            save_location=str(tmp_path) + os.sep,
            classifier=StubClassifier(),
            progress=lines.append,
        )
        assert lines[0] == "Training...."
        assert any("Stub fit" in line for line in lines)

    def test_passes_hyperparameters(self, image_root, tmp_path):
        classifier = StubClassifier()
        hp = Hyperparameters(learning_rate=0.5, batch_size=3)
        train_model(image_root, SplitFractions(1.0, 0.0, 0.0), hp, str(tmp_path) + os.sep, classifier=classifier)
        assert classifier.fit_calls[0]["hyperparameters"] is hp
        assert classifier.fit_calls[0]["n_validation"] == 0

    def test_empty_root(self, tmp_path):
        with pytest.raises(ValueError):
            train_model(tmp_path, SplitFractions(1.0, 0.0, 0.0), Hyperparameters(), str(tmp_path), classifier=StubClassifier())

    def test_missing_root(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            train_model(tmp_path / "missing", SplitFractions(1.0, 0.0, 0.0), Hyperparameters(), str(tmp_path), classifier=StubClassifier())

    def test_empty_train_split(self, tmp_path):
        root = tmp_path / "tiny"
        (root / "a").mkdir(parents=True)
        (root / "a" / "only.png").write_bytes(b"x")
        with pytest.raises(ValueError):
            train_model(root, SplitFractions(0.5, 0.0, 0.5), Hyperparameters(), str(tmp_path), classifier=StubClassifier())
