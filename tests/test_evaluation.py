"""
Tests for the Evaluation module

These tests verify that:
1. classify_outcome follows the authentication branch order
2. ConfusionCounts derives precision / recall / F1 (and flags undefined ones)
3. ModelEvaluator accumulates counts over a labeled directory
4. Failures during a pass propagate

Run with: pytest tests/test_evaluation.py -v
"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bioauth.classifier.interfaces import StubClassifier
from bioauth.evaluation import (
    NEGATIVE_LABEL,
    AuthenticationResult,
    ConfusionCounts,
    IdentificationResult,
    ModelEvaluator,
    Outcome,
    classify_outcome,
    evaluate_authentication,
    evaluate_identification,
    save_confusion_matrix_plot,
)


def write_sample(root: Path, label: str, name: str) -> bytes:
    """Write a file whose bytes identify it, return those bytes."""
    content = f"{label}/{name}".encode()
    path = root / label / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return content


# ============================================================
# Outcome classification
# ============================================================

class TestClassifyOutcome:

    @pytest.mark.parametrize("actual, predicted, expected", [
        ("subject3", "subject3", Outcome.TRUE_POSITIVE),
        ("other", "other", Outcome.TRUE_NEGATIVE),
        ("subject3", "other", Outcome.FALSE_NEGATIVE),
        ("other", "subject3", Outcome.FALSE_POSITIVE),
        # A subject mistaken for another subject is still a false negative
        ("subject3", "subject4", Outcome.FALSE_NEGATIVE),
    ])
    def test_branches(self, actual, predicted, expected):
        assert classify_outcome(actual, predicted) is expected

    def test_custom_negative_label(self):
        assert classify_outcome("impostor", "impostor", negative_label="impostor") is Outcome.TRUE_NEGATIVE
        assert classify_outcome("other", "other", negative_label="impostor") is Outcome.TRUE_POSITIVE

    def test_default_negative_label(self):
        assert NEGATIVE_LABEL == "other"


# ============================================================
# ConfusionCounts
# ============================================================

class TestConfusionCounts:

    def test_record(self):
        counts = ConfusionCounts()
        for outcome in [Outcome.TRUE_POSITIVE, Outcome.TRUE_POSITIVE,
                        Outcome.TRUE_NEGATIVE, Outcome.FALSE_POSITIVE,
                        Outcome.FALSE_NEGATIVE]:
            counts.record(outcome)
        assert counts == ConfusionCounts(2, 1, 1, 1)
        assert counts.total == 5

    def test_derived_metrics(self):
        counts = ConfusionCounts(true_positive=8, true_negative=50, false_positive=2, false_negative=1)
        assert counts.precision == pytest.approx(0.8, abs=1e-3)
        assert counts.recall == pytest.approx(0.889, abs=1e-3)
        assert counts.f1_score == pytest.approx(0.842, abs=1e-3)

    def test_true_negatives_do_not_affect_f1(self):
        a = ConfusionCounts(true_positive=8, true_negative=0, false_positive=2, false_negative=1)
        b = ConfusionCounts(true_positive=8, true_negative=999, false_positive=2, false_negative=1)
        assert a.f1_score == b.f1_score

    def test_undefined_precision(self):
        counts = ConfusionCounts(true_negative=5, false_negative=3)
        assert counts.precision is None
        assert counts.recall == 0.0
        assert counts.f1_score is None

    def test_undefined_recall(self):
        counts = ConfusionCounts(true_negative=5, false_positive=2)
        assert counts.recall is None
        assert counts.f1_score is None

    def test_zero_precision_and_recall(self):
        counts = ConfusionCounts(false_positive=1, false_negative=1)
        assert counts.precision == 0.0
        assert counts.recall == 0.0
        assert counts.f1_score is None

    def test_matrix_layout(self):
        counts = ConfusionCounts(true_positive=4, true_negative=3, false_positive=2, false_negative=1)
        assert counts.as_matrix().tolist() == [[3, 2], [1, 4]]


class TestIdentificationResult:

    def test_accuracy(self):
        result = IdentificationResult(correct=3, incorrect=1)
        assert result.total == 4
        assert result.accuracy == 0.75

    def test_empty_is_undefined(self):
        assert IdentificationResult().accuracy is None


# ============================================================
# ModelEvaluator
# ============================================================

@pytest.fixture
def auth_dataset(tmp_path):
    """
    subject3: 4 images (3 recognized, 1 rejected as other)
    other:    3 images (2 rejected, 1 accepted as subject3)
    """
    root = tmp_path / "auth"
    predictions = {}
    for i in range(3):
        predictions[write_sample(root, "subject3", f"3_{i}.png")] = "subject3"
    predictions[write_sample(root, "subject3", "3_9.png")] = "other"
    for i in range(2):
        predictions[write_sample(root, "other", f"5_{i}.png")] = "other"
    predictions[write_sample(root, "other", "6_0.png")] = "subject3"
    return root, StubClassifier(predictions=predictions)


class TestModelEvaluator:

    def test_authentication_counts(self, auth_dataset):
        root, classifier = auth_dataset
        result = ModelEvaluator(classifier).evaluate_authentication(root)

        assert isinstance(result, AuthenticationResult)
        assert result.counts == ConfusionCounts(
            true_positive=3, true_negative=2, false_positive=1, false_negative=1,
        )
        assert result.precision == pytest.approx(0.75)
        assert result.recall == pytest.approx(0.75)
        assert result.f1_score == pytest.approx(0.75)

    def test_counts_cover_every_image(self, auth_dataset):
        root, classifier = auth_dataset
        result = evaluate_authentication(classifier, root)
        n_files = sum(1 for p in root.rglob("*") if p.is_file())
        counts = result.counts
        assert counts.true_positive + counts.true_negative + counts.false_positive + counts.false_negative == n_files

    def test_other_subject_prediction_is_false_negative(self, tmp_path):
        root = tmp_path / "auth"
        content = write_sample(root, "subject3", "3_0.png")
        classifier = StubClassifier(predictions={content: "subject4"})

        result = evaluate_authentication(classifier, root)
        assert result.counts == ConfusionCounts(false_negative=1)

    def test_identification(self, tmp_path):
        root = tmp_path / "ident"
        predictions = {
            write_sample(root, "subject1", "1_0.png"): "subject1",
            write_sample(root, "subject1", "1_1.png"): "subject2",
            write_sample(root, "subject2", "2_0.png"): "subject2",
            write_sample(root, "subject3", "3_0.png"): "subject3",
        }
        result = evaluate_identification(StubClassifier(predictions=predictions), root)
        assert result.correct == 3
        assert result.incorrect == 1
        assert result.accuracy == pytest.approx(0.75)

    def test_identification_empty_dataset(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="bioauth.evaluation"):
            result = evaluate_identification(StubClassifier(default_label="x"), tmp_path)
        assert result.total == 0
        assert result.accuracy is None
        assert "undefined" in caplog.text

    def test_progress_lines(self, auth_dataset):
        root, classifier = auth_dataset
        lines = []
        ModelEvaluator(classifier, progress=lines.append).evaluate_authentication(root)
        assert len(lines) == 7
        assert lines[-1].startswith("Total: 7, Index 7")

    def test_prediction_failure_propagates(self, tmp_path):
        root = tmp_path / "auth"
        write_sample(root, "subject1", "1_0.png")
        with pytest.raises(RuntimeError):
            evaluate_authentication(StubClassifier(), root)

    def test_missing_dataset(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            evaluate_identification(StubClassifier(default_label="x"), tmp_path / "missing")

    def test_plot_written(self, auth_dataset, tmp_path):
        root, classifier = auth_dataset
        plot_path = tmp_path / "plots" / "cm.png"
        ModelEvaluator(classifier).evaluate_authentication(root, plot_path=plot_path)
        assert plot_path.exists()


def test_save_confusion_matrix_plot_with_undefined_f1(tmp_path):
    path = save_confusion_matrix_plot(ConfusionCounts(true_negative=3), tmp_path / "cm.png")
    assert path.exists()
    assert path.stat().st_size > 0
