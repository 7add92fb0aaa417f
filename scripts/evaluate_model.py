"""
Model Evaluation Script

Loads a saved model artifact and evaluates it on a labeled directory.

Modes:
  identification  accuracy over all labels
  authentication  subject<N>/ vs other/ confusion counts, precision,
                  recall and F1

Usage:
  python scripts/evaluate_model.py identification \\
    --model models/model20240101120000000000 --data-dir data/subjects_test

  python scripts/evaluate_model.py authentication \\
    --model models/model20240101120000000000 --data-dir data/auth3_test \\
    --plot-dir outputs/
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bioauth.config import get_device_config, get_evaluation_config
from bioauth.evaluation import ModelEvaluator, format_metric

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def print_progress(line: str) -> None:
    """Overwrite the current console line with the latest status."""
    sys.stdout.write("\r" + line)
    sys.stdout.flush()


def main():
    evaluation_config = get_evaluation_config()
    device_section = get_device_config()

    parser = argparse.ArgumentParser(
        description="Evaluate a trained model on a labeled image directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("mode", choices=["identification", "authentication"])
    parser.add_argument("--model", type=str, required=True, help="Path to the model artifact.")
    parser.add_argument("--data-dir", type=str, required=True, help="Labeled evaluation directory.")
    parser.add_argument(
        "--negative-label", type=str,
        default=evaluation_config.get("negative_label", "other"),
        help="Folder name of the negative class (authentication mode).",
    )
    parser.add_argument(
        "--plot-dir", type=str, default=evaluation_config.get("plot_dir"),
        help="Save a confusion-matrix plot here (authentication mode).",
    )
    parser.add_argument("--device", type=str, default=device_section.get("device", "cuda"))
    parser.add_argument(
        "--fallback-to-cpu", action="store_true",
        default=device_section.get("fallback_to_cpu", False),
    )

    args = parser.parse_args()

    # Lazy import: pulls in torch
    from bioauth.classifier.transfer_learning import DeviceConfig, load_classifier

    try:
        classifier = load_classifier(
            args.model,
            DeviceConfig(device=args.device, fallback_to_cpu=args.fallback_to_cpu),
        )
        evaluator = ModelEvaluator(
            classifier,
            negative_label=args.negative_label,
            progress=print_progress,
        )

        if args.mode == "identification":
            result = evaluator.evaluate_identification(args.data_dir)
            print(f"\nCorrect {result.correct}, Incorrect {result.incorrect}")
            print(f"Accuracy Score: {format_metric(result.accuracy)}")
        else:
            plot_path = None
            if args.plot_dir:
                plot_path = Path(args.plot_dir) / f"{Path(args.model).name}_confusion_matrix.png"
            result = evaluator.evaluate_authentication(args.data_dir, plot_path=plot_path)
            print(f"\nTotal: {result.total}, {result.counts}")
            print(f"Precision: {format_metric(result.precision)}")
            print(f"Recall:    {format_metric(result.recall)}")
            print(f"F1 Score:  {format_metric(result.f1_score)}")
    except (OSError, ValueError, RuntimeError) as e:
        print()
        logger.error(f"Evaluation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
