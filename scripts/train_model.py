"""
Model Training Script

Trains a transfer-learning CNN on a labeled image tree (one folder per
label) and writes the model artifact.

Usage:
  python scripts/train_model.py --data-dir data/auth3

  python scripts/train_model.py --data-dir data/subjects \\
    --architecture resnet18 --epochs 30 --batch-size 16 \\
    --learning-rate 0.001 --save-location models/ident_

  # Explicit split instead of the test-fraction derived one
  python scripts/train_model.py --data-dir data/auth3 --split 0.7 0.15 0.15

Every option defaults to the "training" / "device" sections of config.yaml.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bioauth.classifier import SUPPORTED_ARCHITECTURES, Hyperparameters
from bioauth.config import get_device_config, get_training_config
from bioauth.training import SplitFractions, train_model

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    training_config = get_training_config()
    device_section = get_device_config()

    parser = argparse.ArgumentParser(
        description="Train an image classification model on a labeled directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--data-dir", type=str, required=True,
        help="Dataset root. Each subdirectory name is a label.",
    )
    parser.add_argument(
        "--test-fraction", type=float, default=training_config.get("test_fraction", 0.2),
        help="Held-out fraction; validation is carved out of it (default from config).",
    )
    parser.add_argument(
        "--split", type=float, nargs=3, metavar=("TRAIN", "VAL", "TEST"), default=None,
        help="Explicit train/validation/test fractions (must sum to 1). Overrides --test-fraction.",
    )
    parser.add_argument("--learning-rate", type=float, default=None)
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument(
        "--epochs", type=int, default=None,
        help="Fixed epoch count. Without it (and with epochs: null in config) early stopping is used.",
    )
    parser.add_argument("--architecture", type=str, choices=SUPPORTED_ARCHITECTURES, default=None)
    parser.add_argument(
        "--save-location", type=str, default=training_config.get("save_location", "models/"),
        help="Prefix of the model artifact path.",
    )
    parser.add_argument("--model-name", type=str, default=training_config.get("model_name", ""))
    parser.add_argument("--device", type=str, default=device_section.get("device", "cuda"))
    parser.add_argument(
        "--fallback-to-cpu", action="store_true",
        default=device_section.get("fallback_to_cpu", False),
        help="Train on the CPU when CUDA is unavailable instead of failing.",
    )
    parser.add_argument("--seed", type=int, default=training_config.get("seed"))

    args = parser.parse_args()

    overrides = {
        "learning_rate": args.learning_rate,
        "batch_size": args.batch_size,
        "epochs": args.epochs,
        "architecture": args.architecture,
        "seed": args.seed,
    }
    merged = dict(training_config)
    merged.update({key: value for key, value in overrides.items() if value is not None})

    # Lazy import: pulls in torch
    from bioauth.classifier.transfer_learning import DeviceConfig

    try:
        hyperparameters = Hyperparameters.from_config(merged)
        if args.split is not None:
            fractions = SplitFractions(*args.split)
        else:
            fractions = SplitFractions.from_test_fraction(args.test_fraction)

        logger.info(f"Dataset:        {args.data_dir}")
        logger.info(
            f"Split:          train={fractions.train:.3f} "
            f"validation={fractions.validation:.3f} test={fractions.test:.3f}"
        )
        logger.info(f"Architecture:   {hyperparameters.architecture}")
        logger.info(
            f"Epochs:         {hyperparameters.epochs if hyperparameters.epochs else 'early stopping'}"
        )

        artifact_path = train_model(
            args.data_dir,
            fractions,
            hyperparameters,
            save_location=args.save_location,
            model_name=args.model_name,
            device_config=DeviceConfig(device=args.device, fallback_to_cpu=args.fallback_to_cpu),
        )
    except (OSError, ValueError, RuntimeError) as e:
        logger.error(f"Training failed: {e}")
        sys.exit(1)

    print(f"\nModel saved to: {artifact_path}")


if __name__ == "__main__":
    main()
