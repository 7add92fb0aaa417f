"""
Dataset Preparation Script

Reorganizes raw biometric captures into the folder layouts used for training.

Commands:
  format      Group "<subject>_*.ext" files into subject<subject>/ folders
              and re-encode them to PNG
  copy        Copy / merge a dataset tree into another directory
  auth        Build a subject<N>/ vs other/ authentication dataset
  augment     Add rotated variants (45..315 degrees) of every image
  oversample  Duplicate every file in a folder N times

Usage:
  python scripts/prepare_dataset.py format --root data/raw
  python scripts/prepare_dataset.py copy --source data/raw --dest data/merged
  python scripts/prepare_dataset.py auth --source data/merged --dest data/auth3 --subject 3
  python scripts/prepare_dataset.py augment --root data/auth3
  python scripts/prepare_dataset.py oversample --folder data/auth3/subject3 --copies 5

Defaults are read from the "dataset" section of config.yaml.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from bioauth.config import get_dataset_config
from bioauth.dataset_organizer import (
    MalformedNamePolicy,
    augment_dataset,
    copy_dataset,
    create_auth_dataset,
    format_dataset,
    oversample_dataset,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser(dataset_config: dict) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Organize and augment biometric image datasets.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    fmt = subparsers.add_parser("format", help="Group raw files into subject folders.")
    fmt.add_argument("--root", type=str, required=True, help="Folder holding the raw files.")
    fmt.add_argument(
        "--policy", type=str,
        choices=[p.value for p in MalformedNamePolicy],
        default=dataset_config.get("malformed_name_policy", "warn"),
        help="Handling of files without a '<subject>_' prefix.",
    )
    fmt.add_argument(
        "--image-format", type=str,
        default=dataset_config.get("image_format", ".png"),
        help="Canonical output format (default: .png).",
    )

    cp = subparsers.add_parser("copy", help="Copy a dataset tree.")
    cp.add_argument("--source", type=str, required=True)
    cp.add_argument("--dest", type=str, required=True)
    cp.add_argument(
        "--skip-empty-dirs", action="store_true",
        default=not dataset_config.get("include_empty_dirs", True),
        help="Do not recreate source directories that contain no files.",
    )

    auth = subparsers.add_parser("auth", help="Build a subject vs other dataset.")
    auth.add_argument("--source", type=str, required=True)
    auth.add_argument("--dest", type=str, required=True)
    auth.add_argument("--subject", type=str, required=True, help="Subject id (filename prefix).")

    aug = subparsers.add_parser("augment", help="Write rotated variants of every image.")
    aug.add_argument("--root", type=str, required=True)
    aug.add_argument(
        "--angles", type=int, nargs="+",
        default=dataset_config.get("rotation_angles", [45, 90, 135, 180, 225, 270, 315]),
        help="Rotation angles in degrees.",
    )

    over = subparsers.add_parser("oversample", help="Duplicate every file in a folder.")
    over.add_argument("--folder", type=str, required=True)
    over.add_argument(
        "--copies", type=int,
        default=dataset_config.get("oversample_copies", 3),
        help="Copies per file.",
    )

    return parser


def main():
    parser = build_parser(get_dataset_config())
    args = parser.parse_args()

    try:
        if args.command == "format":
            written = format_dataset(args.root, policy=args.policy, image_format=args.image_format)
            print(f"Formatted {len(written)} files under {args.root}")
        elif args.command == "copy":
            n_copied = copy_dataset(args.source, args.dest, include_empty_dirs=not args.skip_empty_dirs)
            print(f"Copied {n_copied} files to {args.dest}")
        elif args.command == "auth":
            counts = create_auth_dataset(args.source, args.dest, args.subject)
            for folder, count in counts.items():
                print(f"{folder:<20} {count:>8}")
        elif args.command == "augment":
            written = augment_dataset(args.root, angles=args.angles)
            print(f"Wrote {len(written)} rotated images under {args.root}")
        elif args.command == "oversample":
            written = oversample_dataset(args.folder, args.copies)
            print(f"Wrote {len(written)} copies in {args.folder}")
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
