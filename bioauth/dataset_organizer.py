"""
Dataset Organizer Module

File-system bookkeeping that turns a folder of raw biometric captures into
the directory layouts the trainer consumes.

Raw captures follow the naming convention "<subject>_<anything>.<ext>",
e.g. "12_left_03.bmp" belongs to subject 12. From there this module can:

  1. format_dataset       - group files into subject<prefix>/ folders and
                            re-encode them to one canonical format (PNG)
  2. copy_dataset         - merge/copy whole dataset trees
  3. create_auth_dataset  - build a binary subject<N>/ vs other/ dataset
                            for one-subject authentication models
  4. augment_dataset      - add rotated variants of every image
  5. oversample_dataset   - duplicate files to inflate a class

None of these operations lock anything. Running two of them against the
same tree at the same time can race on file names.

Usage:
    from bioauth.dataset_organizer import format_dataset, create_auth_dataset

    format_dataset("data/raw")
    create_auth_dataset("data/raw", "data/auth_subject3", subject_id=3)
"""

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import cv2
import numpy as np

from bioauth.image_store import iter_files, read_image, write_image

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SUBJECT_FOLDER_PREFIX = "subject"
OTHER_FOLDER_NAME = "other"
PREFIX_SEPARATOR = "_"

# 45 degree steps, excluding 0 and 360
ROTATION_ANGLES: Tuple[int, ...] = tuple(range(45, 360, 45))


class MalformedNamePolicy(str, Enum):
    """How format_dataset treats files without a "<subject>_" prefix."""

    SKIP = "skip"
    WARN = "warn"
    FAIL = "fail"


# ============================================================
# Naming helpers
# ============================================================

def parse_subject_prefix(filename: str) -> Optional[str]:
    """
    Return the subject prefix of a filename (text before the first "_").

    Returns None when the name has no "_" or starts with one.

    Example:
        parse_subject_prefix("12_left_03.bmp")  # "12"
        parse_subject_prefix("_03.bmp")         # None
    """
    index = filename.find(PREFIX_SEPARATOR)
    if index <= 0:
        return None
    return filename[:index]


def subject_folder_name(subject_id: Union[int, str]) -> str:
    """Folder name used for a subject, e.g. subject_folder_name(3) == "subject3"."""
    return f"{SUBJECT_FOLDER_PREFIX}{subject_id}"


# ============================================================
# Formatting
# ============================================================

def format_dataset(
    root: PathLike,
    policy: Union[MalformedNamePolicy, str] = MalformedNamePolicy.WARN,
    image_format: str = ".png",
) -> List[Path]:
    """
    Group the files directly under root into per-subject folders.

    Each file "<prefix>_<rest>" is moved to root/subject<prefix>/ (an
    existing file of the same name there is overwritten) and then
    re-encoded to image_format, so mixed input formats (bmp, jpg, ...)
    converge to one. Subdirectories of root are left alone.

    Args:
        root: Folder holding the raw captures.
        policy: What to do with names lacking a subject prefix.
        image_format: Suffix of the canonical output format.

    Returns:
        Paths of the re-encoded files.

    Raises:
        FileNotFoundError: If root doesn't exist.
        ValueError: On a malformed name with policy FAIL, or on an image
                    that cannot be decoded. Files processed before the
                    failure stay where they were moved.
    """
    root = Path(root)
    policy = MalformedNamePolicy(policy)
    if not image_format.startswith("."):
        image_format = "." + image_format

    written: List[Path] = []
    skipped = 0

    for file_path in iter_files(root, recursive=False):
        prefix = parse_subject_prefix(file_path.name)
        if prefix is None:
            if policy is MalformedNamePolicy.FAIL:
                raise ValueError(
                    f"File name has no subject prefix: {file_path.name} "
                    f"(expected '<subject>{PREFIX_SEPARATOR}...')"
                )
            if policy is MalformedNamePolicy.WARN:
                logger.warning(f"Skipping {file_path.name}: no subject prefix")
            skipped += 1
            continue

        subject_dir = root / subject_folder_name(prefix)
        subject_dir.mkdir(exist_ok=True)

        moved_path = subject_dir / file_path.name
        file_path.replace(moved_path)

        image = read_image(moved_path)
        output_path = moved_path.with_suffix(image_format)
        write_image(output_path, image)
        # "a.PNG" and "a.png" are the same file on case-insensitive filesystems
        if output_path != moved_path and not output_path.samefile(moved_path):
            moved_path.unlink()

        written.append(output_path)

    logger.info(
        f"Formatted {len(written)} files under {root} "
        f"({skipped} skipped without subject prefix)"
    )
    return written


# ============================================================
# Copying
# ============================================================

def copy_dataset(
    source: PathLike,
    dest: PathLike,
    include_empty_dirs: bool = True,
) -> int:
    """
    Copy a dataset tree, preserving its relative structure.

    Existing destination files are overwritten. The tree is walked with an
    explicit stack, so depth is only limited by the filesystem.

    Args:
        source: Root of the tree to copy.
        dest: Destination root (created if missing).
        include_empty_dirs: If False, destination subdirectories are only
                            created when a file is copied into them.

    Returns:
        Number of files copied.

    Raises:
        FileNotFoundError: If source doesn't exist.
        ValueError: If dest lies inside source.
    """
    source = Path(source)
    dest = Path(dest)
    if not source.is_dir():
        raise FileNotFoundError(f"Source directory not found: {source}")

    source_resolved = source.resolve()
    dest_resolved = dest.resolve()
    if dest_resolved == source_resolved or source_resolved in dest_resolved.parents:
        raise ValueError(f"Destination {dest} is inside source {source}")

    dest.mkdir(parents=True, exist_ok=True)

    n_copied = 0
    stack = [(source, dest)]
    while stack:
        src_dir, dst_dir = stack.pop()
        if include_empty_dirs:
            dst_dir.mkdir(parents=True, exist_ok=True)

        for entry in sorted(src_dir.iterdir()):
            if entry.is_dir():
                stack.append((entry, dst_dir / entry.name))
            elif entry.is_file():
                dst_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(entry, dst_dir / entry.name)
                n_copied += 1

    logger.info(f"Copied {n_copied} files from {source} to {dest}")
    return n_copied


def create_auth_dataset(
    source: PathLike,
    dest: PathLike,
    subject_id: Union[int, str],
) -> Dict[str, int]:
    """
    Build a binary authentication dataset for one subject.

    Every file under source (recursively) whose name starts with
    "<subject_id>_" is copied to dest/subject<subject_id>/, every other
    file to dest/other/. Both folders are created even if they end up empty.

    The destination is flat, so two source files sharing a basename in
    different subdirectories collide.

    Returns:
        File count per destination folder, e.g. {"subject3": 40, "other": 360}.

    Raises:
        FileNotFoundError: If source doesn't exist.
        FileExistsError: If a destination file already exists.
    """
    source = Path(source)
    dest = Path(dest)

    # Snapshot before creating anything, dest may live under source
    files = iter_files(source, recursive=True)

    subject_name = subject_folder_name(subject_id)
    subject_dir = dest / subject_name
    other_dir = dest / OTHER_FOLDER_NAME
    subject_dir.mkdir(parents=True, exist_ok=True)
    other_dir.mkdir(parents=True, exist_ok=True)

    subject_marker = f"{subject_id}{PREFIX_SEPARATOR}"
    counts = {subject_name: 0, OTHER_FOLDER_NAME: 0}

    for file_path in files:
        if file_path.name.startswith(subject_marker):
            target_dir, key = subject_dir, subject_name
        else:
            target_dir, key = other_dir, OTHER_FOLDER_NAME

        target = target_dir / file_path.name
        if target.exists():
            raise FileExistsError(
                f"Cannot copy {file_path}: {target} already exists "
                "(duplicate file name in source tree?)"
            )
        shutil.copy2(file_path, target)
        counts[key] += 1

    logger.info(
        f"Auth dataset for {subject_name}: {counts[subject_name]} subject, "
        f"{counts[OTHER_FOLDER_NAME]} other -> {dest}"
    )
    return counts


# ============================================================
# Augmentation
# ============================================================

def rotate_image(image: np.ndarray, angle: float) -> np.ndarray:
    """
    Rotate an image clockwise about its centre.

    The canvas keeps the original size: corners that rotate out of frame are
    clipped and uncovered areas are filled with zeros.
    """
    height, width = image.shape[:2]
    center = ((width - 1) / 2.0, (height - 1) / 2.0)
    # OpenCV treats positive angles as counter-clockwise
    matrix = cv2.getRotationMatrix2D(center, -angle, 1.0)
    return cv2.warpAffine(
        image,
        matrix,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )


def rotated_variant_path(path: PathLike, angle: int) -> Path:
    """Name of a rotated copy: the full original name + "rotated_<angle>.png"."""
    path = Path(path)
    return path.with_name(f"{path.name}rotated_{angle}.png")


def augment_dataset(
    root: PathLike,
    angles: Iterable[int] = ROTATION_ANGLES,
) -> List[Path]:
    """
    Write rotated variants of every image under root (recursively).

    With the default angles each image gains exactly 7 siblings
    (45, 90, ..., 315 degrees). Only files present when the call starts
    are augmented.

    Returns:
        Paths of all written variants.

    Raises:
        ValueError: If an image cannot be decoded; the run stops there.
    """
    angles = [int(a) for a in angles]
    files = iter_files(root, recursive=True)
    written: List[Path] = []

    for file_path in files:
        image = read_image(file_path)
        for angle in angles:
            written.append(write_image(rotated_variant_path(file_path, angle), rotate_image(image, angle)))

    logger.info(f"Augmented {len(files)} images under {root} with {len(angles)} rotations each")
    return written


def oversample_dataset(folder: PathLike, num_copies: int) -> List[Path]:
    """
    Duplicate every file directly in folder num_copies times.

    Copies are named "<stem>_copy<i><ext>" and are byte-identical to their
    source.

    Raises:
        ValueError: If num_copies is negative.
    """
    if num_copies < 0:
        raise ValueError(f"num_copies must be >= 0, got {num_copies}")

    files = iter_files(folder, recursive=False)
    written: List[Path] = []

    for file_path in files:
        for i in range(num_copies):
            copy_path = file_path.with_name(f"{file_path.stem}_copy{i}{file_path.suffix}")
            shutil.copy2(file_path, copy_path)
            written.append(copy_path)

    logger.info(f"Oversampled {len(files)} files in {folder} x{num_copies}")
    return written
