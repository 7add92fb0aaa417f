"""
Image Store Module

Enumerates image files on disk and reads/writes them. Labels are derived
from the directory layout: an image's label is the name of the folder that
directly contains it, so a dataset tree like

    dataset/
    ├── subject1/
    │   ├── 1_001.png
    │   └── 1_002.png
    └── other/
        └── 7_004.png

yields the labels "subject1" and "other".

Usage:
    from bioauth.image_store import load_labeled_images, read_image

    for image in load_labeled_images("data/auth"):
        print(image.path, image.label)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class LabeledImage:
    """
    A single image file and the label inferred from its parent folder.

    Attributes:
        path: Path to the image file.
        label: Name of the directory directly containing the file.
    """

    path: Path
    label: str


def iter_files(root: PathLike, recursive: bool = True) -> List[Path]:
    """
    List regular files under a directory in a stable (sorted) order.

    The listing is materialized before it is returned, so callers may
    add or move files under root while iterating over the result.

    Args:
        root: Directory to scan.
        recursive: If False, only files directly inside root are listed.

    Raises:
        FileNotFoundError: If root is not an existing directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")

    if not recursive:
        return sorted(p for p in root.iterdir() if p.is_file())

    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            files.append(Path(dirpath) / name)
    return files


def load_labeled_images(root: PathLike) -> Iterator[LabeledImage]:
    """Yield every file under root (recursively) with its parent-folder label."""
    for path in iter_files(root, recursive=True):
        yield LabeledImage(path=path, label=path.parent.name)


def read_image_bytes(path: PathLike) -> bytes:
    """Read the raw (still encoded) bytes of an image file."""
    with open(path, "rb") as f:
        return f.read()


def read_image(path: PathLike) -> np.ndarray:
    """
    Decode an image file into a BGR (or grayscale) array.

    cv2.imread cannot handle non-ASCII paths on every platform, so the bytes
    are read in Python and decoded with cv2.imdecode.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file cannot be decoded as an image.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Image not found: {path}")

    buffer = np.frombuffer(read_image_bytes(path), dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError(f"Could not decode image: {path}")
    return image


def write_image(path: PathLike, image: np.ndarray) -> Path:
    """
    Encode an image to disk. The format is chosen from the path's suffix.

    Raises:
        IOError: If OpenCV fails to encode the image.
    """
    path = Path(path)
    ok, encoded = cv2.imencode(path.suffix or ".png", image)
    if not ok:
        raise IOError(f"Could not encode image as {path.suffix}: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    encoded.tofile(str(path))
    logger.debug(f"Wrote {path} ({image.shape[1]}x{image.shape[0]})")
    return path
