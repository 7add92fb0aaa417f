"""
Tests for the image store module.

Run with: pytest tests/test_image_store.py -v
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bioauth.image_store import (
    LabeledImage,
    iter_files,
    load_labeled_images,
    read_image,
    read_image_bytes,
    write_image,
)


@pytest.fixture
def labeled_tree(tmp_path):
    """dataset/subject1/{a,b}.png, dataset/other/nested/c.png"""
    root = tmp_path / "dataset"
    image = np.full((8, 8, 3), 120, dtype=np.uint8)
    for rel in ["subject1/a.png", "subject1/b.png", "other/nested/c.png"]:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(path), image)
    return root


class TestIterFiles:

    def test_recursive_listing_is_sorted(self, labeled_tree):
        files = iter_files(labeled_tree)
        rel = [p.relative_to(labeled_tree).as_posix() for p in files]
        assert rel == ["other/nested/c.png", "subject1/a.png", "subject1/b.png"]

    def test_non_recursive_lists_only_direct_files(self, labeled_tree):
        (labeled_tree / "top.png").write_bytes(b"x")
        files = iter_files(labeled_tree, recursive=False)
        assert [p.name for p in files] == ["top.png"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            iter_files(tmp_path / "missing")


class TestLoadLabeledImages:

    def test_label_is_parent_folder(self, labeled_tree):
        images = list(load_labeled_images(labeled_tree))
        labels = {image.path.name: image.label for image in images}
        assert labels == {"a.png": "subject1", "b.png": "subject1", "c.png": "nested"}
        assert all(isinstance(image, LabeledImage) for image in images)

    def test_empty_directory(self, tmp_path):
        assert list(load_labeled_images(tmp_path)) == []


class TestReadWrite:

    def test_roundtrip_png(self, tmp_path):
        image = np.random.randint(0, 255, (10, 12, 3), dtype=np.uint8)
        path = write_image(tmp_path / "sub" / "img.png", image)
        assert path.exists()
        np.testing.assert_array_equal(read_image(path), image)

    def test_read_bytes(self, tmp_path):
        path = tmp_path / "raw.bin"
        path.write_bytes(b"\x00\x01\x02")
        assert read_image_bytes(path) == b"\x00\x01\x02"

    def test_corrupt_image_raises(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"definitely not a png")
        with pytest.raises(ValueError):
            read_image(path)

    def test_missing_image_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_image(tmp_path / "nope.png")
