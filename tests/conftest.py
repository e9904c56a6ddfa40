import logging

import matplotlib
import numpy as np
import pytest
from PIL import Image

from facespace.database import DatabaseEntry
from facespace.matrix import Matrix

matplotlib.use("Agg")

HEIGHT, WIDTH = 8, 6


def write_image(path, pixels):
    Image.fromarray(np.clip(pixels, 0, 255).astype(np.uint8)).save(path)


def make_entries(sizes):
    """Entries for consecutive classes 1..len(sizes) with the given image counts."""
    entries = []
    for class_id, size in enumerate(sizes, start=1):
        entries.extend(DatabaseEntry(class_id, f"{class_id}_{k}.pgm") for k in range(size))
    return entries


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def random_matrix(rng):
    def build(rows, cols):
        return Matrix.from_array(rng.normal(size=(rows, cols)))
    return build


@pytest.fixture
def face_dirs(tmp_path):
    """Three classes, four training images and one held-out near-duplicate each."""
    rng = np.random.default_rng(7)
    train_dir = tmp_path / "train"
    test_dir = tmp_path / "test"
    train_dir.mkdir()
    test_dir.mkdir()

    bases = rng.integers(20, 236, size=(3, HEIGHT, WIDTH))
    for class_id, base in enumerate(bases, start=1):
        for k in range(5):
            pixels = base + rng.integers(-3, 4, size=base.shape)
            target = test_dir if k == 4 else train_dir
            write_image(target / f"{class_id}_{k}.pgm", pixels)

    return train_dir, test_dir


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("facespace")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
