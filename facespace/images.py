"""
This module handles loading face images from disk and turning them into
matrix columns.

It provides functionality for:
- Scanning a directory for labeled images (flat or one folder per subject)
- Converting an image to a column of pixel intensities, color images
  through the luminance weights 0.299 R + 0.587 G + 0.114 B
- Writing a column back to an 8-bit grayscale image
"""

import logging
import os
import re
from collections import namedtuple

import numpy as np
from PIL import Image

import config
from facespace.errors import DatabaseIOError, InconsistentDimensionsError, NoImagesError
from facespace.matrix import Matrix

logger = logging.getLogger(__name__)

LUMINANCE_WEIGHTS = np.array([0.299, 0.587, 0.114])

LabeledImage = namedtuple("LabeledImage", ["class_id", "name", "path"])

_FLAT_LABEL = re.compile(r"^(\d+)[_\-]")
_DIR_LABEL = re.compile(r"(\d+)$")


def parse_label(text, pattern=_FLAT_LABEL):
    match = pattern.search(text)
    return int(match.group(1)) if match else None


def _is_image(filename):
    return filename.lower().endswith(config.IMAGE_EXTENSIONS)


def list_labeled_images(path):
    """
    Find every image under a directory along with its class label.

    Two layouts are recognized:
    - flat: files named "<class>_<anything>.<ext>" directly inside path
    - per subject: one sub-directory per class ("s7/3.pgm"), the class being
      the trailing number of the directory name

    Args:
        path: Directory to scan

    Returns:
        list: LabeledImage tuples sorted by (class, name); class_id is None
              for files without a parsable label, those sort last

    Raises:
        NoImagesError: If path is not a directory
    """
    if not os.path.isdir(path):
        raise NoImagesError(f"{path} is not a directory")

    images = []
    for filename in sorted(os.listdir(path)):
        full = os.path.join(path, filename)
        if os.path.isdir(full):
            class_id = parse_label(filename, _DIR_LABEL)
            for sub in sorted(os.listdir(full)):
                if _is_image(sub):
                    images.append(LabeledImage(class_id, f"{filename}/{sub}", os.path.join(full, sub)))
        elif _is_image(filename):
            images.append(LabeledImage(parse_label(filename), filename, full))

    images.sort(key=lambda im: (im.class_id is None, im.class_id or 0, im.name))
    return images


def read_image(path):
    """
    Read an image as a float64 array of intensities (height x width).

    Raises:
        DatabaseIOError: If the file cannot be decoded
    """
    try:
        with Image.open(path) as im:
            if im.mode in ("L", "I", "F", "I;16", "1"):
                return np.asarray(im, dtype=np.float64)
            rgb = np.asarray(im.convert("RGB"), dtype=np.float64)
    except (OSError, ValueError) as e:
        raise DatabaseIOError(f"cannot read image {path}: {e}") from e

    return rgb @ LUMINANCE_WEIGHTS


def read_image_column(path):
    """
    Read an image into a column vector of length height * width.

    Pixels are laid out row by row.

    Returns:
        tuple: (Matrix of shape (h * w) x 1, (h, w))
    """
    pixels = read_image(path)
    return Matrix.from_array(pixels.reshape(-1)), pixels.shape


def load_image_matrix(images, shape=None):
    """
    Stack a list of images into a matrix, one image per column.

    Args:
        images: LabeledImage tuples
        shape: Expected (h, w); taken from the first image when None

    Returns:
        tuple: (Matrix of shape (h * w) x len(images), (h, w))

    Raises:
        NoImagesError: If images is empty
        InconsistentDimensionsError: If an image differs in size
    """
    if not images:
        raise NoImagesError("no images to load")

    columns = []
    for image in images:
        pixels = read_image(image.path)
        if shape is None:
            shape = pixels.shape
        elif pixels.shape != tuple(shape):
            raise InconsistentDimensionsError(
                f"{image.name} is {pixels.shape[1]}x{pixels.shape[0]}, expected {shape[1]}x{shape[0]}"
            )
        columns.append(pixels.reshape(-1))

    return Matrix.from_array(np.column_stack(columns)), tuple(shape)


def write_image_column(M, col, height, width, path):
    """Write column col of M as an 8-bit grayscale image of the given size."""
    if M.rows != height * width:
        raise InconsistentDimensionsError(f"column of length {M.rows} is not a {width}x{height} image")

    pixels = np.clip(M.data[:, col], 0, 255).astype(np.uint8).reshape(height, width)
    try:
        Image.fromarray(pixels).save(path)
    except (OSError, ValueError) as e:
        raise DatabaseIOError(f"cannot write image {path}: {e}") from e
