import numpy as np
import pytest
from PIL import Image

from facespace.errors import DatabaseIOError, InconsistentDimensionsError, NoImagesError
from facespace.images import (
    list_labeled_images, load_image_matrix, parse_label, read_image, read_image_column, write_image_column
)
from facespace.matrix import Matrix

from conftest import HEIGHT, WIDTH, write_image


def test_color_pixels_use_luminance_weights(tmp_path):
    path = tmp_path / "1_rgb.png"
    Image.new("RGB", (2, 1), (100, 50, 200)).save(path)
    pixels = read_image(path)
    assert pixels.shape == (1, 2)
    np.testing.assert_allclose(pixels, 0.299 * 100 + 0.587 * 50 + 0.114 * 200)
    assert pixels[0, 0] == pytest.approx(82.05)


def test_grayscale_read_as_is(tmp_path):
    path = tmp_path / "1_a.pgm"
    pixels = np.arange(HEIGHT * WIDTH).reshape(HEIGHT, WIDTH)
    write_image(path, pixels)
    column, shape = read_image_column(path)
    assert shape == (HEIGHT, WIDTH)
    # row by row
    np.testing.assert_array_equal(column.data[:, 0], np.arange(HEIGHT * WIDTH))


def test_unreadable_image_raises(tmp_path):
    path = tmp_path / "1_broken.png"
    path.write_bytes(b"not an image")
    with pytest.raises(DatabaseIOError):
        read_image(path)


@pytest.mark.parametrize("text, expected", [
    ("3_a.pgm", 3),
    ("12-left.png", 12),
    ("3.pgm", None),
    ("face.pgm", None),
])
def test_parse_flat_label(text, expected):
    assert parse_label(text) == expected


def test_flat_layout_sorted_by_class_then_name(tmp_path):
    pixels = np.zeros((2, 2))
    for name in ["10_a.pgm", "2_b.pgm", "2_a.pgm", "nolabel.pgm", "1_z.pgm", "notes.txt"]:
        if name.endswith(".txt"):
            (tmp_path / name).write_text("x")
        else:
            write_image(tmp_path / name, pixels)

    images = list_labeled_images(tmp_path)
    assert [im.name for im in images] == ["1_z.pgm", "2_a.pgm", "2_b.pgm", "10_a.pgm", "nolabel.pgm"]
    assert [im.class_id for im in images] == [1, 2, 2, 10, None]


def test_subject_directory_layout(tmp_path):
    pixels = np.zeros((2, 2))
    for subject in ["s2", "s1"]:
        (tmp_path / subject).mkdir()
        for k in [2, 1]:
            write_image(tmp_path / subject / f"{k}.pgm", pixels)

    images = list_labeled_images(tmp_path)
    assert [im.name for im in images] == ["s1/1.pgm", "s1/2.pgm", "s2/1.pgm", "s2/2.pgm"]
    assert [im.class_id for im in images] == [1, 1, 2, 2]


def test_missing_directory_raises(tmp_path):
    with pytest.raises(NoImagesError):
        list_labeled_images(tmp_path / "missing")


def test_load_image_matrix_rejects_mixed_sizes(tmp_path):
    write_image(tmp_path / "1_a.pgm", np.zeros((HEIGHT, WIDTH)))
    write_image(tmp_path / "1_b.pgm", np.zeros((HEIGHT, WIDTH + 1)))
    with pytest.raises(InconsistentDimensionsError):
        load_image_matrix(list_labeled_images(tmp_path))


def test_load_image_matrix_empty():
    with pytest.raises(NoImagesError):
        load_image_matrix([])


def test_write_image_column_round_trip(tmp_path):
    values = np.linspace(-10, 300, HEIGHT * WIDTH)
    M = Matrix.from_array(np.column_stack([np.zeros(HEIGHT * WIDTH), values]))
    path = tmp_path / "out.png"
    write_image_column(M, 1, HEIGHT, WIDTH, path)

    pixels = read_image(path)
    expected = np.clip(values, 0, 255).astype(np.uint8).reshape(HEIGHT, WIDTH)
    np.testing.assert_array_equal(pixels, expected)


def test_write_image_column_wrong_size(tmp_path):
    with pytest.raises(InconsistentDimensionsError):
        write_image_column(Matrix(10, 1), 0, HEIGHT, WIDTH, tmp_path / "out.png")
