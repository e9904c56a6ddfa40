"""
This module implements the face database: the trained model and the
train / save / load / recognize operations around it.

The model holds the mean face, the transposed PCA projection matrix and the
PCA projected training images, plus the same pair for LDA and ICA when those
were requested at training time. Training columns are grouped by class and
each column has a DatabaseEntry (class id, name).
"""

import logging
from collections import namedtuple

import numpy as np
import pandas as pd

import config
from facespace.errors import (
    DatabaseIOError, DimensionMismatchError, EmptyDatabaseError,
    InconsistentDimensionsError, MissingLabelError, NoImagesError
)
from facespace.ica import ica2
from facespace.images import list_labeled_images, load_image_matrix, read_image_column
from facespace.lda import class_partition, lda
from facespace.matrix import HEADER_DTYPE, Matrix
from facespace.pca import explained_variance_ratio, pca

logger = logging.getLogger(__name__)

DatabaseEntry = namedtuple("DatabaseEntry", ["class_id", "name"])
Match = namedtuple("Match", ["index", "class_id", "name", "distance"])

FLAG_LDA = 1
FLAG_ICA = 2

REPORT_COLUMNS = [
    "image", "true_class", "algorithm", "match_index",
    "match_class", "match_name", "distance", "correct"
]


def nearest_neighbor(P, q):
    """
    Find the column of P closest to q in squared Euclidean distance.

    Ties go to the lowest column index.

    Args:
        P: Projected training images (k x n)
        q: Projected test image (k x 1)

    Returns:
        tuple: (column index, squared distance)
    """
    if q.cols != 1 or q.rows != P.rows:
        raise DimensionMismatchError(f"nearest_neighbor: {q.rows}x{q.cols} query against {P.rows}-d columns")
    if P.cols == 0:
        raise EmptyDatabaseError("no training columns to compare against")

    dist = np.sum((P.data - q.data) ** 2, axis=0)
    idx = int(np.argmin(dist))
    return idx, float(dist[idx])


class FaceDatabase:
    """
    Trained face recognition model.

    Attributes:
        num_classes: Number of distinct classes in the training set
        num_images: Number of training images
        num_dimensions: Pixels per image
        entries: DatabaseEntry per training column, grouped by class
        mean_face: Mean training image (num_dimensions x 1)
        W_pca_tr, P_pca: PCA projection matrix (transposed) and projections
        W_lda_tr, P_lda: LDA counterparts, None unless trained with LDA
        W_ica_tr, P_ica: ICA counterparts, None unless trained with ICA
        variance_explained: Share of variance kept by the PCA components,
                            None for a loaded database
    """

    def __init__(self):
        self.num_classes = 0
        self.num_images = 0
        self.num_dimensions = 0
        self.image_shape = None
        self.entries = []
        self.mean_face = None
        self.W_pca_tr = None
        self.P_pca = None
        self.W_lda_tr = None
        self.P_lda = None
        self.W_ica_tr = None
        self.P_ica = None
        self.variance_explained = None

    @property
    def is_trained(self):
        return self.mean_face is not None

    @property
    def lda(self):
        return self.W_lda_tr is not None

    @property
    def ica(self):
        return self.W_ica_tr is not None

    def bases(self):
        """(algorithm, W_tr, P) for every trained algorithm, PCA first."""
        result = [("PCA", self.W_pca_tr, self.P_pca)]
        if self.lda:
            result.append(("LDA", self.W_lda_tr, self.P_lda))
        if self.ica:
            result.append(("ICA", self.W_ica_tr, self.P_ica))
        return result

    def _require_trained(self):
        if not self.is_trained:
            raise EmptyDatabaseError("database has not been trained or loaded")

    # training

    def train(self, path, use_lda=False, use_ica=False, **kwargs):
        """
        Train the database on a directory of labeled images.

        Args:
            path: Directory of images, see images.list_labeled_images
            use_lda: Also compute the LDA projection
            use_ica: Also compute the ICA projection
            **kwargs: Forwarded to train_matrix

        Raises:
            NoImagesError: If the directory holds no images
            InconsistentDimensionsError: If images differ in size
            MissingLabelError: If an image has no class label
            SingularMatrixError: If LDA or ICA hit a singular matrix
        """
        images = list_labeled_images(path)
        if not images:
            raise NoImagesError(f"no images found in {path}")

        unlabeled = [image.name for image in images if image.class_id is None]
        if unlabeled:
            raise MissingLabelError(f"training images without a class label: {', '.join(unlabeled[:5])}")

        logger.info("Loading %d training images from %s", len(images), path)
        X, shape = load_image_matrix(images)
        entries = [DatabaseEntry(image.class_id, image.name) for image in images]

        self.train_matrix(X, entries, use_lda=use_lda, use_ica=use_ica, **kwargs)
        self.image_shape = shape

    def train_matrix(self, X, entries, use_lda=False, use_ica=False,
                     num_components=None, lda_truncate=None, random_state=None):
        """
        Train the database on an image matrix.

        Nothing is assigned to the database until every requested algorithm
        has finished, so a failure leaves it as it was.

        Args:
            X: Training images, one per column (d x n), grouped by class
            entries: DatabaseEntry per column
            use_lda: Also compute the LDA projection
            use_ica: Also compute the ICA projection
            num_components: PCA components to keep, default config.PCA_COMPONENTS
                            or n - 1
            lda_truncate: Forwarded to lda.lda
            random_state: Seed for ICA
        """
        n = X.cols
        if n == 0:
            raise NoImagesError("training matrix has no columns")
        if len(entries) != n:
            raise DimensionMismatchError(f"{len(entries)} entries for {n} training images")

        if num_components is None:
            num_components = config.PCA_COMPONENTS
        if num_components is None:
            num_components = n - 1
        num_components = max(1, min(num_components, n))

        mean_face = X.mean_column()
        A = X.copy()
        A.subtract_columns(mean_face)

        W_pca_tr = pca(A).copy_rows(0, num_components)
        P_pca = W_pca_tr.product(A)
        variance_explained = float(explained_variance_ratio(A)[:num_components].sum())
        logger.info("PCA: kept %d of %d components (%.1f%% variance)", num_components, n, 100 * variance_explained)

        W_lda_tr = P_lda = None
        if use_lda:
            W_lda_tr = lda(W_pca_tr, P_pca, entries, truncate=lda_truncate)
            P_lda = W_lda_tr.product(A)

        W_ica_tr = P_ica = None
        if use_ica:
            W_ica_tr = ica2(W_pca_tr, P_pca, random_state=random_state)
            P_ica = W_ica_tr.product(A)

        self.entries = list(entries)
        self.num_images = n
        self.num_dimensions = X.rows
        self.num_classes = len(class_partition(self.entries))
        self.image_shape = None
        self.mean_face = mean_face
        self.W_pca_tr, self.P_pca = W_pca_tr, P_pca
        self.W_lda_tr, self.P_lda = W_lda_tr, P_lda
        self.W_ica_tr, self.P_ica = W_ica_tr, P_ica
        self.variance_explained = variance_explained

    # persistence

    def save(self, path_tset, path_tdata):
        """
        Save the database to a text file of entries and a binary file of matrices.

        The binary file starts with a native int bitmask (FLAG_LDA, FLAG_ICA)
        followed by mean_face, W_pca_tr, P_pca, then W_lda_tr, P_lda and
        W_ica_tr, P_ica when present.
        """
        self._require_trained()

        flags = (FLAG_LDA if self.lda else 0) | (FLAG_ICA if self.ica else 0)
        try:
            with open(path_tset, "w") as f:
                for entry in self.entries:
                    f.write(f"{entry.class_id} {entry.name}\n")

            with open(path_tdata, "wb") as f:
                f.write(np.array([flags], dtype=HEADER_DTYPE).tobytes())
                self.mean_face.write_binary(f)
                for _, W_tr, P in self.bases():
                    W_tr.write_binary(f)
                    P.write_binary(f)
        except OSError as e:
            raise DatabaseIOError(f"cannot save database: {e}") from e

        logger.info("Saved database to %s and %s", path_tset, path_tdata)

    def load(self, path_tset, path_tdata):
        """
        Load a database written by save().

        Raises:
            DatabaseIOError: If a file is missing, truncated or inconsistent
        """
        try:
            entries = _read_entries(path_tset)
            with open(path_tdata, "rb") as f:
                flags = _read_flags(f)
                mean_face = Matrix.read_binary(f)
                W_pca_tr, P_pca = Matrix.read_binary(f), Matrix.read_binary(f)

                W_lda_tr = P_lda = None
                if flags & FLAG_LDA:
                    W_lda_tr, P_lda = Matrix.read_binary(f), Matrix.read_binary(f)

                W_ica_tr = P_ica = None
                if flags & FLAG_ICA:
                    W_ica_tr, P_ica = Matrix.read_binary(f), Matrix.read_binary(f)

                if f.read(1):
                    raise DatabaseIOError(f"{path_tdata}: unexpected trailing data")
        except DatabaseIOError:
            raise
        except OSError as e:
            raise DatabaseIOError(f"cannot load database: {e}") from e

        if mean_face.cols != 1:
            raise DatabaseIOError(f"mean face must be a column, got {mean_face.rows}x{mean_face.cols}")
        for name, W_tr, P in (("PCA", W_pca_tr, P_pca), ("LDA", W_lda_tr, P_lda), ("ICA", W_ica_tr, P_ica)):
            if W_tr is None:
                continue
            if W_tr.cols != mean_face.rows or P.rows != W_tr.rows or P.cols != len(entries):
                raise DatabaseIOError(
                    f"{name} matrices {W_tr.rows}x{W_tr.cols} and {P.rows}x{P.cols} do not fit "
                    f"{len(entries)} entries of {mean_face.rows} pixels"
                )

        self.entries = entries
        self.num_images = len(entries)
        self.num_dimensions = mean_face.rows
        self.num_classes = len(class_partition(entries))
        self.image_shape = None
        self.mean_face = mean_face
        self.W_pca_tr, self.P_pca = W_pca_tr, P_pca
        self.W_lda_tr, self.P_lda = W_lda_tr, P_lda
        self.W_ica_tr, self.P_ica = W_ica_tr, P_ica
        self.variance_explained = None

        logger.info("Loaded database: %d images, %d classes, lda=%s, ica=%s",
                    self.num_images, self.num_classes, self.lda, self.ica)

    # recognition

    def project(self, column):
        """Project an image column through every trained basis."""
        self._require_trained()
        if column.rows != self.num_dimensions or column.cols != 1:
            raise InconsistentDimensionsError(
                f"image has {column.rows} pixels, database expects {self.num_dimensions}"
            )

        diff = column.dot_subtract(self.mean_face)
        return {algorithm: W_tr.product(diff) for algorithm, W_tr, _ in self.bases()}

    def recognize_column(self, column):
        """
        Match a single image column against the training set.

        Returns:
            dict: Match per algorithm ("PCA", and "LDA" / "ICA" when trained)
        """
        projections = self.project(column)
        matches = {}
        for algorithm, _, P in self.bases():
            idx, dist = nearest_neighbor(P, projections[algorithm])
            entry = self.entries[idx]
            matches[algorithm] = Match(idx, entry.class_id, entry.name, dist)
        return matches

    def recognize(self, path):
        """
        Recognize every image in a directory.

        Args:
            path: Directory of test images; labels are optional

        Returns:
            pd.DataFrame: One row per (image, algorithm) with the columns in
                          REPORT_COLUMNS; correct is None when the test image
                          has no label
        """
        self._require_trained()
        images = list_labeled_images(path)
        if not images:
            raise NoImagesError(f"no images found in {path}")

        rows = []
        for image in images:
            column, _ = read_image_column(image.path)
            for algorithm, match in self.recognize_column(column).items():
                correct = None if image.class_id is None else match.class_id == image.class_id
                rows.append({
                    "image": image.name,
                    "true_class": image.class_id,
                    "algorithm": algorithm,
                    "match_index": match.index,
                    "match_class": match.class_id,
                    "match_name": match.name,
                    "distance": match.distance,
                    "correct": correct
                })
                logger.debug("%s: %s -> %s (d=%.4g)", algorithm, image.name, match.name, match.distance)

        return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def _read_entries(path):
    entries = []
    with open(path, "r") as f:
        for lineno, line in enumerate(f, 1):
            line = line.rstrip("\n")
            if not line.strip():
                continue
            parts = line.split(" ", 1)
            try:
                class_id = int(parts[0])
            except ValueError as e:
                raise DatabaseIOError(f"{path}:{lineno}: bad class id {parts[0]!r}") from e
            entries.append(DatabaseEntry(class_id, parts[1] if len(parts) > 1 else ""))
    return entries


def _read_flags(f):
    raw = f.read(HEADER_DTYPE.itemsize)
    if len(raw) != HEADER_DTYPE.itemsize:
        raise DatabaseIOError("truncated database header")
    flags = int(np.frombuffer(raw, dtype=HEADER_DTYPE)[0])
    if flags & ~(FLAG_LDA | FLAG_ICA):
        raise DatabaseIOError(f"unknown database flags {flags:#x}")
    return flags
