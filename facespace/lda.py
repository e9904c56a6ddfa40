"""
This module implements LDA (Fisherfaces) on top of the PCA projection.

Key concepts:
- Between-class scatter S_b: spread of the class means around the mean of
  class means, weighted by class size
- Within-class scatter S_w: spread of each class around its own mean
- Fisher basis: eigenvectors of S_w^-1 * S_b

Columns of the projected training set must be grouped by class: all images
of a class are contiguous, as produced by the face database.
"""

import logging

import config
from facespace.errors import DimensionMismatchError
from facespace.matrix import Matrix
from facespace.pca import sort_eigenpairs

logger = logging.getLogger(__name__)


def class_partition(entries):
    """
    Split an ordered list of entries into contiguous runs of the same class.

    Args:
        entries: Sequence of objects with a class_id attribute

    Returns:
        list: (start, end) column ranges, one per class, in entry order
    """
    bounds = []
    start = 0
    for k in range(1, len(entries) + 1):
        if k == len(entries) or entries[k].class_id != entries[start].class_id:
            bounds.append((start, k))
            start = k
    return bounds


def scatter(X, entries):
    """
    Compute the between-class and within-class scatter matrices.

    The grand mean is the plain average of the class means, so every class
    weighs the same regardless of its image count.

    Args:
        X: Projected images, one per column (k x n)
        entries: Entry for each column of X, grouped by class

    Returns:
        tuple: (S_b, S_w), both k x k
    """
    if len(entries) != X.cols:
        raise DimensionMismatchError(f"scatter: {len(entries)} entries for {X.cols} columns")

    bounds = class_partition(entries)
    X_classes = [X.copy_columns(start, end) for start, end in bounds]
    U = [X_class.mean_column() for X_class in X_classes]

    u = Matrix(X.rows, 1)
    for u_i in U:
        u.add(u_i)
    u.divide_by(len(U))

    S_b = Matrix(X.rows, X.rows)
    S_w = Matrix(X.rows, X.rows)

    for X_class, u_i in zip(X_classes, U):
        # S_b_i = n_i * (u_i - u) * (u_i - u)'
        d = u_i.dot_subtract(u)
        S_b_i = d.product(d.transpose())
        S_b_i.mult(X_class.cols)
        S_b.add(S_b_i)

        # S_w_i = X_class * X_class', X_class centered on its own mean
        X_class.subtract_columns(u_i)
        S_w.add(X_class.product(X_class.transpose()))

    return S_b, S_w


def lda(W_pca_tr, P_pca, entries, truncate=None):
    """
    Compute the projection matrix of a training set with LDA.

    Args:
        W_pca_tr: Transposed PCA projection matrix (k x d)
        P_pca: PCA projected training images (k x n)
        entries: Entry for each training image, grouped by class
        truncate: Keep only n - c PCA components and c - 1 Fisher vectors.
                  Defaults to config.LDA_TRUNCATE

    Returns:
        Matrix: Transposed LDA projection matrix W_lda' = W_fld' * W_pca'

    Raises:
        SingularMatrixError: If the within-class scatter cannot be inverted
    """
    if truncate is None:
        truncate = config.LDA_TRUNCATE

    n = P_pca.cols
    c = len(class_partition(entries))

    if truncate:
        keep = max(min(n - c, P_pca.rows), 1)
        logger.info("LDA: truncating PCA space to %d components", keep)
        P_pca = P_pca.copy_rows(0, keep)
        W_pca_tr = W_pca_tr.copy_rows(0, keep)

    S_b, S_w = scatter(P_pca, entries)
    logger.info("LDA: %d classes, scatter matrices %dx%d", c, S_w.rows, S_w.cols)

    # W_fld = eigenvectors of S_w^-1 * S_b
    S_w_inv = S_w.inverse()
    J = S_w_inv.product(S_b)

    J_eval, J_evec = J.eigen()
    J_eval, J_evec = sort_eigenpairs(J_eval, J_evec)

    W_fld = J_evec
    if truncate:
        W_fld = J_evec.copy_columns(0, min(c - 1, J_evec.cols))

    return W_fld.transpose().product(W_pca_tr)
