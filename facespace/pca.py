# facespace/pca.py
import logging

import numpy as np

from facespace.matrix import Matrix

logger = logging.getLogger(__name__)


def sort_eigenpairs(evals, evecs):
    """Order eigenvalues (n x 1) and eigenvector columns by descending magnitude."""
    idx = np.argsort(-np.abs(evals.data[:, 0]), kind='stable')
    order = Matrix.from_array(idx.reshape(1, -1))
    return Matrix.from_array(evals.data[idx]), evecs.reorder_columns(order)


def pca(X):
    """
    Compute the PCA projection matrix of a set of mean-subtracted images.

    Eigendecomposes the (n x n) surrogate L = X' * X instead of the
    (d x d) covariance X * X'; both share their non-zero eigenvalues and
    eigenvectors map across through X * v.

    Args:
        X: Mean-subtracted training images, one per column (d x n)

    Returns:
        Matrix: Transposed projection matrix W_pca' (n x d), rows ordered by
                descending eigenvalue magnitude
    """
    X_tr = X.transpose()
    L = X_tr.product(X)

    L_eval, L_evec = L.eigen()
    L_eval, L_evec = sort_eigenpairs(L_eval, L_evec)

    logger.debug("PCA eigenvalues: %s", np.array2string(L_eval.data[:, 0], precision=4, threshold=8))

    W_pca = X.product(L_evec)
    return W_pca.transpose()


def explained_variance_ratio(X):
    """Share of total variance carried by each principal component, in descending order."""
    L = X.transpose().product(X)
    evals = np.sort(np.abs(np.linalg.eigvalsh(L.data)))[::-1]
    total = evals.sum()
    if total == 0:
        return np.zeros_like(evals)
    return evals / total
