"""
This module implements ICA architecture II on top of the PCA projection.

The PCA coordinates are centered and whitened with
W_z = 2 * inv(sqrtm(cov(x'))), then scikit-learn's FastICA estimates the
unmixing matrix on the whitened data brought back to unit covariance, which
the fixed-point update requires. FastICA is seeded, so a fixed
random_state gives the same basis on every run.
"""

import logging
import warnings

from sklearn.decomposition import FastICA
from sklearn.exceptions import ConvergenceWarning

import config
from facespace.matrix import Matrix

logger = logging.getLogger(__name__)


def whitening_matrix(x, scale=None):
    """
    Compute scale * cov(x')^(-1/2) for centered data x (variables x observations).

    Raises:
        SingularMatrixError: If the covariance square root cannot be inverted
    """
    if scale is None:
        scale = config.ICA_WHITEN_SCALE

    cov = x.transpose().covariance()
    W_z = cov.sqrtm().inverse()
    W_z.mult(scale)
    return W_z


def unmixing_matrix(x_white, scale=None, max_iter=None, tol=None, random_state=None):
    """
    Estimate the unmixing matrix of whitened data (variables x observations).

    x_white is expected to have covariance scale^2 * I, as produced by
    whitening_matrix; it is divided by scale before the separation.

    Returns:
        tuple: (W as a k x k Matrix, number of iterations run)
    """
    if scale is None:
        scale = config.ICA_WHITEN_SCALE
    if max_iter is None:
        max_iter = config.ICA_MAX_ITER
    if tol is None:
        tol = config.ICA_TOL
    if random_state is None:
        random_state = config.RANDOM_STATE

    ica = FastICA(
        whiten=False, fun=config.ICA_FUN,
        max_iter=max_iter, tol=tol, random_state=random_state
    )

    x_unit = x_white.copy()
    x_unit.divide_by(scale)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        ica.fit(x_unit.data.T)

    if any(issubclass(w.category, ConvergenceWarning) for w in caught):
        logger.warning("ICA did not converge within %d iterations (tol=%g)", max_iter, tol)

    return Matrix.from_array(ica.components_), int(ica.n_iter_)


def ica2(W_pca_tr, P_pca, max_iter=None, tol=None, random_state=None):
    """
    Compute the projection matrix of a training set with ICA2.

    Args:
        W_pca_tr: Transposed PCA projection matrix (k x d)
        P_pca: PCA projected training images (k x n)
        max_iter: Iteration cap for the source separation
        tol: Convergence tolerance
        random_state: Seed for the initial unmixing guess

    Returns:
        Matrix: Transposed ICA projection matrix W_ica' = (W * W_z) * W_pca'
    """
    x = P_pca.copy()
    x.subtract_columns(x.mean_column())

    W_z = whitening_matrix(x)
    x_white = W_z.product(x)

    W, n_iter = unmixing_matrix(x_white, max_iter=max_iter, tol=tol, random_state=random_state)
    logger.info("ICA: %d components, separation ran %d iterations", W.rows, n_iter)

    W_I = W.product(W_z)
    return W_I.product(W_pca_tr)
