import numpy as np
import pytest

from facespace.ica import ica2, unmixing_matrix, whitening_matrix
from facespace.matrix import Matrix


@pytest.fixture
def pca_space(rng):
    k, n, d = 4, 40, 30
    # non-gaussian sources give FastICA something to find
    sources = rng.laplace(size=(k, n))
    mixing = rng.normal(size=(k, k))
    P_pca = Matrix.from_array(mixing @ sources)
    W_pca_tr = Matrix.from_array(rng.normal(size=(k, d)))
    return W_pca_tr, P_pca


def test_whitened_covariance_is_scaled_identity(pca_space):
    _, P_pca = pca_space
    x = P_pca.copy()
    x.subtract_columns(x.mean_column())

    W_z = whitening_matrix(x, scale=2.0)
    x_white = W_z.product(x)
    cov = x_white.transpose().covariance()
    np.testing.assert_allclose(cov.data, 4.0 * np.eye(4), atol=1e-8)


def test_unmixing_matrix_shape(pca_space):
    _, P_pca = pca_space
    x = P_pca.copy()
    x.subtract_columns(x.mean_column())
    x_white = whitening_matrix(x).product(x)

    W, n_iter = unmixing_matrix(x_white, random_state=0)
    assert W.shape == (4, 4)
    assert n_iter >= 1


def test_ica2_basis_shape(pca_space):
    W_pca_tr, P_pca = pca_space
    W_ica_tr = ica2(W_pca_tr, P_pca, random_state=0)
    assert W_ica_tr.shape == W_pca_tr.shape


def test_ica2_is_deterministic_for_a_seed(pca_space):
    W_pca_tr, P_pca = pca_space
    first = ica2(W_pca_tr, P_pca, random_state=3)
    second = ica2(W_pca_tr, P_pca, random_state=3)
    assert first == second


def test_ica2_leaves_inputs_untouched(pca_space):
    W_pca_tr, P_pca = pca_space
    W_before, P_before = W_pca_tr.copy(), P_pca.copy()
    ica2(W_pca_tr, P_pca, random_state=0)
    assert W_pca_tr == W_before
    assert P_pca == P_before


def test_unmixing_recovers_independent_sources(rng):
    sources = rng.laplace(size=(4, 400))
    mixed = Matrix.from_array(rng.normal(size=(4, 4)) @ sources)
    mixed.subtract_columns(mixed.mean_column())

    x_white = whitening_matrix(mixed).product(mixed)
    W, _ = unmixing_matrix(x_white, random_state=0)
    recovered = W.product(x_white).data

    # each recovered component matches one true source up to sign and scale
    corr = np.corrcoef(np.vstack([recovered, sources]))[:4, 4:]
    assert np.all(np.max(np.abs(corr), axis=1) > 0.9)
    assert sorted(np.argmax(np.abs(corr), axis=1)) == [0, 1, 2, 3]


def test_unmixing_is_independent_of_whitening_scale(pca_space):
    _, P_pca = pca_space
    x = P_pca.copy()
    x.subtract_columns(x.mean_column())

    W_1, _ = unmixing_matrix(whitening_matrix(x, scale=1.0).product(x), scale=1.0, random_state=0)
    W_2, _ = unmixing_matrix(whitening_matrix(x, scale=2.0).product(x), scale=2.0, random_state=0)
    np.testing.assert_allclose(W_1.data, W_2.data, atol=1e-6)
