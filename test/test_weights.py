import numpy as np
import pytest
from scipy import sparse

from sirtools.errors import ConfigurationError
from sirtools.operator import CallbackOperator, MatrixOperator
from sirtools.structure import StructureStats, scan_structure
from sirtools.weights import cav_weights


A3 = np.array(
    [
        [1.0, 2.0, 0.0],
        [0.0, 3.0, 0.0],
        [4.0, 0.0, 5.0],
    ]
)


def callback(A):
    def func(v, transp_flag):
        if v is None:
            return A.shape
        if transp_flag == "transp":
            return A.T @ v
        return A @ v

    return func


def test_structure_dense():
    stats = scan_structure(MatrixOperator(A3))
    np.testing.assert_array_equal(stats.col_nnz, [2.0, 2.0, 1.0])
    # 2*1 + 2*4, 2*9, 2*16 + 1*25
    np.testing.assert_array_equal(stats.row_norms, [10.0, 18.0, 57.0])


def test_structure_sparse_matches_dense():
    rng = np.random.default_rng(0)
    A = rng.random((20, 12))
    A[A < 0.6] = 0.0
    dense = scan_structure(MatrixOperator(A))
    sparse_stats = scan_structure(MatrixOperator(sparse.csr_matrix(A)))
    np.testing.assert_array_equal(sparse_stats.col_nnz, dense.col_nnz)
    np.testing.assert_allclose(sparse_stats.row_norms, dense.row_norms)


def test_structure_sparse_explicit_zero():
    # Explicitly stored zeros are not counted.
    data = np.array([1.0, 0.0, 2.0, 3.0])
    indices = np.array([0, 1, 1, 0])
    indptr = np.array([0, 2, 4])
    csr = sparse.csr_matrix((data, indices, indptr), shape=(2, 2))
    sparse_stats = scan_structure(MatrixOperator(csr))
    dense = scan_structure(MatrixOperator(np.array([[1.0, 0.0], [3.0, 2.0]])))
    np.testing.assert_array_equal(sparse_stats.col_nnz, dense.col_nnz)
    np.testing.assert_allclose(sparse_stats.row_norms, dense.row_norms)


def test_structure_sparse_duplicates():
    # Duplicate entries are summed, as in A @ v.
    data = np.array([1.0, 1.0, 1.0, 1.0])
    indices = np.array([0, 0, 0, 1])
    indptr = np.array([0, 2, 4])
    csr = sparse.csr_matrix((data, indices, indptr), shape=(2, 2))
    op = MatrixOperator(csr)
    sparse_stats = scan_structure(op)
    dense = scan_structure(MatrixOperator(np.array([[2.0, 0.0], [1.0, 1.0]])))
    np.testing.assert_array_equal(sparse_stats.col_nnz, [2.0, 1.0])
    np.testing.assert_allclose(sparse_stats.row_norms, dense.row_norms)
    np.testing.assert_allclose(
        cav_weights(sparse_stats).M, cav_weights(dense).M
    )
    # The caller's matrix is left untouched.
    assert csr.nnz == 4


def test_structure_probe_callback():
    stats = scan_structure(CallbackOperator(callback(A3)))
    np.testing.assert_array_equal(stats.col_nnz, [2.0, 2.0, 1.0])
    np.testing.assert_array_equal(stats.row_norms, [10.0, 18.0, 57.0])


def test_structure_probe_tall_callback():
    rng = np.random.default_rng(3)
    A = rng.standard_normal((50, 4))
    A[A < 0.5] = 0.0
    A[:, 2] = 0.0
    calls = []

    def func(v, transp_flag):
        if v is None:
            return A.shape
        calls.append(transp_flag)
        return A.T @ v if transp_flag == "transp" else A @ v

    stats = scan_structure(CallbackOperator(func))
    dense = scan_structure(MatrixOperator(A))
    np.testing.assert_array_equal(stats.col_nnz, dense.col_nnz)
    np.testing.assert_allclose(stats.row_norms, dense.row_norms)
    # One pass over all columns, a second over the nonzero ones.
    assert calls.count("notransp") == 4 + np.count_nonzero(dense.col_nnz)


def test_structure_probe_limit():
    op = CallbackOperator(callback(A3))
    with pytest.raises(ConfigurationError):
        scan_structure(op, probe_limit=2)
    supplied = StructureStats(np.array([2, 2, 1]), np.array([10, 18, 57]))
    stats = scan_structure(op, structure=supplied, probe_limit=2)
    np.testing.assert_array_equal(stats.row_norms, [10.0, 18.0, 57.0])


def test_structure_supplied_wrong_length():
    op = MatrixOperator(A3)
    with pytest.raises(ConfigurationError):
        scan_structure(op, structure=StructureStats(np.ones(2), np.ones(3)))
    with pytest.raises(ConfigurationError):
        scan_structure(op, structure=StructureStats(np.ones(3), np.ones(4)))


def test_cav_weights():
    weights = cav_weights(scan_structure(MatrixOperator(A3)))
    np.testing.assert_allclose(weights.M, [1.0 / 10.0, 1.0 / 18.0, 1.0 / 57.0])
    np.testing.assert_array_equal(weights.D, np.ones(3))
    assert weights.trivial_D
    assert not weights.M.flags.writeable


def test_cav_weights_user_weights():
    w = np.array([2.0, 1.0, 3.0])
    weights = cav_weights(scan_structure(MatrixOperator(A3)), w)
    np.testing.assert_allclose(weights.M, [2.0 / 10.0, 1.0 / 18.0, 3.0 / 57.0])


def test_cav_weights_zero_row():
    A = np.array([[1.0, 0.0], [0.0, 0.0], [2.0, 3.0]])
    weights = cav_weights(scan_structure(MatrixOperator(A)))
    # S = diag(2, 1)
    np.testing.assert_allclose(weights.M, [1.0 / 2.0, 0.0, 1.0 / (2 * 4.0 + 9.0)])
    assert np.all(np.isfinite(weights.M))


def test_cav_weights_wrong_length():
    stats = scan_structure(MatrixOperator(A3))
    with pytest.raises(ConfigurationError):
        cav_weights(stats, np.ones(4))
    with pytest.raises(ConfigurationError):
        cav_weights(stats, np.ones((3, 3)))
