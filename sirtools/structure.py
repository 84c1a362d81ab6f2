from typing import NamedTuple, Optional

import numba as nb
import numpy as np

from sirtools.constants import PROBE_LIMIT, FloatArray
from sirtools.errors import ConfigurationError
from sirtools.operator import MatrixOperator, Operator
from sirtools.sparse import MatrixCSR, columns_and_values, nzrange, row_slice


class StructureStats(NamedTuple):
    """
    Sparsity statistics of A needed for component averaging.

    Parameters
    ----------
    col_nnz: np.ndarray of float
        Number of nonzero entries per column (diagonal of S), length n.
    row_norms: np.ndarray of float
        S-weighted squared row norms sum_j S_jj A[i, j]**2, length m.
    """

    col_nnz: FloatArray
    row_norms: FloatArray

    def validate(self, m: int, n: int) -> "StructureStats":
        col_nnz = np.asarray(self.col_nnz, dtype=np.float64).ravel()
        row_norms = np.asarray(self.row_norms, dtype=np.float64).ravel()
        if col_nnz.size != n:
            raise ConfigurationError(
                f"structure.col_nnz has length {col_nnz.size}, expected {n}"
            )
        if row_norms.size != m:
            raise ConfigurationError(
                f"structure.row_norms has length {row_norms.size}, expected {m}"
            )
        if (row_norms < 0).any() or (col_nnz < 0).any():
            raise ConfigurationError("structure statistics must be non-negative")
        return StructureStats(col_nnz, row_norms)


@nb.njit
def _column_nnz(A: MatrixCSR) -> np.ndarray:
    counts = np.zeros(A.m)
    for i in range(A.n):
        for nzi in nzrange(A, i):
            if A.data[nzi] != 0.0:
                counts[A.indices[nzi]] += 1.0
    return counts


@nb.njit
def _weighted_row_norms(A: MatrixCSR, s: np.ndarray) -> np.ndarray:
    norms = np.zeros(A.n)
    for i in range(A.n):
        acc = 0.0
        for j, v in columns_and_values(A, row_slice(A, i)):
            acc += s[j] * v * v
        norms[i] = acc
    return norms


def _scan_dense(A: np.ndarray) -> StructureStats:
    col_nnz = np.count_nonzero(A, axis=0).astype(np.float64)
    row_norms = (A * A) @ col_nnz
    return StructureStats(col_nnz, row_norms)


def _scan_csr(A) -> StructureStats:
    csr = MatrixCSR.from_csr_matrix(A)
    col_nnz = _column_nnz(csr)
    row_norms = _weighted_row_norms(csr, col_nnz)
    return StructureStats(col_nnz, row_norms)


def _probe(operator: Operator) -> StructureStats:
    """
    Scan a matrix-free operator by applying it to unit vectors.

    Two passes over the columns: the first counts nonzeros, the second
    accumulates the weighted row norms. Only one column is held at a time.
    """
    m, n = operator.shape
    e = np.zeros(n)
    col_nnz = np.zeros(n)
    for j in range(n):
        e[j] = 1.0
        col_nnz[j] = np.count_nonzero(operator.apply(e))
        e[j] = 0.0

    row_norms = np.zeros(m)
    for j in np.flatnonzero(col_nnz):
        e[j] = 1.0
        column = operator.apply(e)
        row_norms += col_nnz[j] * column * column
        e[j] = 0.0
    return StructureStats(col_nnz, row_norms)


def scan_structure(
    operator: Operator,
    structure: Optional[StructureStats] = None,
    probe_limit: int = PROBE_LIMIT,
) -> StructureStats:
    """
    Compute column nonzero counts and S-weighted row norms of A.

    Explicit matrices are scanned directly. Matrix-free operators are probed
    column by column when they have at most ``probe_limit`` columns;
    otherwise the statistics must be supplied by the caller.
    """
    m, n = operator.shape
    if structure is not None:
        return structure.validate(m, n)

    if isinstance(operator, MatrixOperator):
        if operator.is_sparse:
            return _scan_csr(operator.A)
        return _scan_dense(operator.A)

    if n > probe_limit:
        raise ConfigurationError(
            f"Cannot probe the structure of a matrix-free operator with {n} "
            f"columns (limit {probe_limit}); supply options.structure"
        )
    return _probe(operator)
