from typing import NamedTuple

import numba as nb
import numpy as np
from scipy import sparse

from sirtools.constants import FloatArray, IntArray


class MatrixCSR(NamedTuple):
    """
    Bare CSR arrays, so the matrix can be passed into numba compiled
    functions.
    """

    data: FloatArray
    indices: IntArray
    indptr: IntArray
    n: int
    m: int
    nnz: int

    @staticmethod
    def from_csr_matrix(A: sparse.csr_matrix) -> "MatrixCSR":
        n, m = A.shape
        return MatrixCSR(
            np.ascontiguousarray(A.data, dtype=np.float64),
            np.ascontiguousarray(A.indices),
            np.ascontiguousarray(A.indptr),
            n,
            m,
            A.nnz,
        )


@nb.njit(inline="always")
def nzrange(A: MatrixCSR, row: int) -> range:
    """Return the indices of the nonzero values of a single row."""
    start = A.indptr[row]
    end = A.indptr[row + 1]
    return range(start, end)


@nb.njit(inline="always")
def row_slice(A, row: int) -> slice:
    """Return the slice of the values of a single row."""
    start = A.indptr[row]
    end = A.indptr[row + 1]
    return slice(start, end)


@nb.njit(inline="always")
def columns_and_values(A, s):
    return zip(A.indices[s], A.data[s])
