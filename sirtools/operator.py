import abc
from typing import Callable, Tuple

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import LinearOperator

from sirtools.constants import FloatArray
from sirtools.errors import ConfigurationError, OperatorError


class Operator(abc.ABC):
    """
    Linear map A of shape (m, n) offering forward and adjoint application.

    Operators are referenced, never mutated, by the solver.
    """

    @property
    @abc.abstractmethod
    def shape(self) -> Tuple[int, int]:
        pass

    @abc.abstractmethod
    def apply(self, v: FloatArray) -> FloatArray:
        """Return A @ v."""

    @abc.abstractmethod
    def apply_adjoint(self, w: FloatArray) -> FloatArray:
        """Return A.T @ w."""

    def aslinearoperator(self) -> LinearOperator:
        return LinearOperator(
            shape=self.shape,
            matvec=self.apply,
            rmatvec=self.apply_adjoint,
            dtype=np.float64,
        )

    def __repr__(self) -> str:
        m, n = self.shape
        return f"{type(self).__name__} of shape ({m}, {n})"


class MatrixOperator(Operator):
    """Operator backed by an explicit dense or sparse matrix."""

    def __init__(self, A):
        if sparse.issparse(A):
            A = sparse.csr_matrix(A, dtype=np.float64, copy=True)
            # Stored duplicates are summed by A @ v but would be counted twice
            # by the structure scan.
            A.sum_duplicates()
        else:
            A = np.asarray(A, dtype=np.float64)
            if A.ndim != 2:
                raise ConfigurationError(
                    f"Matrix must be two-dimensional, received ndim={A.ndim}"
                )
        self.A = A
        self.At = A.T

    @property
    def shape(self) -> Tuple[int, int]:
        return self.A.shape

    @property
    def is_sparse(self) -> bool:
        return sparse.issparse(self.A)

    def apply(self, v: FloatArray) -> FloatArray:
        return np.asarray(self.A @ v).ravel()

    def apply_adjoint(self, w: FloatArray) -> FloatArray:
        return np.asarray(self.At @ w).ravel()


class CallbackOperator(Operator):
    """
    Matrix-free operator wrapping a callable ``func(v, transp_flag)``.

    * ``func(None, 0)`` returns the size (m, n);
    * ``func(v, "notransp")`` returns A @ v;
    * ``func(w, "transp")`` returns A.T @ w.

    The size is queried once, on construction.
    """

    def __init__(self, func: Callable):
        self.func = func
        try:
            size = func(None, 0)
        except Exception as e:
            raise OperatorError(f"Operator size query failed: {e}") from e
        try:
            m, n = (int(s) for s in np.asarray(size).ravel())
        except (TypeError, ValueError) as e:
            raise OperatorError(
                f"Operator size query must return (m, n), received: {size!r}"
            ) from e
        if m < 1 or n < 1:
            raise OperatorError(f"Operator reported an invalid size: ({m}, {n})")
        self._shape = (m, n)

    @property
    def shape(self) -> Tuple[int, int]:
        return self._shape

    def _call(self, v: FloatArray, flag: str, size: int) -> FloatArray:
        try:
            out = self.func(v, flag)
        except Exception as e:
            raise OperatorError(f"Operator failed for '{flag}': {e}") from e
        out = np.asarray(out, dtype=np.float64).ravel()
        if out.size != size:
            raise OperatorError(
                f"Operator returned {out.size} values for '{flag}', expected {size}"
            )
        return out

    def apply(self, v: FloatArray) -> FloatArray:
        return self._call(v, "notransp", self._shape[0])

    def apply_adjoint(self, w: FloatArray) -> FloatArray:
        return self._call(w, "transp", self._shape[1])


class LinearOperatorAdapter(Operator):
    """Operator wrapping a SciPy LinearOperator via matvec and rmatvec."""

    def __init__(self, A: LinearOperator):
        self.A = A

    @property
    def shape(self) -> Tuple[int, int]:
        return self.A.shape

    def apply(self, v: FloatArray) -> FloatArray:
        return np.asarray(self.A.matvec(v), dtype=np.float64).ravel()

    def apply_adjoint(self, w: FloatArray) -> FloatArray:
        return np.asarray(self.A.rmatvec(w), dtype=np.float64).ravel()


def as_operator(A) -> Operator:
    """Wrap a matrix, LinearOperator or callback in an Operator."""
    if isinstance(A, Operator):
        return A
    if isinstance(A, LinearOperator):
        return LinearOperatorAdapter(A)
    if sparse.issparse(A) or isinstance(A, (np.ndarray, list, tuple)):
        return MatrixOperator(A)
    if callable(A):
        return CallbackOperator(A)
    raise ConfigurationError(
        f"A must be a matrix, a LinearOperator or a callable, received: {type(A)}"
    )
