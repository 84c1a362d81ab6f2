from typing import NamedTuple, Optional

import numpy as np

from sirtools.constants import FloatArray
from sirtools.errors import ConfigurationError
from sirtools.structure import StructureStats


class WeightSpec(NamedTuple):
    """
    Diagonal weighting of the update x + relaxpar * D A' M (b - A x).

    Parameters
    ----------
    M: np.ndarray of float
        Row weights, length m.
    D: np.ndarray of float
        Column weights, length n.
    """

    M: FloatArray
    D: FloatArray

    def freeze(self) -> "WeightSpec":
        self.M.flags.writeable = False
        self.D.flags.writeable = False
        return self

    @property
    def trivial_D(self) -> bool:
        return bool(np.all(self.D == 1.0))


def row_weights(w: Optional[FloatArray], m: int) -> FloatArray:
    if w is None:
        return np.ones(m)
    w = np.asarray(w, dtype=np.float64)
    if w.ndim > 1 and w.size != max(w.shape):
        raise ConfigurationError(f"w must be a vector, received shape {w.shape}")
    w = w.ravel()
    if w.size != m:
        raise ConfigurationError(f"w has length {w.size}, expected {m}")
    return w


def cav_weights(stats: StructureStats, w: Optional[FloatArray] = None) -> WeightSpec:
    """
    Component averaging weights: M = diag(w_i / ||a_i||_S^2), D = I.

    Rows without nonzero entries receive a zero weight.
    """
    row_norms = stats.row_norms
    m = row_norms.size
    n = stats.col_nnz.size
    w = row_weights(w, m)

    M = np.zeros(m)
    nonzero = row_norms > 0
    np.divide(w, row_norms, out=M, where=nonzero)
    D = np.ones(n)
    return WeightSpec(M, D).freeze()
