import logging
import time
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from sirtools.box import BoxConstraint
from sirtools.constants import FloatArray, IntArray
from sirtools.errors import ConfigurationError
from sirtools.operator import Operator, as_operator
from sirtools.options import SolverOptions
from sirtools.progress import ProgressSink, make_progress
from sirtools.relaxation import (
    RelaxationPolicy,
    largest_singular_value,
    resolve_relaxation,
)
from sirtools.stoprule import Decision, StopRule, resolve_stoprule
from sirtools.structure import StructureStats, scan_structure
from sirtools.weights import WeightSpec, cav_weights

logger = logging.getLogger(__name__)

Weighting = Callable[[StructureStats, Optional[FloatArray]], WeightSpec]


@dataclass
class SolveInfo:
    """
    Attributes
    ----------
    stoprule: int
        0: maximum number of iterations, 1: NCP, 2: DP, 3: ME.
    finaliter: int
        Number of the iterate returned last.
    relaxpar: float or np.ndarray
        Relaxation parameter, or the parameters used per iteration.
    s1: float or None
        Largest singular value of sqrt(M) A, if used.
    itersaved: np.ndarray of int
        Iteration numbers of the columns of X.
    timetaken: float
        Wall-clock time of the iterations in seconds.
    """

    stoprule: int
    finaliter: int
    relaxpar: Union[float, FloatArray]
    s1: Optional[float]
    itersaved: IntArray
    timetaken: float


class ExtInfo(NamedTuple):
    M: FloatArray
    D: FloatArray


class SolveResult(NamedTuple):
    X: FloatArray
    info: SolveInfo
    ext_info: ExtInfo


class IterateStore:
    """
    Collects the iterates of the requested iterations as columns of X.

    The final iterate is always stored, requested or not.
    """

    def __init__(self, n: int, checkpoints: IntArray):
        self.checkpoints = set(int(k) for k in checkpoints)
        self.X = np.empty((n, len(self.checkpoints) + 1))
        self.itersaved: List[int] = []

    def store(self, k: int, x: FloatArray) -> None:
        if k in self.checkpoints:
            self._append(k, x)

    def _append(self, k: int, x: FloatArray) -> None:
        np.copyto(self.X[:, len(self.itersaved)], x)
        self.itersaved.append(k)

    def finalize(self, finaliter: int, x: FloatArray) -> Tuple[FloatArray, IntArray]:
        # Iterates beyond an accepted earlier iterate are discarded.
        while self.itersaved and self.itersaved[-1] > finaliter:
            self.itersaved.pop()
        if not self.itersaved or self.itersaved[-1] != finaliter:
            self._append(finaliter, x)
        ncol = len(self.itersaved)
        return self.X[:, :ncol].copy(), np.array(self.itersaved, dtype=int)


class SIRTIterable:
    """
    Iterable SIRT solver for Ax = b:

        x_{k+1} = P(x_k + relaxpar_k D A' M (b - A x_k))

    with P the projection on the box constraint.

    Pre-allocates the workspace arrays. The residual of the current iterate
    is kept up to date, so every iteration costs one adjoint and one forward
    application of A (plus whatever the relaxation policy requires).

    Parameters
    ----------
    operator : Operator
    b : ndarray
        Right-hand side vector
    x : ndarray
        Initial guess (modified in-place)
    weights : WeightSpec
    relaxation : RelaxationPolicy
        Must have been reset.
    box : BoxConstraint

    Attributes
    ----------
    x : ndarray
        Current iterate (updated in-place each iteration)
    r : ndarray
        Residual b - A x of the current iterate
    iteration : int
        Number of iterations performed
    """

    def __init__(
        self,
        operator: Operator,
        b: FloatArray,
        x: FloatArray,
        weights: WeightSpec,
        relaxation: RelaxationPolicy,
        box: BoxConstraint,
    ):
        self.operator = operator
        self.b = b
        self.x = x
        self.weights = weights
        self.relaxation = relaxation
        self.box = box
        self.scale_columns = not weights.trivial_D

        m, n = operator.shape
        # Pre-allocate workspace arrays
        self.r = np.empty(m)  # residual
        self.Mr = np.empty(m)  # weighted residual
        self.d = np.empty(n)  # update direction

        self.iteration = 0
        self.relaxpar = None
        self._initialize_residual()

    def _initialize_residual(self):
        np.copyto(self.r, self.b)
        self.r -= self.operator.apply(self.x)

    def reset(self, x: Optional[FloatArray] = None):
        if x is not None:
            np.copyto(self.x, x)
        self.iteration = 0
        self.relaxpar = None
        self._initialize_residual()

    def __iter__(self):
        return self

    def __next__(self) -> int:
        return self.do_iter()

    def do_iter(self) -> int:
        """
        Perform one iteration.

        Returns
        -------
        iteration : int
            Number of the new iterate (1-based)
        """
        k = self.iteration + 1

        # d = D A' M r
        np.multiply(self.weights.M, self.r, out=self.Mr)
        self.d[:] = self.operator.apply_adjoint(self.Mr)
        if self.scale_columns:
            self.d *= self.weights.D

        relaxpar = self.relaxation(k, self.r, self.d)

        self.d *= relaxpar
        self.x += self.d
        if self.box.active:
            self.box.project(self.x)

        # Residual of the (projected) new iterate
        self._initialize_residual()

        self.relaxpar = relaxpar
        self.iteration = k
        return k


class SIRTSolver:
    def __init__(
        self,
        iterable: SIRTIterable,
        stoprule: StopRule,
        maxiter: int,
        checkpoints: IntArray,
        progress: Optional[ProgressSink] = None,
    ):
        self.iterable = iterable
        self.stoprule = stoprule
        self.maxiter = maxiter
        self.store = IterateStore(iterable.x.size, checkpoints)
        self.progress = progress
        self.x_previous = np.empty_like(iterable.x) if stoprule.keeps_previous else None

    def solve(self) -> Tuple[FloatArray, int, int]:
        """
        Run the iterations until the stopping rule is satisfied or the
        iteration budget is exhausted.

        Returns
        -------
        X : ndarray
            Saved iterates as columns.
        finaliter : int
            Number of the final iterate.
        stopcode : int
            Code of the rule that stopped the iterations (0 for maxiter).
        """
        sirt = self.iterable
        self.stoprule.reset(sirt.r.size)
        finaliter = self.maxiter
        final_x = sirt.x
        stopcode = 0

        try:
            for _ in range(self.maxiter):
                if self.x_previous is not None:
                    np.copyto(self.x_previous, sirt.x)

                k = sirt.do_iter()
                if self.progress is not None:
                    self.progress(k, self.maxiter, sirt.relaxpar, np.linalg.norm(sirt.r))

                decision = self.stoprule.update(k, sirt.r)
                if decision is Decision.STOP:
                    finaliter = k
                    stopcode = self.stoprule.code
                    break
                elif decision is Decision.STOP_PREVIOUS:
                    finaliter = k - 1
                    final_x = self.x_previous
                    stopcode = self.stoprule.code
                    break
                self.store.store(k, sirt.x)
        finally:
            close = getattr(self.progress, "close", None)
            if close is not None:
                close()

        if stopcode != 0:
            logger.debug("Stopping rule %d satisfied at iteration %d", stopcode, finaliter)
        X, itersaved = self.store.finalize(finaliter, final_x)
        self.itersaved = itersaved
        return X, finaliter, stopcode


def parse_iterations(K) -> Tuple[int, IntArray]:
    """
    Return the maximum number of iterations and the iterations to save.

    A scalar K only sets the maximum; the final iterate is always saved.
    """
    K = np.asarray(K)
    if K.size == 0:
        raise ConfigurationError("K must contain at least one iteration number")
    if K.dtype == bool or not (
        np.issubdtype(K.dtype, np.integer) or np.issubdtype(K.dtype, np.floating)
    ):
        raise ConfigurationError(f"K must contain positive integers, received {K!r}")
    if not np.all(np.isfinite(K)) or np.any(K >= 2.0**63):
        raise ConfigurationError(
            f"K must contain representable iteration numbers, received {K!r}"
        )
    if np.any(K != np.round(K)) or np.any(K < 1):
        raise ConfigurationError(f"K must contain positive integers, received {K!r}")
    K = K.astype(int)
    maxiter = int(K.max())
    if K.ndim == 0:
        return maxiter, np.array([], dtype=int)
    return maxiter, np.unique(K.ravel())


def _as_vector(v, size: int, name: str) -> FloatArray:
    v = np.asarray(v, dtype=np.float64)
    if v.ndim > 2 or (v.ndim == 2 and min(v.shape) != 1):
        raise ConfigurationError(f"{name} must be a vector, received shape {v.shape}")
    v = v.ravel()
    if v.size != size:
        raise ConfigurationError(f"{name} has length {v.size}, expected {size}")
    return v


def solve(
    A,
    b,
    K,
    x0=None,
    options=None,
    weighting: Weighting = cav_weights,
    progress: Optional[ProgressSink] = None,
) -> SolveResult:
    """
    Solve Ax = b with a SIRT method:

        x^{k+1} = x^k + relaxpar_k D A' M (b - A x^k)

    The weighting determines the method, the default being component
    averaging (CAV).

    Parameters
    ----------
    A : array, sparse matrix, LinearOperator, Operator or callable
        The m-by-n system matrix, or a function ``A(v, transp_flag)``:
        ``A(None, 0)`` returns (m, n), ``A(v, "notransp")`` returns A v,
        ``A(w, "transp")`` returns A' w.
    b : ndarray
        Right-hand side, length m.
    K : int or sequence of int
        Maximum number of iterations; if a sequence, the iterations of which
        the iterates are saved. The final iterate is always saved.
    x0 : ndarray, optional
        Starting vector, length n. Default: zeros.
    options : SolverOptions or mapping, optional
    weighting : callable, optional
        Builds the WeightSpec from the structure statistics of A and the row
        weights w.
    progress : callable, optional
        Progress sink, called as ``progress(k, maxiter, relaxpar, rnorm)``.
        Overrides options.verbose and options.waitbar.

    Returns
    -------
    X : ndarray
        Saved iterates, n-by-len(info.itersaved).
    info : SolveInfo
    ext_info : ExtInfo
        Diagonals of M and D.
    """
    options = SolverOptions.from_any(options)
    operator = as_operator(A)
    m, n = operator.shape

    b = _as_vector(b, m, "b")
    if x0 is None:
        x = np.zeros(n)
    else:
        x = _as_vector(x0, n, "x0").copy()
    maxiter, checkpoints = parse_iterations(K)
    relaxation = resolve_relaxation(options.relaxpar)
    stoprule = resolve_stoprule(options.stoprule)
    stoprule.reset(m)
    box = BoxConstraint.from_bounds(options.lbound, options.ubound, n)
    if options.w is not None:
        _as_vector(options.w, m, "w")

    stats = scan_structure(operator, options.structure)
    weights = weighting(stats, options.w)

    s1 = options.s1
    if s1 is None and relaxation.needs_s1:
        s1 = largest_singular_value(operator, weights)
        logger.debug("Estimated largest singular value s1 = %.6e", s1)
    relaxation.reset(operator, weights, s1)

    if progress is None:
        progress = make_progress(options.verbose, options.waitbar, maxiter)

    start = time.perf_counter()
    iterable = SIRTIterable(operator, b, x, weights, relaxation, box)
    solver = SIRTSolver(iterable, stoprule, maxiter, checkpoints, progress)
    X, finaliter, stopcode = solver.solve()
    timetaken = time.perf_counter() - start

    relaxpar = relaxation.relaxpar
    if isinstance(relaxpar, np.ndarray):
        relaxpar = relaxpar[:finaliter]

    info = SolveInfo(
        stoprule=stopcode,
        finaliter=finaliter,
        relaxpar=relaxpar,
        s1=s1,
        itersaved=solver.itersaved,
        timetaken=timetaken,
    )
    return SolveResult(X, info, ExtInfo(weights.M, weights.D))
