from sirtools.sirt import SolveResult, solve
from sirtools.weights import cav_weights


def cav(A, b, K, x0=None, options=None, progress=None) -> SolveResult:
    """
    Component Averaging (CAV) method for the linear system Ax = b:

        x^{k+1} = x^k + relaxpar_k A' M (b - A x^k)

    where M = diag(w_i / ||a_i||_S^2), S = diag(s_j), s_j denotes the number
    of nonzero elements in column j, and w_i are weights (default: w_i = 1).

    Parameters
    ----------
    A : array, sparse matrix, LinearOperator, Operator or callable
        The m-by-n system matrix, or a function ``A(v, transp_flag)``:
        ``A(None, 0)`` returns (m, n), ``A(v, "notransp")`` returns A v,
        ``A(w, "transp")`` returns A' w.
    b : ndarray
        Right-hand side, length m.
    K : int or sequence of int
        If scalar: the maximum number of iterations, only the last iterate is
        saved. If a sequence: its largest value is the maximum number of
        iterations, and the iterates of the listed iterations are saved,
        together with the last iterate.
    x0 : ndarray, optional
        Starting vector, length n. Default: zeros.
    options : SolverOptions or mapping, optional
        See SolverOptions.
    progress : callable, optional
        Progress sink, see sirtools.progress.

    Returns
    -------
    X : ndarray
        Saved iterates as columns.
    info : SolveInfo
    ext_info : ExtInfo
        M: diagonal of M; D: diagonal of D (all ones for CAV).

    References
    ----------
    Y. Censor, D. Gordon, and R. Gordon, Component averaging: An efficient
    iterative parallel algorithm for large sparse unstructured problems,
    Parallel Computing, 27 (2001), pp. 777-808.
    """
    return solve(
        A, b, K, x0=x0, options=options, weighting=cav_weights, progress=progress
    )
