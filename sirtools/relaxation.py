"""
Relaxation parameter policies.

A policy is resolved once, before the iteration loop, and reset with the
problem context. Each iteration it is called with the iteration number, the
current residual and the update direction, and returns a positive scalar.

Policies
--------
- constant: a fixed, user supplied value.
- spectral default: 1.9 / s1**2, with s1 the largest singular value of
  sqrt(M) A sqrt(D).
- line: exact minimization of ||b - A (x + relaxpar * d)|| along d.
- psi1, psi2 and their modified versions: the step-size strategies of
  Elfving, Nikazad & Hansen (2010), based on the roots of the polynomials
  g_{j-1}(y) = (2j - 1) y^(j-1) - (y^(j-2) + ... + y + 1).
"""
import abc
import functools
import logging
import warnings
from typing import List, Optional, Union

import numpy as np
from scipy.optimize import brentq

from sirtools.constants import (
    POWER_MAXITER,
    POWER_SEED,
    POWER_TOL,
    PSI_NU,
    RELAXPAR_FLOOR,
    RELAXPAR_SCALE,
    FloatArray,
)
from sirtools.errors import ConfigurationError
from sirtools.operator import Operator
from sirtools.weights import WeightSpec

logger = logging.getLogger(__name__)


def largest_singular_value(
    operator: Operator,
    weights: WeightSpec,
    tol: float = POWER_TOL,
    maxiter: int = POWER_MAXITER,
) -> float:
    """
    Estimate the largest singular value of sqrt(M) A sqrt(D) by power
    iteration on D^(1/2) A' M A D^(1/2).

    Parameters
    ----------
    operator: Operator
    weights: WeightSpec
    tol: float
        Relative change of the singular value estimate at which to stop.
    maxiter: int
        Maximum number of power iterations.

    Returns
    -------
    s1: float
    """
    _, n = operator.shape
    sqrtD = np.sqrt(weights.D)
    v = np.random.default_rng(POWER_SEED).standard_normal(n)
    v /= np.linalg.norm(v)

    estimate = 0.0
    for _ in range(maxiter):
        Av = operator.apply(sqrtD * v)
        t = sqrtD * operator.apply_adjoint(weights.M * Av)
        # Rayleigh quotient: v' D^(1/2) A' M A D^(1/2) v = ||sqrt(M) A sqrt(D) v||^2
        new_estimate = float(np.dot(v, t))
        tnorm = np.linalg.norm(t)
        if tnorm == 0.0:
            return 0.0
        v = t / tnorm
        if abs(new_estimate - estimate) <= tol * new_estimate:
            return float(np.sqrt(new_estimate))
        estimate = new_estimate

    warnings.warn(
        f"Power iteration did not converge after {maxiter} iterations. "
        f"Returning estimate s1 = {np.sqrt(estimate):.6e}"
    )
    return float(np.sqrt(estimate))


@functools.lru_cache(maxsize=None)
def calczeta(j: int) -> float:
    """
    Return the unique root in (0, 1) of

        g_{j-1}(y) = (2j - 1) y^(j-1) - (y^(j-2) + ... + y + 1)

    for j >= 2.
    """
    if j < 2:
        raise ValueError(f"calczeta requires j >= 2, received {j}")
    # Coefficients in increasing order of degree.
    coefficients = np.full(j, -1.0)
    coefficients[-1] = 2 * j - 1
    # g(0) = -1 and g(1) = j, so the root is bracketed.
    return brentq(lambda y: np.polynomial.polynomial.polyval(y, coefficients), 0.0, 1.0)


def clamp(value: float, fallback: float = RELAXPAR_FLOOR) -> float:
    if not np.isfinite(value) or value <= 0.0:
        logger.debug("Relaxation parameter %s replaced by %s", value, fallback)
        return fallback
    return value


class RelaxationPolicy(abc.ABC):
    needs_s1: bool = False

    def reset(self, operator: Operator, weights: WeightSpec, s1: Optional[float]):
        self.operator = operator
        self.weights = weights
        self.s1 = s1
        self.history: List[float] = []

    @abc.abstractmethod
    def compute(self, k: int, r: FloatArray, d: FloatArray) -> float:
        pass

    def __call__(self, k: int, r: FloatArray, d: FloatArray) -> float:
        value = clamp(self.compute(k, r, d))
        self.history.append(value)
        return value

    @property
    def relaxpar(self) -> Union[float, FloatArray]:
        """Relaxation parameter(s) to report after the solve."""
        return np.array(self.history)


class ConstantRelaxation(RelaxationPolicy):
    def __init__(self, value: float):
        value = float(value)
        if not np.isfinite(value) or value <= 0.0:
            raise ConfigurationError(
                f"relaxpar must be a positive finite number, received {value}"
            )
        self.value = value

    def compute(self, k, r, d) -> float:
        return self.value

    @property
    def relaxpar(self) -> float:
        return self.value


class SpectralDefault(RelaxationPolicy):
    """relaxpar = 1.9 / s1**2, computed once."""

    needs_s1 = True

    def reset(self, operator, weights, s1):
        super().reset(operator, weights, s1)
        self.value = clamp(RELAXPAR_SCALE / s1**2) if s1 > 0 else RELAXPAR_FLOOR

    def compute(self, k, r, d) -> float:
        return self.value

    @property
    def relaxpar(self) -> float:
        return self.value


class LineSearch(RelaxationPolicy):
    """
    Choose relaxpar to minimize ||r - relaxpar * A d||, i.e.
    relaxpar = (A d)' r / ||A d||^2.
    """

    def reset(self, operator, weights, s1):
        super().reset(operator, weights, s1)
        self.previous = RELAXPAR_FLOOR

    def compute(self, k, r, d) -> float:
        Ad = self.operator.apply(d)
        denominator = np.dot(Ad, Ad)
        if denominator == 0.0 or not np.isfinite(denominator):
            return self.previous
        value = clamp(np.dot(Ad, r) / denominator, self.previous)
        self.previous = value
        return value


class PsiRelaxation(RelaxationPolicy):
    """
    Psi-based relaxation strategies.

    The first two iterations use sqrt(2) / s1**2. Iteration k >= 3 uses the
    root zeta = calczeta(k - 1):

    * psi1: 2 (1 - zeta) / s1**2
    * psi2: 2 (1 - zeta) / (1 - zeta**(k - 1))**2 / s1**2

    The modified versions multiply the value by nu = 2 but never exceed the
    default 1.9 / s1**2.
    """

    needs_s1 = True
    KINDS = ("psi1", "psi1mod", "psi2", "psi2mod")

    def __init__(self, kind: str):
        if kind not in self.KINDS:
            raise ConfigurationError(f"Unknown psi strategy: {kind}")
        self.kind = kind
        self.modified = kind.endswith("mod")

    def compute(self, k, r, d) -> float:
        s1sq = self.s1**2
        if s1sq == 0.0:
            return RELAXPAR_FLOOR
        if k < 3:
            return np.sqrt(2.0) / s1sq

        j = k - 1
        zeta = calczeta(j)
        value = 2.0 * (1.0 - zeta) / s1sq
        if self.kind.startswith("psi2"):
            value /= (1.0 - zeta**j) ** 2
        if self.modified:
            value = min(PSI_NU * value, RELAXPAR_SCALE / s1sq)
        return value


RELAXATION_METHODS = {
    "line": LineSearch,
    "psi1": functools.partial(PsiRelaxation, "psi1"),
    "psi1mod": functools.partial(PsiRelaxation, "psi1mod"),
    "psi2": functools.partial(PsiRelaxation, "psi2"),
    "psi2mod": functools.partial(PsiRelaxation, "psi2mod"),
}


def resolve_relaxation(relaxpar) -> RelaxationPolicy:
    """Turn the relaxpar option into a policy instance."""
    if relaxpar is None:
        return SpectralDefault()
    if isinstance(relaxpar, RelaxationPolicy):
        return relaxpar
    if isinstance(relaxpar, str):
        try:
            return RELAXATION_METHODS[relaxpar.lower()]()
        except KeyError:
            raise ConfigurationError(
                f"Unknown relaxpar method: {relaxpar}. "
                f"Valid methods are: {', '.join(RELAXATION_METHODS)}"
            ) from None
    if np.ndim(relaxpar) != 0 or isinstance(relaxpar, bool):
        raise ConfigurationError(
            f"relaxpar must be a scalar or a method name, received: {relaxpar!r}"
        )
    try:
        value = float(relaxpar)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"relaxpar must be a scalar or a method name, received: {relaxpar!r}"
        ) from None
    return ConstantRelaxation(value)
