from typing import Optional, Union

import numpy as np

from sirtools.constants import FloatArray
from sirtools.errors import ConfigurationError

Bound = Union[None, float, FloatArray]


def _as_bound(value: Bound, n: int, name: str) -> Optional[Union[float, FloatArray]]:
    if value is None:
        return None
    value = np.asarray(value, dtype=np.float64)
    if value.size == 0:
        return None
    if value.size == 1:
        return float(value.ravel()[0])
    value = value.ravel()
    if value.size != n:
        raise ConfigurationError(f"{name} has length {value.size}, expected {n}")
    return value


class BoxConstraint:
    """
    Elementwise clamp of the iterate into [lower, upper].

    Either bound may be absent, a scalar applied to all elements, or a
    vector of length n. +/- inf are allowed.
    """

    def __init__(self, lower: Bound = None, upper: Bound = None):
        self.lower = lower
        self.upper = upper

    @classmethod
    def from_bounds(cls, lower: Bound, upper: Bound, n: int) -> "BoxConstraint":
        lower = _as_bound(lower, n, "lbound")
        upper = _as_bound(upper, n, "ubound")
        if lower is not None and upper is not None:
            if np.any(np.asarray(lower) > np.asarray(upper)):
                raise ConfigurationError("lbound must not exceed ubound")
        return cls(lower, upper)

    @property
    def active(self) -> bool:
        return self.lower is not None or self.upper is not None

    def project(self, x: FloatArray) -> FloatArray:
        """Clamp x in-place and return it."""
        if self.lower is not None:
            np.maximum(x, self.lower, out=x)
        if self.upper is not None:
            np.minimum(x, self.upper, out=x)
        return x

    def __repr__(self) -> str:
        return f"BoxConstraint(lower={self.lower!r}, upper={self.upper!r})"
