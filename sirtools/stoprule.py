"""
Stopping rules.

Each rule is evaluated once per completed iteration with the residual of the
new iterate. A rule either lets the iteration continue, accepts the current
iterate, or accepts the previous iterate (when the optimum can only be
recognized one iteration later).

Codes: 0 = maximum number of iterations, 1 = NCP, 2 = DP, 3 = ME.
"""
import abc
import enum
from collections import deque
from dataclasses import dataclass, field
from typing import ClassVar, Deque, Optional, Sequence, Tuple, Union

import numpy as np

from sirtools.constants import NCP_SMOOTH, FloatArray
from sirtools.errors import ConfigurationError


class Decision(enum.Enum):
    CONTINUE = 0
    STOP = 1
    STOP_PREVIOUS = 2


class StopRule(abc.ABC):
    code: ClassVar[int]
    # Whether the rule may accept the previous iterate.
    keeps_previous: ClassVar[bool] = False

    def reset(self, m: int) -> None:
        return

    @abc.abstractmethod
    def update(self, k: int, r: FloatArray) -> Decision:
        pass


@dataclass
class NoStop(StopRule):
    code: ClassVar[int] = 0

    def update(self, k, r) -> Decision:
        return Decision.CONTINUE


def _check_taudelta(taudelta, name: str) -> float:
    if taudelta is None:
        raise ConfigurationError(f"stoprule {name} requires taudelta")
    try:
        taudelta = float(taudelta)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"taudelta must be a scalar, received: {taudelta!r}"
        ) from None
    if not np.isfinite(taudelta) or taudelta < 0:
        raise ConfigurationError(f"taudelta must be non-negative, received {taudelta}")
    return taudelta


@dataclass
class DiscrepancyPrinciple(StopRule):
    """Stop at the first iterate with ||r_k|| <= taudelta."""

    taudelta: Optional[float] = None
    code: ClassVar[int] = 2

    def __post_init__(self):
        self.taudelta = _check_taudelta(self.taudelta, "DP")

    def update(self, k, r) -> Decision:
        if np.linalg.norm(r) <= self.taudelta:
            return Decision.STOP
        return Decision.CONTINUE


@dataclass
class MonotoneError(StopRule):
    """
    Monotone error rule: the error decreases monotonically as long as

        (r_{k-1} + r_k)' r_{k-1} / (2 ||r_{k-1}||) > taudelta

    The first iterate for which this fails to hold is x_{k-1}.
    """

    taudelta: Optional[float] = None
    code: ClassVar[int] = 3
    keeps_previous: ClassVar[bool] = True
    _previous: Optional[FloatArray] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.taudelta = _check_taudelta(self.taudelta, "ME")

    def reset(self, m):
        self._previous = None

    def update(self, k, r) -> Decision:
        previous = self._previous
        if previous is None:
            self._previous = r.copy()
            return Decision.CONTINUE

        norm = np.linalg.norm(previous)
        if norm == 0.0:
            return Decision.STOP_PREVIOUS
        proxy = np.dot(previous + r, previous) / (2.0 * norm)
        if proxy <= self.taudelta:
            return Decision.STOP_PREVIOUS
        np.copyto(previous, r)
        return Decision.CONTINUE


def whiteness_distance(r: FloatArray, res_dims: Tuple[int, ...]) -> float:
    """
    Distance between the normalized cumulative periodogram of the residual
    and the straight line of white noise.

    The residual is reshaped column-major to ``res_dims``; the periodogram is
    computed along the first axis and averaged over the remaining ones.
    """
    R = r.reshape(res_dims, order="F")
    R = R.reshape(R.shape[0], -1, order="F")
    power = np.abs(np.fft.rfft(R, axis=0)[1:]) ** 2
    q = power.shape[0]
    white = np.arange(1, q + 1) / q

    total = power.sum(axis=0)
    cumulative = np.cumsum(power, axis=0)
    c = np.empty_like(cumulative)
    c[:] = white[:, np.newaxis]
    np.divide(cumulative, total, out=c, where=total > 0)
    return float(np.linalg.norm(white - c.mean(axis=1)))


@dataclass
class NormalizedCumulativePeriodogram(StopRule):
    """
    Stop at the first local minimum of the (smoothed) distance between the
    residual's cumulative periodogram and that of white noise.

    The distances of the last ``smooth`` iterations are averaged.
    """

    res_dims: Union[int, Sequence[int], None] = None
    smooth: int = NCP_SMOOTH
    code: ClassVar[int] = 1
    keeps_previous: ClassVar[bool] = True

    def __post_init__(self):
        if self.res_dims is None:
            raise ConfigurationError("stoprule NCP requires res_dims")
        raw = np.atleast_1d(self.res_dims)
        if raw.dtype == bool or not np.issubdtype(raw.dtype, np.number):
            raise ConfigurationError(f"Invalid res_dims: {self.res_dims!r}")
        if not np.all(np.isfinite(raw)) or np.any(raw != np.round(raw)):
            raise ConfigurationError(
                f"res_dims must contain integers, received {self.res_dims!r}"
            )
        dims = tuple(int(d) for d in raw)
        if len(dims) == 0 or any(d < 1 for d in dims):
            raise ConfigurationError(f"Invalid res_dims: {self.res_dims!r}")
        if dims[0] < 2:
            raise ConfigurationError(
                f"First dimension of res_dims must be at least 2, received {dims[0]}"
            )
        self.res_dims = dims
        try:
            smooth = int(self.smooth)
        except (TypeError, ValueError):
            smooth = 0
        if smooth != self.smooth or smooth < 1:
            raise ConfigurationError(
                f"ncp_smooth must be a positive integer, received {self.smooth!r}"
            )
        self.smooth = smooth

    def reset(self, m):
        size = int(np.prod(self.res_dims))
        if size != m:
            raise ConfigurationError(
                f"res_dims {self.res_dims} holds {size} elements, residual has {m}"
            )
        self.distances: Deque[float] = deque(maxlen=self.smooth)
        self.previous: Optional[float] = None
        self.decreased = False

    def update(self, k, r) -> Decision:
        self.distances.append(whiteness_distance(r, self.res_dims))
        if len(self.distances) < self.smooth:
            return Decision.CONTINUE

        smoothed = sum(self.distances) / self.smooth
        previous = self.previous
        self.previous = smoothed
        if previous is None:
            return Decision.CONTINUE
        if smoothed > previous and self.decreased:
            return Decision.STOP_PREVIOUS
        if smoothed < previous:
            self.decreased = True
        return Decision.CONTINUE


STOP_RULES = {
    "none": NoStop,
    "ncp": NormalizedCumulativePeriodogram,
    "dp": DiscrepancyPrinciple,
    "me": MonotoneError,
}


def resolve_stoprule(stoprule) -> StopRule:
    """
    Turn the stoprule option into a rule instance.

    Accepts None, a StopRule, or a mapping with a ``type`` entry and the
    parameters ``taudelta``, ``res_dims`` and ``ncp_smooth``.
    """
    if stoprule is None:
        return NoStop()
    if isinstance(stoprule, StopRule):
        return stoprule
    if not hasattr(stoprule, "get"):
        raise ConfigurationError(
            f"stoprule must be a StopRule or a mapping, received: {type(stoprule)}"
        )

    known = {"type", "taudelta", "res_dims", "ncp_smooth"}
    unknown = set(stoprule) - known
    if unknown:
        raise ConfigurationError(f"Unknown stoprule fields: {sorted(unknown)}")

    kind = str(stoprule.get("type", "none")).lower()
    if kind == "none":
        return NoStop()
    elif kind == "dp":
        return DiscrepancyPrinciple(stoprule.get("taudelta"))
    elif kind == "me":
        return MonotoneError(stoprule.get("taudelta"))
    elif kind == "ncp":
        smooth = stoprule.get("ncp_smooth")
        return NormalizedCumulativePeriodogram(
            stoprule.get("res_dims"), NCP_SMOOTH if smooth is None else smooth
        )
    raise ConfigurationError(
        f"Unknown stoprule type: {stoprule.get('type')}. "
        "Valid types are: none, NCP, DP, ME"
    )
