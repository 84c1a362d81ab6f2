from dataclasses import dataclass, fields
from typing import Any, Optional

import numpy as np

from sirtools.errors import ConfigurationError
from sirtools.structure import StructureStats


@dataclass
class SolverOptions:
    """
    Options of the SIRT solvers.

    Parameters
    ----------
    relaxpar: float or str, optional
        Constant relaxation parameter, or one of "line", "psi1", "psi1mod",
        "psi2", "psi2mod". Default: 1.9 / s1**2.
    stoprule: StopRule or mapping, optional
        Mapping with "type" ("none", "NCP", "DP" or "ME") and "taudelta",
        "res_dims", "ncp_smooth" as required by the type.
    lbound, ubound: float or array, optional
        Box constraint on the iterates.
    s1: float, optional
        Largest singular value of sqrt(M) A; estimated when required.
    w: array, optional
        Row weights, length m.
    structure: StructureStats, optional
        Column nonzero counts and weighted row norms of a matrix-free A.
    verbose: int
        0: silent. 1: print every iteration. Larger: print every verbose'th
        iteration, and the first and last.
    waitbar: bool
        Show a progress bar.
    """

    relaxpar: Any = None
    stoprule: Any = None
    lbound: Any = None
    ubound: Any = None
    s1: Optional[float] = None
    w: Any = None
    structure: Optional[StructureStats] = None
    verbose: int = 0
    waitbar: bool = False

    def __post_init__(self):
        if self.s1 is not None:
            try:
                self.s1 = float(self.s1)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"s1 must be a scalar, received: {self.s1!r}"
                ) from None
            if not np.isfinite(self.s1) or self.s1 <= 0:
                raise ConfigurationError(f"s1 must be positive, received {self.s1}")
        try:
            verbose = int(self.verbose)
        except (TypeError, ValueError):
            verbose = -1
        if isinstance(self.verbose, bool) or verbose != self.verbose or verbose < 0:
            raise ConfigurationError(
                f"verbose must be a non-negative integer, received {self.verbose!r}"
            )
        self.verbose = verbose
        if self.structure is not None and not isinstance(
            self.structure, StructureStats
        ):
            self.structure = StructureStats(*self.structure)
        self.waitbar = bool(self.waitbar)

    @classmethod
    def from_any(cls, options) -> "SolverOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not hasattr(options, "items"):
            raise ConfigurationError(
                f"options must be a SolverOptions or a mapping, received: {type(options)}"
            )
        valid = {f.name for f in fields(cls)}
        unknown = set(options) - valid
        if unknown:
            raise ConfigurationError(f"Unknown options: {sorted(unknown)}")
        return cls(**options)
