__version__ = "0.0.1"

from sirtools.errors import ConfigurationError, OperatorError

from sirtools.operator import (
    Operator,
    MatrixOperator,
    CallbackOperator,
    LinearOperatorAdapter,
    as_operator,
)

from sirtools.structure import StructureStats, scan_structure

from sirtools.weights import WeightSpec, cav_weights

from sirtools.relaxation import (
    ConstantRelaxation,
    SpectralDefault,
    LineSearch,
    PsiRelaxation,
    resolve_relaxation,
    largest_singular_value,
    calczeta,
)

from sirtools.box import BoxConstraint

from sirtools.stoprule import (
    NoStop,
    DiscrepancyPrinciple,
    MonotoneError,
    NormalizedCumulativePeriodogram,
    resolve_stoprule,
)

from sirtools.progress import PrintProgress, WaitbarProgress, CompositeProgress

from sirtools.options import SolverOptions

from sirtools.sirt import (
    SIRTIterable,
    SIRTSolver,
    IterateStore,
    SolveInfo,
    ExtInfo,
    SolveResult,
    solve,
)

from sirtools.cav import cav


__all__ = (
    "ConfigurationError",
    "OperatorError",
    "Operator",
    "MatrixOperator",
    "CallbackOperator",
    "LinearOperatorAdapter",
    "as_operator",
    "StructureStats",
    "scan_structure",
    "WeightSpec",
    "cav_weights",
    "ConstantRelaxation",
    "SpectralDefault",
    "LineSearch",
    "PsiRelaxation",
    "resolve_relaxation",
    "largest_singular_value",
    "calczeta",
    "BoxConstraint",
    "NoStop",
    "DiscrepancyPrinciple",
    "MonotoneError",
    "NormalizedCumulativePeriodogram",
    "resolve_stoprule",
    "PrintProgress",
    "WaitbarProgress",
    "CompositeProgress",
    "SolverOptions",
    "SIRTIterable",
    "SIRTSolver",
    "IterateStore",
    "SolveInfo",
    "ExtInfo",
    "SolveResult",
    "solve",
    "cav",
)
