import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[np.float64]
IntArray = npt.NDArray[np.int_]
BoolArray = npt.NDArray[np.bool_]

# Default relaxation parameter is RELAXPAR_SCALE / s1**2.
RELAXPAR_SCALE = 1.9
# Adaptive relaxation parameters never drop below this value.
RELAXPAR_FLOOR = 1.0e-12
# Multiplier of the modified psi strategies.
PSI_NU = 2.0

POWER_TOL = 1.0e-6
POWER_MAXITER = 500
POWER_SEED = 0

# Largest number of columns a matrix-free operator is probed for.
PROBE_LIMIT = 2048

NCP_SMOOTH = 2
