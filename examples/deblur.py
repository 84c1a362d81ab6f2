# %%

import numpy as np
import matplotlib.pyplot as plt
from scipy import sparse

import sirtools as srt

# %%
# One-dimensional deblurring: a banded Gaussian blurring matrix.

n = 256
bandwidth = 12
sigma = 4.0
t = np.arange(n)
offsets = np.arange(-bandwidth, bandwidth + 1)
kernel = np.exp(-0.5 * (offsets / sigma) ** 2)
kernel /= kernel.sum()
A = sparse.diags(
    [np.full(n - abs(o), k) for o, k in zip(offsets, kernel)],
    offsets,
    format="csr",
)

x_true = np.zeros(n)
x_true[40:90] = 1.0
x_true[120:200] = np.linspace(0.0, 2.0, 80)
x_true[220:230] = 3.0

rng = np.random.default_rng(0)
b_exact = A @ x_true
noise = rng.standard_normal(n)
delta = 0.01 * np.linalg.norm(b_exact)
b = b_exact + delta * noise / np.linalg.norm(noise)

# %%

K = [10, 50, 200, 1000]
X, info, ext_info = srt.cav(A, b, K, options={"verbose": 100})
errors = np.linalg.norm(X - x_true[:, np.newaxis], axis=0) / np.linalg.norm(x_true)
print(info.itersaved, errors)

fig, ax = plt.subplots()
ax.plot(x_true, color="k", label="exact")
for k, x in zip(info.itersaved, X.T):
    ax.plot(x, label=f"k = {k}")
ax.legend()

# %%
# Compare stopping rules.

tau = 1.02
rules = {
    "DP": {"type": "DP", "taudelta": tau * delta},
    "ME": {"type": "ME", "taudelta": tau * delta},
    "NCP": {"type": "NCP", "res_dims": n},
}
for name, stoprule in rules.items():
    X, info, _ = srt.cav(A, b, 5000, options={"stoprule": stoprule})
    error = np.linalg.norm(X[:, -1] - x_true) / np.linalg.norm(x_true)
    print(f"{name}: stopped by rule {info.stoprule} at {info.finaliter}, error {error:.3f}")

# %%
# Relaxation parameter strategies, with non-negativity constraint.

fig, ax = plt.subplots()
for relaxpar in [None, "line", "psi1", "psi1mod", "psi2", "psi2mod"]:
    X, info, _ = srt.cav(
        A, b, list(range(1, 101)), options={"relaxpar": relaxpar, "lbound": 0.0}
    )
    errors = np.linalg.norm(X - x_true[:, np.newaxis], axis=0) / np.linalg.norm(x_true)
    ax.plot(info.itersaved, errors, label=str(relaxpar))
ax.set_xlabel("iteration")
ax.set_ylabel("relative error")
ax.legend()

# %%
# Matrix-free: the same operator as a callback.


def blur(v, transp_flag):
    if v is None:
        return A.shape
    if transp_flag == "transp":
        return A.T @ v
    return A @ v


X_func, info_func, _ = srt.cav(blur, b, 100)
X_csr, info_csr, _ = srt.cav(A, b, 100)
print(np.abs(X_func - X_csr).max(), info_func.relaxpar, info_csr.relaxpar)

# %%
