import numpy as np
import pytest

from sirtools.errors import ConfigurationError
from sirtools.operator import MatrixOperator
from sirtools.relaxation import (
    ConstantRelaxation,
    LineSearch,
    PsiRelaxation,
    RelaxationPolicy,
    SpectralDefault,
    calczeta,
    largest_singular_value,
    resolve_relaxation,
)
from sirtools.constants import RELAXPAR_FLOOR
from sirtools.structure import scan_structure
from sirtools.weights import cav_weights


def test_calczeta():
    assert calczeta(2) == pytest.approx(1.0 / 3.0)
    assert calczeta(3) == pytest.approx((1.0 + np.sqrt(21.0)) / 10.0)
    zetas = [calczeta(j) for j in range(2, 60)]
    assert all(0.0 < z < 1.0 for z in zetas)
    assert np.all(np.diff(zetas) > 0)
    with pytest.raises(ValueError):
        calczeta(1)


def test_largest_singular_value():
    rng = np.random.default_rng(3)
    A = rng.random((30, 20))
    op = MatrixOperator(A)
    weights = cav_weights(scan_structure(op))
    expected = np.linalg.norm(np.sqrt(weights.M)[:, np.newaxis] * A, ord=2)
    assert largest_singular_value(op, weights) == pytest.approx(expected, rel=1e-4)


def test_largest_singular_value_zero_operator():
    op = MatrixOperator(np.zeros((3, 2)))
    weights = cav_weights(scan_structure(op))
    assert largest_singular_value(op, weights) == 0.0


def test_resolve_relaxation():
    assert isinstance(resolve_relaxation(None), SpectralDefault)
    assert isinstance(resolve_relaxation("line"), LineSearch)
    policy = resolve_relaxation("PSI2mod")
    assert isinstance(policy, PsiRelaxation)
    assert policy.kind == "psi2mod"
    constant = resolve_relaxation(1.5)
    assert isinstance(constant, ConstantRelaxation)
    assert constant.relaxpar == 1.5
    assert resolve_relaxation(np.float64(0.5)).relaxpar == 0.5


@pytest.mark.parametrize("relaxpar", ["fast", -1.0, 0.0, np.inf, [1.0, 2.0], True])
def test_resolve_relaxation_invalid(relaxpar):
    with pytest.raises(ConfigurationError):
        resolve_relaxation(relaxpar)


def test_spectral_default():
    policy = SpectralDefault()
    policy.reset(None, None, 2.0)
    assert policy(1, None, None) == pytest.approx(1.9 / 4.0)
    assert policy.relaxpar == pytest.approx(1.9 / 4.0)


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("psi1", 4.0 / 3.0),
        ("psi2", (4.0 / 3.0) / (8.0 / 9.0) ** 2),
        ("psi1mod", 1.9),
        ("psi2mod", 1.9),
    ],
)
def test_psi_values(kind, expected):
    policy = PsiRelaxation(kind)
    policy.reset(None, None, 1.0)
    assert policy(1, None, None) == pytest.approx(np.sqrt(2.0))
    assert policy(2, None, None) == pytest.approx(np.sqrt(2.0))
    assert policy(3, None, None) == pytest.approx(expected)
    np.testing.assert_allclose(policy.relaxpar[:2], np.sqrt(2.0))


def test_psi_scales_with_s1():
    policy = PsiRelaxation("psi1")
    policy.reset(None, None, 2.0)
    assert policy(3, None, None) == pytest.approx((4.0 / 3.0) / 4.0)


def test_psi_decreasing():
    policy = PsiRelaxation("psi1")
    policy.reset(None, None, 1.0)
    values = [policy(k, None, None) for k in range(3, 40)]
    assert np.all(np.diff(values) < 0)
    assert min(values) > 0


def test_line_search_minimizes_residual():
    rng = np.random.default_rng(5)
    A = rng.random((8, 5))
    op = MatrixOperator(A)
    r = rng.random(8)
    d = A.T @ r
    policy = LineSearch()
    policy.reset(op, None, None)
    alpha = policy(1, r, d)
    Ad = A @ d

    def residual(a):
        return np.linalg.norm(r - a * Ad)

    assert alpha > 0
    assert residual(alpha) <= residual(alpha * 1.01)
    assert residual(alpha) <= residual(alpha * 0.99)


def test_line_search_zero_direction():
    op = MatrixOperator(np.eye(3))
    policy = LineSearch()
    policy.reset(op, None, None)
    assert policy(1, np.zeros(3), np.zeros(3)) == RELAXPAR_FLOOR


class Negative(RelaxationPolicy):
    def compute(self, k, r, d):
        return -1.0 if k % 2 else np.nan


def test_non_positive_is_clamped():
    policy = Negative()
    policy.reset(None, None, None)
    assert policy(1, None, None) == RELAXPAR_FLOOR
    assert policy(2, None, None) == RELAXPAR_FLOOR
