import unittest
import warnings

import casadi as cs
import numpy as np
from parameterized import parameterized, parameterized_class

import csf1
from csf1 import (
    CasadiDerivatives,
    ConvergenceError,
    DimensionMismatchError,
    ExplicitDerivatives,
    F1Method,
    FactorizationError,
    NewtonSolver,
    ScipyRootSolver,
    SteadyStateSolver,
    Tier,
)
from csf1.util import findiff

X0 = np.array([1.0, 2.0])
P0 = np.array([3.0, 4.0])
EXPECTED_F = 35.56438050824269
EXPECTED_GRAD = np.array([[50.3662, 0.346574]])
EXPECTED_HESS = np.array([[52.989, 0.0], [0.0, -0.0241434]])


def F(x, p):
    return [
        -2 * (p[0] - x[0]) - 4 * p[1] * (x[1] - x[0] ** 2) * x[0],
        p[1] * (x[1] - x[0] ** 2),
    ]


def dFdx(x, p):
    return np.array(
        [
            [2 - 4 * p[1] * x[1] + 12 * p[1] * x[0] ** 2, -4 * p[1] * x[0]],
            [-2 * p[1] * x[0], p[1]],
        ]
    )


def f(x, p):
    return 0.5 * ((x[0] - 1) ** 2 + (x[1] - 1) ** 2) + 0.5 * (
        cs.log(p[0]) ** 2 + cs.log(p[1]) ** 2
    )


def dfdx(x, p):
    return np.asarray(x) - 1


class CountingSolver(NewtonSolver):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0
        self.starts = []

    def solve(self, F, dFdx, x0, tol=None):
        self.calls += 1
        self.starts.append(np.array(x0))
        return super().solve(F, dFdx, x0, tol)


class FailingSolver(SteadyStateSolver):
    def solve(self, F, dFdx, x0, tol=None):
        self.stats = {"success": False, "iterations": 0, "residual": np.inf}
        raise ConvergenceError("solver failed on purpose", self.stats)


class IdentitySolver(SteadyStateSolver):
    """Returns the initial guess as is, whatever the residual."""

    def solve(self, F, dFdx, x0, tol=None):
        return x0


@parameterized_class("sym_type", [("SX",), ("MX",)])
class TestReferenceProblem(unittest.TestCase):
    def get_derivatives(self) -> CasadiDerivatives:
        return CasadiDerivatives(f, F, 2, 2, self.sym_type)

    def test_functional_api__computes_reference_values(self):
        mem = csf1.initialize(X0, P0)
        alg = NewtonSolver()
        derivs = self.get_derivatives()
        f_hat = csf1.objective(f, F, dFdx, mem, P0, alg)
        grad = csf1.gradient(f, F, dfdx, dFdx, mem, P0, alg, derivs)
        hess = csf1.hessian(f, F, dfdx, dFdx, mem, P0, alg, derivs)
        self.assertIsInstance(f_hat, float)
        self.assertAlmostEqual(f_hat, EXPECTED_F, places=10)
        self.assertEqual(grad.shape, (1, 2))
        self.assertEqual(hess.shape, (2, 2))
        np.testing.assert_allclose(grad, EXPECTED_GRAD, atol=1e-3)
        np.testing.assert_allclose(hess, EXPECTED_HESS, atol=1e-3)
        np.testing.assert_allclose(mem.x, [3.0, 9.0], atol=1e-9)

    def test_f1method__computes_reference_values_with_automatic_derivatives(self):
        method = F1Method(f, F, None, None, X0, P0, sym_type=self.sym_type)
        self.assertAlmostEqual(method.objective(P0), EXPECTED_F, places=10)
        np.testing.assert_allclose(method.gradient(P0), EXPECTED_GRAD, atol=1e-3)
        np.testing.assert_allclose(method.hessian(P0), EXPECTED_HESS, atol=1e-3)
        np.testing.assert_allclose(method.state, [3.0, 9.0], atol=1e-9)

    def test_hessian__called_first__computes_all_tiers(self):
        mem = csf1.initialize(X0, P0)
        alg = CountingSolver()
        derivs = self.get_derivatives()
        hess = csf1.hessian(f, F, dfdx, dFdx, mem, P0, alg, derivs)
        np.testing.assert_allclose(hess, EXPECTED_HESS, atol=1e-3)
        self.assertTrue(all(mem.is_valid(t, P0) for t in Tier))
        grad = csf1.gradient(f, F, dfdx, dFdx, mem, P0, alg, derivs)
        np.testing.assert_allclose(grad, EXPECTED_GRAD, atol=1e-3)
        self.assertAlmostEqual(csf1.objective(f, F, dFdx, mem, P0, alg), EXPECTED_F)
        self.assertEqual(alg.calls, 1)


class TestCaching(unittest.TestCase):
    def test_objective__at_same_parameter__hits_cache(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=CountingSolver())
        f1 = method.objective(P0)
        f2 = method.objective(P0.copy())
        self.assertEqual(f1, f2)
        self.assertEqual(method.alg.calls, 1)

    def test_all_entry_points__at_same_parameter__factorize_once(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=CountingSolver())
        method.objective(P0)
        factorization = method.memory.factorization
        g1 = method.gradient(P0)
        h1 = method.hessian(P0)
        g2 = method.gradient(P0)
        h2 = method.hessian(P0)
        self.assertIs(method.memory.factorization, factorization)
        np.testing.assert_array_equal(g1, g2)
        np.testing.assert_array_equal(h1, h2)
        self.assertEqual(method.alg.calls, 1)

    def test_new_parameter__invalidates_all_tiers(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=CountingSolver())
        method.hessian(P0)
        factorization = method.memory.factorization
        p1 = P0 + [0.1, -0.2]
        method.objective(p1)
        self.assertEqual(method.alg.calls, 2)
        self.assertIsNot(method.memory.factorization, factorization)
        self.assertTrue(method.memory.is_valid(Tier.STATE, p1))
        for tier in Tier:
            self.assertFalse(method.memory.is_valid(tier, P0))
        self.assertFalse(method.memory.is_valid(Tier.GRADIENT, p1))
        self.assertFalse(method.memory.is_valid(Tier.HESSIAN, p1))

        method.objective(P0)
        self.assertEqual(method.alg.calls, 3)

    def test_solver__is_warm_started_from_last_converged_state(self):
        alg = CountingSolver()
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=alg)
        method.objective(P0)
        x_p0 = method.state
        method.objective(P0 + 1e-3)
        np.testing.assert_array_equal(alg.starts[0], X0)
        np.testing.assert_array_equal(alg.starts[1], x_p0)

    def test_warm_start__does_not_need_more_iterations_than_cold_start(self):
        p1 = P0 + [1e-3, -1e-3]
        warm = F1Method(f, F, dfdx, dFdx, X0, P0)
        warm.objective(P0)
        warm.objective(p1)
        warm_iterations = warm.alg.stats["iterations"]

        cold = F1Method(f, F, dfdx, dFdx, X0, p1)
        cold.objective(p1)
        cold_iterations = cold.alg.stats["iterations"]

        self.assertLessEqual(warm_iterations, cold_iterations)
        self.assertAlmostEqual(warm.objective(p1), cold.objective(p1), places=10)

    def test_returned_arrays__do_not_alias_the_cache(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0)
        grad = method.gradient(P0)
        hess = method.hessian(P0)
        grad[:] = 0
        hess[:] = 0
        np.testing.assert_allclose(method.gradient(P0), EXPECTED_GRAD, atol=1e-3)
        np.testing.assert_allclose(method.hessian(P0), EXPECTED_HESS, atol=1e-3)

    def test_cache_tolerance__reuses_state_for_close_parameters(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=CountingSolver(), atol=1e-9)
        method.objective(P0)
        method.gradient(P0 + 1e-12)
        self.assertEqual(method.alg.calls, 1)
        method.objective(P0 + 1e-6)
        self.assertEqual(method.alg.calls, 2)


class TestDerivatives(unittest.TestCase):
    def test_gradient__matches_finite_differences(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0)
        for p in (P0, np.array([1.5, 0.7]), np.array([2.2, 10.0])):
            grad = method.gradient(p)
            fd = findiff.gradient(method.objective, p, h=1e-6)
            np.testing.assert_allclose(grad.ravel(), fd, rtol=1e-5, atol=1e-6)

    def test_hessian__matches_finite_differences_of_gradient(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0)
        for p in (P0, np.array([1.5, 0.7])):
            hess = method.hessian(p)
            fd = findiff.jacobian(lambda q: method.gradient(q), p, h=1e-5)
            np.testing.assert_allclose(hess, fd, rtol=1e-4, atol=1e-4)

    @parameterized.expand(
        [(NewtonSolver(linesearch=True),), (ScipyRootSolver(tol=1e-8),)]
    )
    def test_solvers__are_interchangeable(self, alg: SteadyStateSolver):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=alg)
        self.assertAlmostEqual(method.objective(P0), EXPECTED_F, places=6)
        np.testing.assert_allclose(method.gradient(P0), EXPECTED_GRAD, atol=1e-3)

    def test_explicit_derivatives__match_automatic_ones(self):
        explicit = ExplicitDerivatives(
            2,
            2,
            dfdp=lambda x, p: np.log(p) / p,
            dFdp=lambda x, p: [
                [-2, -4 * (x[1] - x[0] ** 2) * x[0]],
                [0, x[1] - x[0] ** 2],
            ],
            d2fdx2=lambda x, p: np.eye(2),
            d2fdp2=lambda x, p: np.diag((1 - np.log(p)) / p**2),
            d2Fdx2=lambda x, p: [
                [[24 * p[1] * x[0], -4 * p[1]], [-4 * p[1], 0]],
                [[-2 * p[1], 0], [0, 0]],
            ],
            d2Fdxdp=lambda x, p: [
                [[0, -4 * x[1] + 12 * x[0] ** 2], [0, -4 * x[0]]],
                [[0, -2 * x[0]], [0, 1]],
            ],
        )
        mem = csf1.initialize(X0, P0)
        alg = NewtonSolver()
        p = np.array([2.5, 1.5])
        grad = csf1.gradient(f, F, dfdx, dFdx, mem, p, alg, explicit)
        hess = csf1.hessian(f, F, dfdx, dFdx, mem, p, alg, explicit)
        auto = F1Method(f, F, dfdx, dFdx, X0, P0)
        np.testing.assert_allclose(grad, auto.gradient(p), rtol=1e-10)
        np.testing.assert_allclose(hess, auto.hessian(p), rtol=1e-10, atol=1e-12)

    def test_hessian__warns__when_not_symmetric(self):
        explicit = ExplicitDerivatives(
            2,
            2,
            dfdp=lambda x, p: np.zeros(2),
            dFdp=lambda x, p: [[-2, 0], [0, 0]],
            d2fdp2=lambda x, p: [[1.0, 2.0], [0.0, 1.0]],
        )
        method = F1Method(f, F, dfdx, dFdx, X0, P0, derivatives=explicit)
        with self.assertWarnsRegex(RuntimeWarning, "Hessian is not symmetric"):
            hess = method.hessian(P0)
        self.assertNotEqual(hess[0, 1], hess[1, 0])  # not symmetrized

    def test_hessian__warns__when_state_hessian_is_not_symmetric(self):
        explicit = ExplicitDerivatives(
            2,
            2,
            dfdp=lambda x, p: np.zeros(2),
            dFdp=lambda x, p: [[-2.0, 0.0], [0.0, 1.0]],
            d2fdx2=lambda x, p: [[1.0, 5.0], [0.0, 1.0]],
        )
        method = F1Method(f, F, dfdx, dFdx, X0, P0, derivatives=explicit)
        with self.assertWarnsRegex(RuntimeWarning, "Hessian is not symmetric"):
            method.hessian(P0)

    def test_hessian__is_symmetric_for_larger_problem(self):
        def F3(x, p):
            return [
                x[0] + 0.1 * x[0] ** 3 - p[0],
                x[1] + 0.1 * x[1] ** 3 - p[1] * x[0],
                x[2] + 0.2 * x[2] ** 3 - p[0] * p[1] + 0.5 * x[1],
            ]

        def f3(x, p):
            return (
                0.5 * (x[0] - 1) ** 2
                + 0.5 * (x[1] - 2) ** 2
                + x[2] * p[0]
                + 0.1 * cs.exp(p[1]) * x[0] * x[2]
            )

        p = np.array([1.5, 0.8])
        method = F1Method(f3, F3, None, None, np.zeros(3), p)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            hess = method.hessian(p)
        self.assertFalse(
            any("Hessian is not symmetric" in str(w.message) for w in caught)
        )
        np.testing.assert_allclose(hess, hess.T, rtol=1e-10, atol=1e-12)
        grad = method.gradient(p)
        np.testing.assert_allclose(
            grad.ravel(),
            findiff.gradient(method.objective, p),
            rtol=1e-5,
            atol=1e-6,
        )
        np.testing.assert_allclose(
            hess,
            findiff.jacobian(method.gradient, p, h=1e-5),
            rtol=1e-4,
            atol=1e-4,
        )
        self.assertEqual(method.memory.S.shape, (3, 2))


class TestErrors(unittest.TestCase):
    @parameterized.expand([("objective",), ("gradient",), ("hessian",)])
    def test_entry_points__raise__with_wrong_parameter_dimension(self, name: str):
        method = F1Method(f, F, dfdx, dFdx, X0, P0, alg=CountingSolver())
        with self.assertRaises(DimensionMismatchError) as cm:
            getattr(method, name)([1.0, 2.0, 3.0])
        self.assertEqual(cm.exception.name, "p")
        self.assertEqual(method.alg.calls, 0)

    def test_objective__raises__with_wrong_state_function_size(self):
        mem = csf1.initialize([1.0, 2.0, 3.0], P0)
        with self.assertRaises(DimensionMismatchError) as cm:
            csf1.objective(f, F, dFdx, mem, P0, NewtonSolver())
        self.assertEqual(cm.exception.name, "F")

    def test_gradient__raises__with_mismatching_derivative_provider(self):
        mem = csf1.initialize(X0, P0)
        derivs = CasadiDerivatives(f, F, 2, 3)
        with self.assertRaises(DimensionMismatchError) as cm:
            csf1.gradient(f, F, dfdx, dFdx, mem, P0, NewtonSolver(), derivs)
        self.assertEqual(cm.exception.name, "derivatives")
        self.assertEqual(cm.exception.expected, (2, 2))

    def test_non_finite_residual__raises_and_leaves_cache_invalid(self):
        def F_log(x, p):
            return np.log(np.asarray(x)) - np.asarray(p)

        def dFdx_log(x, p):
            return np.diag(1 / np.asarray(x))

        mem = csf1.initialize([10.0], [1.0])
        with np.errstate(invalid="ignore"), self.assertRaisesRegex(
            ConvergenceError, "non-finite residual"
        ):
            csf1.objective(
                lambda x, p: x[0], F_log, dFdx_log, mem, [1.0], NewtonSolver()
            )
        self.assertFalse(mem.is_valid(Tier.STATE, [1.0]))
        self.assertIsNone(mem.factorization)
        np.testing.assert_array_equal(mem.x, [10.0])

    def test_convergence_failure__leaves_cache_untouched(self):
        method = F1Method(f, F, dfdx, dFdx, X0, P0)
        method.gradient(P0)
        x = method.state
        factorization = method.memory.factorization
        lam = method.memory.lam
        method.alg = FailingSolver()
        p1 = P0 * 2
        with self.assertRaisesRegex(ConvergenceError, "on purpose") as cm:
            method.hessian(p1)
        self.assertFalse(cm.exception.stats["success"])
        np.testing.assert_array_equal(method.state, x)
        self.assertIs(method.memory.factorization, factorization)
        self.assertIs(method.memory.lam, lam)
        for tier in Tier:
            self.assertFalse(method.memory.is_valid(tier, p1))

        # the last converged state is still used as warm start
        method.alg = CountingSolver()
        method.objective(P0)
        np.testing.assert_array_equal(method.alg.starts[0], x)

    def test_singular_jacobian__raises_factorization_error(self):
        def F_lin(x, p):
            return np.asarray(x) - np.asarray(p)

        def dFdx_singular(x, p):
            return np.ones((2, 2))

        mem = csf1.initialize(P0, P0)
        with self.assertRaises(FactorizationError):
            csf1.objective(f, F_lin, dFdx_singular, mem, P0, NewtonSolver())
        self.assertFalse(mem.is_valid(Tier.STATE, P0))
        self.assertIsNone(mem.factorization)

    def test_ill_conditioned_jacobian__raises_factorization_error_in_gradient(self):
        def dFdx_ill(x, p):
            return np.array([[1.0, 1.0], [1.0, 1.0 + 1e-18]])

        mem = csf1.initialize(X0, P0)
        with self.assertRaises(FactorizationError):
            csf1.gradient(f, F, dfdx, dFdx_ill, mem, P0, IdentitySolver())

    def test_f1method__raises__with_explicit_derivatives_but_no_state_derivatives(
        self,
    ):
        explicit = ExplicitDerivatives(
            2, 2, dfdp=lambda x, p: np.zeros(2), dFdp=lambda x, p: np.zeros((2, 2))
        )
        with self.assertRaisesRegex(ValueError, "must be given"):
            F1Method(f, F, None, dFdx, X0, P0, derivatives=explicit)


if __name__ == "__main__":
    unittest.main()
