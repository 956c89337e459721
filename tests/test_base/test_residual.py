# Copyright (c) 2024 Yilin Zou
import numpy as np
import pytest

from movcol.base.collocation import CollocationData
from movcol.base.exceptions import CallbackSizeError, PreconditionError
from movcol.base.problem import Problem
from movcol.base.residual import compute_resu, compute_resx


def heat_bl(t, x, xt, u, ut):
    res = [u[0, 0] - 2 * t]
    if len(u) > 2:
        res.append(u[2, 0] - 2.0)
    return res


def heat_br(t, x, xt, u, ut):
    res = [u[1, 0] - 2 * x]
    if len(u) > 2:
        res.append(u[3, 0])
    return res


def heat_problem(**kwargs):
    # u_t = u_xx with the exact solution u = x^2 + 2t
    options = dict(
        xspan=(0.0, 1.0),
        nu=1,
        u0=lambda x: [x**2, 2 * x, 2.0, 0.0],
        F=lambda t, x, u, ut: ut[0],
        G=lambda t, x, u, ut: u[1],
        Bl=heat_bl,
        Br=heat_br,
    )
    options.update(kwargs)
    return Problem(**options)


def heat_state(nd, t, x, xt):
    """Exact derivatives and their rates along the mesh points."""
    nx = len(x)
    u = np.zeros((nd, 1, nx))
    ut = np.zeros((nd, 1, nx))
    u[0, 0] = x**2 + 2 * t
    u[1, 0] = 2 * x
    ut[0, 0] = 2 + xt * 2 * x
    ut[1, 0] = 2 * xt
    if nd > 2:
        u[2, 0] = 2.0
    return u, ut


class TestResu:
    @pytest.mark.parametrize("nd", [2, 4])
    @pytest.mark.parametrize("nx", [3, 6])
    def test_heat_exact(self, nd, nx):
        # the mesh need not be uniform nor at rest
        x = np.linspace(0.0, 1.0, nx) ** 1.5
        xt = 0.3 * np.sin(np.arange(nx))
        t = 0.25
        u, ut = heat_state(nd, t, x, xt)
        resu = compute_resu(heat_problem(), CollocationData(nd), t, x, xt, u, ut)
        assert resu.shape == (1, nd, nx)
        assert np.allclose(resu, 0.0)

    def test_wrong_solution(self):
        x = np.linspace(0.0, 1.0, 4)
        xt = np.zeros(4)
        u, ut = heat_state(2, 0.0, x, xt)
        # u = x^2 does not solve u_t = u_xx at rest
        ut[:] = 0.0
        resu = compute_resu(heat_problem(), CollocationData(2), 0.0, x, xt, u, ut)
        assert np.allclose(resu[:, :, :-1], -2.0)

    def test_boundary_slots(self):
        p = heat_problem(
            Bl=lambda t, x, xt, u, ut: [1.0, 2.0, 3.0],
            Br=lambda t, x, xt, u, ut: [10.0, 20.0],
        )
        x = np.linspace(0.0, 1.0, 3)
        xt = np.zeros(3)
        u, ut = heat_state(4, 0.0, x, xt)
        resu = compute_resu(p, CollocationData(4), 0.0, x, xt, u, ut)
        assert np.allclose(resu[0, :, -1], [1.0, 2.0, 10.0, 20.0])

    def test_two_functions(self):
        # u_0 = x^2 + 2t solves the heat equation, u_1 = x - t advection
        p = Problem(
            (0.0, 1.0),
            2,
            lambda x: [[x**2, x], [2 * x, 1.0]],
            lambda t, x, u, ut: ut[0],
            lambda t, x, u, ut: [u[1, 0], -u[0, 1]],
            lambda t, x, xt, u, ut: [u[0, 0] - 2 * t, u[0, 1] + t],
            lambda t, x, xt, u, ut: [u[1, 0] - 2, u[1, 1] - 1],
        )
        t = 0.5
        x = np.array([0.0, 0.2, 0.7, 1.0])
        xt = np.array([0.0, 0.4, -0.2, 0.0])
        u_heat, ut_heat = heat_state(2, t, x, xt)
        u = np.zeros((2, 2, 4))
        ut = np.zeros((2, 2, 4))
        u[:, 0] = u_heat[:, 0]
        ut[:, 0] = ut_heat[:, 0]
        u[0, 1] = x - t
        u[1, 1] = 1.0
        ut[0, 1] = -1.0 + xt
        resu = compute_resu(p, CollocationData(2), t, x, xt, u, ut)
        assert resu.shape == (2, 2, 4)
        assert np.allclose(resu, 0.0)

    def test_callback_size(self):
        x = np.linspace(0.0, 1.0, 3)
        xt = np.zeros(3)
        u, ut = heat_state(2, 0.0, x, xt)
        d = CollocationData(2)
        p = heat_problem(F=lambda t, x, u, ut: [ut[0, 0], 0.0])
        with pytest.raises(CallbackSizeError):
            compute_resu(p, d, 0.0, x, xt, u, ut)
        p = heat_problem(Br=lambda t, x, xt, u, ut: [])
        with pytest.raises(CallbackSizeError):
            compute_resu(p, d, 0.0, x, xt, u, ut)

    def test_shape_mismatch(self):
        x = np.linspace(0.0, 1.0, 3)
        u, ut = heat_state(2, 0.0, x, np.zeros(3))
        with pytest.raises(PreconditionError):
            compute_resu(heat_problem(), CollocationData(4), 0.0, x, np.zeros(3), u, ut)


def reference_resx(problem, t, x, xt, M_half):
    # straightforward loop over the mesh points
    nx = len(x)
    g = problem.gamma * (problem.gamma + 1)
    Y = [0.0] * (nx + 1)
    for k in range(1, nx):
        h = x[k] - x[k - 1]
        ht = xt[k] - xt[k - 1]
        Y[k] = 1 / h - problem.tau * ht / h**2
    Y[0] = Y[1]
    Y[nx] = Y[nx - 1]
    Z = [Y[k] - g * (Y[k + 1] - 2 * Y[k] + Y[k - 1]) for k in range(1, nx)]
    res = [0.0] * nx
    for i in range(1, nx - 1):
        res[i] = Z[i] / M_half[i] - Z[i - 1] / M_half[i - 1]
    return np.array(res[1:-1])


class TestResx:
    def test_uniform(self):
        nx = 6
        x = np.linspace(0.0, 1.0, nx)
        xt = np.zeros(nx)
        u, ut = heat_state(2, 0.0, x, xt)
        resx = compute_resx(heat_problem(), CollocationData(2), 0.0, x, xt, u, ut)
        assert resx.shape == (nx,)
        assert np.allclose(resx, 0.0)

    def test_uniform_stretch(self):
        nx = 5
        c = 0.7
        x = np.linspace(0.0, 2.0, nx)
        xt = c * x
        u, ut = heat_state(2, 0.0, x, xt)
        p = heat_problem(xspan=(0.0, 2.0), tau=0.3, gamma=2.0)
        resx = compute_resx(p, CollocationData(2), 0.0, x, xt, u, ut)
        assert np.allclose(resx[1:-1], 0.0)
        assert resx[0] == 0.0
        assert np.isclose(resx[-1], c * 2.0)

    @pytest.mark.parametrize("nd", [2, 4])
    def test_reference(self, nd):
        t = 0.1
        x = np.array([0.0, 0.05, 0.2, 0.3, 0.6, 0.75, 1.0])
        xt = np.array([0.0, 0.1, -0.3, 0.2, 0.0, 0.5, 0.0])

        def M(t, x, u):
            return 1 + x + u[0, 0] ** 2

        p = heat_problem(M=M, tau=0.1, gamma=1.0)
        u, ut = heat_state(nd, t, x, xt)
        resx = compute_resx(p, CollocationData(nd), t, x, xt, u, ut)

        nx = len(x)
        M_half = []
        for k in range(nx - 1):
            if k == 0 or k == nx - 2:
                M_half.append((M(t, x[k], u[:, :, k]) + M(t, x[k + 1], u[:, :, k + 1])) / 2)
            else:
                xm = (x[k] + x[k + 1]) / 2
                M_half.append(1 + xm + (xm**2 + 2 * t) ** 2)
        assert np.allclose(resx[1:-1], reference_resx(p, t, x, xt, M_half))

    def test_mesh_boundary(self):
        p = heat_problem(
            Bxl=lambda t, x, xt, u, ut: x - t,
            Bxr=lambda t, x, xt, u, ut: [xt + u[0, 0]],
        )
        x = np.linspace(0.0, 1.0, 4)
        xt = np.array([0.0, 0.0, 0.0, 0.5])
        u, ut = heat_state(2, 0.25, x, xt)
        resx = compute_resx(p, CollocationData(2), 0.25, x, xt, u, ut)
        assert np.isclose(resx[0], -0.25)
        assert np.isclose(resx[-1], 0.5 + 1.0 + 0.5)

    def test_two_points(self):
        x = np.array([0.0, 1.0])
        xt = np.array([0.2, -0.1])
        u, ut = heat_state(2, 0.0, x, xt)
        resx = compute_resx(heat_problem(), CollocationData(2), 0.0, x, xt, u, ut)
        assert np.allclose(resx, [0.2, -0.1])

    def test_monitor_size(self):
        x = np.linspace(0.0, 1.0, 4)
        u, ut = heat_state(2, 0.0, x, np.zeros(4))
        p = heat_problem(M=lambda t, x, u: [1.0, 1.0])
        with pytest.raises(CallbackSizeError):
            compute_resx(p, CollocationData(2), 0.0, x, np.zeros(4), u, ut)

    def test_shape_mismatch(self):
        x = np.linspace(0.0, 1.0, 3)
        u, ut = heat_state(4, 0.0, x, np.zeros(3))
        with pytest.raises(PreconditionError):
            compute_resx(heat_problem(), CollocationData(2), 0.0, x, np.zeros(3), u, ut)
