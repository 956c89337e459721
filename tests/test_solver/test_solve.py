# Copyright (c) 2024 Yilin Zou
import itertools

import numpy as np
import pytest

from movcol import (
    IntegrationError,
    PreconditionError,
    Problem,
    Snapshot,
    movcol_iterate,
    movcol_solve,
)
from movcol.solver import check_discretization, pack, unpack

OPTIONS = {"reltol": 1e-6, "abstol": 1e-6}


def advection(**kwargs):
    # u_t + u_x = 0 with the exact solution u = x - t
    options = dict(
        xspan=(0.0, 1.0),
        nu=1,
        u0=lambda x: [x, 1.0],
        F=lambda t, x, u, ut: ut[0],
        G=lambda t, x, u, ut: -u[0],
        Bl=lambda t, x, xt, u, ut: u[0, 0] - (x - t),
        Br=lambda t, x, xt, u, ut: u[1, 0] - 1.0,
    )
    options.update(kwargs)
    return Problem(**options)


def heat(**kwargs):
    # u_t = u_xx with the exact solution u = x^2 + 2t
    options = dict(
        xspan=(0.0, 1.0),
        nu=1,
        u0=lambda x: [x**2, 2 * x],
        F=lambda t, x, u, ut: ut[0],
        G=lambda t, x, u, ut: u[1],
        Bl=lambda t, x, xt, u, ut: u[0, 0] - 2 * t,
        Br=lambda t, x, xt, u, ut: u[1, 0] - 2.0,
    )
    options.update(kwargs)
    return Problem(**options)


@pytest.mark.parametrize("nx, nd", [(5, 3), (5, 0), (5, -2), (1, 2), (0, 2)])
def test_check_discretization(nx, nd):
    with pytest.raises(PreconditionError):
        check_discretization(nx, nd)
    with pytest.raises(PreconditionError):
        movcol_solve(advection(), nx, nd)


def test_precondition_is_a_value_error():
    with pytest.raises(ValueError):
        next(movcol_iterate(advection(), 5, 3))


def test_t_end_before_t0():
    with pytest.raises(PreconditionError):
        movcol_solve(advection(t0=1.0), 5, 2, t_end=0.5)


def test_pack_unpack():
    nd, nu, nx = 2, 3, 4
    x = np.linspace(0.0, 1.0, nx)
    u = np.arange(nd * nu * nx, dtype=np.float64).reshape((nd, nu, nx))
    y = pack(x, u)
    assert y.shape == (nx + nd * nu * nx,)
    assert np.array_equal(y[:nx], x)
    # data of the first mesh point comes first
    assert np.array_equal(y[nx : nx + nd * nu], u[:, :, 0].ravel(order="F"))
    x_, u_ = unpack(y, nd, nu, nx)
    assert np.array_equal(x_, x)
    assert np.array_equal(u_, u)


def test_advection():
    s = movcol_solve(advection(), 5, 2, integrator_options=OPTIONS)
    assert s.t == 1.0
    assert np.allclose(s.x, np.linspace(0.0, 1.0, 5))
    assert np.allclose(s.u[0, 0], s.x - 1.0, atol=1e-5)
    assert np.allclose(s.u[1, 0], 1.0, atol=1e-5)
    assert np.allclose(s.ut[0, 0], -1.0, atol=1e-3)
    assert np.allclose(s.xt, 0.0, atol=1e-4)


def test_advection_sine():
    # u = sin(x - t) is not reproduced exactly by the cubic elements
    p = advection(
        u0=lambda x: [np.sin(x), np.cos(x)],
        Bl=lambda t, x, xt, u, ut: u[0, 0] - np.sin(x - t),
        Br=lambda t, x, xt, u, ut: u[1, 0] - np.cos(x - t),
    )
    s = movcol_solve(p, 5, 2, integrator_options=OPTIONS)
    assert s.t == 1.0
    assert np.allclose(s.u[0, 0], np.sin(s.x - 1.0), atol=1e-3)
    assert np.allclose(s.u[1, 0], np.cos(s.x - 1.0), atol=1e-2)
    assert not np.allclose(s.u[0, 0], np.sin(s.x - 1.0), atol=1e-8)


def test_heat():
    s = movcol_solve(heat(), 5, 2, integrator_options=OPTIONS)
    assert s.t == 1.0
    assert np.allclose(s.u[0, 0], s.x**2 + 2.0, atol=1e-5)
    assert np.allclose(s.u[1, 0], 2 * s.x, atol=1e-5)


def test_heat_nd4():
    p = heat(
        u0=lambda x: [x**2, 2 * x, 2.0, 0.0],
        Bl=lambda t, x, xt, u, ut: [u[0, 0] - 2 * t, u[2, 0] - 2.0],
        Br=lambda t, x, xt, u, ut: [u[1, 0] - 2.0, u[3, 0]],
    )
    s = movcol_solve(p, 4, 4, t_end=0.5, integrator_options=OPTIONS)
    assert s.u.shape == (4, 1, 4)
    assert np.allclose(s.u[0, 0], s.x**2 + 1.0, atol=1e-5)
    assert np.allclose(s.u[2, 0], 2.0, atol=1e-5)


def test_t_end():
    p = advection(t0=0.25, u0=lambda x: [x - 0.25, 1.0])
    s = movcol_solve(p, 5, 2, t_end=0.5, integrator_options=OPTIONS)
    assert s.t == 0.5
    assert np.allclose(s.u[0, 0], s.x - 0.5, atol=1e-5)


def test_moving_mesh():
    def monitor(t, x, u):
        return 1 + 5 * t * x

    p = heat(M=monitor, tau=0.01, gamma=1.0)
    s = movcol_solve(p, 6, 2, integrator_options={"reltol": 1e-5, "abstol": 1e-5})
    assert s.t == 1.0
    assert np.isclose(s.x[0], 0.0)
    assert np.isclose(s.x[-1], 1.0)
    assert np.all(np.diff(s.x) > 0)
    assert not np.allclose(s.x, np.linspace(0.0, 1.0, 6), atol=1e-2)
    assert np.allclose(s.u[0, 0], s.x**2 + 2.0, atol=1e-3)
    assert np.allclose(s.u[1, 0], 2 * s.x, atol=1e-3)


def test_iterate():
    snapshots = list(
        movcol_iterate(advection(), 5, 2, t_end=0.3, integrator_options=OPTIONS)
    )
    times = [s.t for s in snapshots]
    assert times[-1] == 0.3
    assert all(t1 < t2 for t1, t2 in zip(times, times[1:]))
    for s in snapshots:
        assert isinstance(s, Snapshot)
        assert np.allclose(s.u[0, 0], s.x - s.t, atol=1e-5)


def test_iterate_without_end():
    snapshots = list(itertools.islice(movcol_iterate(advection(), 5, 2), 5))
    assert len(snapshots) == 5
    assert snapshots[0].t > 0.0


def test_snapshot_readonly():
    s = next(movcol_iterate(advection(), 3, 2))
    assert s.x.shape == (3,)
    assert s.u.shape == (2, 1, 3)
    assert s.ut.shape == (2, 1, 3)
    with pytest.raises(ValueError):
        s.u[0, 0, 0] = 1.0
    with pytest.raises(ValueError):
        s.x[0] = 1.0
    with pytest.raises(AttributeError):
        s.t = 2.0


def test_snapshot_copies():
    y = np.zeros(3 + 2 * 3)
    s = Snapshot(0.5, y, y, 2, 1, 3)
    y[0] = 1.0
    assert s.y[0] == 0.0
    assert s.t == 0.5


def test_integration_error():
    with pytest.raises(IntegrationError):
        movcol_solve(advection(), 5, 2, integrator_options={"max_steps": 2})
