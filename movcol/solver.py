# Copyright (c) 2024 Yilin Zou
import logging
from typing import Iterator, Optional

from movcol.base.collocation import CollocationData, collocation_data
from movcol.base.exceptions import ConvergenceError, IntegrationError, PreconditionError
from movcol.base.problem import Problem, fixed_mesh_ends, initial_solution
from movcol.base.residual import compute_resu, compute_resx
from movcol.base.vectypes import *
from movcol.integrator import dae_iterator

logger = logging.getLogger(__name__)


def check_discretization(nx: int, nd: int) -> None:
    """Check the number of mesh points ``nx`` and the number of derivatives
    ``nd`` stored at each mesh point."""
    if nd < 2 or nd % 2:
        raise PreconditionError(f"nd should be even and at least 2, got {nd}")
    if nx < 2:
        raise PreconditionError(f"nx should be at least 2, got {nx}")


def pack(x: VecFloat, u: VecFloat) -> VecFloat:
    """Join the mesh ``x`` and the solution ``u`` into one state vector.

    The solution is flattened in column-major order, so the data of a mesh
    point is contiguous.
    """
    return np.concatenate([x, u.ravel(order="F")])


def unpack(y: VecFloat, nd: int, nu: int, nx: int) -> tuple[VecFloat, VecFloat]:
    """Split a state vector into the mesh and the solution of shape
    ``(nd, nu, nx)``; inverse of :func:`pack`."""
    return y[:nx], y[nx:].reshape((nd, nu, nx), order="F")


class Snapshot:
    """Mesh and solution at one time step."""

    def __init__(
        self, t: float, y: VecFloat, yt: VecFloat, nd: int, nu: int, nx: int
    ) -> None:
        """
        Args:
            t: Time.
            y: State vector ``[x, u]``.
            yt: Time derivative of ``y``.
            nd: Number of derivatives stored at each mesh point.
            nu: Number of functions.
            nx: Number of mesh points.
        """
        self._t = float(t)
        self._y = np.array(y, dtype=np.float64)
        self._yt = np.array(yt, dtype=np.float64)
        self._y.flags.writeable = False
        self._yt.flags.writeable = False
        self._x, self._u = unpack(self._y, nd, nu, nx)
        self._xt, self._ut = unpack(self._yt, nd, nu, nx)

    @property
    def t(self) -> float:
        return self._t

    @property
    def y(self) -> VecFloat:
        """State vector ``[x, u]``."""
        return self._y

    @property
    def yt(self) -> VecFloat:
        """Time derivative of :attr:`y`."""
        return self._yt

    @property
    def x(self) -> VecFloat:
        """Mesh points."""
        return self._x

    @property
    def xt(self) -> VecFloat:
        """Velocity of the mesh points."""
        return self._xt

    @property
    def u(self) -> VecFloat:
        """Solution ``u[j, i, k]``: derivative ``j`` of function ``i`` at mesh
        point ``k``."""
        return self._u

    @property
    def ut(self) -> VecFloat:
        """Rate of change of :attr:`u` along the mesh points."""
        return self._ut


def meshinit(
    problem: Problem,
    coldata: CollocationData,
    nx: int,
    mesherr: float = 1e-5,
    maxsteps: int = 1000,
) -> VecFloat:
    """Relax a uniform mesh to the steady state of the mesh equation.

    The solution is held at the initial condition and the mesh endpoints are
    fixed. The mesh equation is integrated until the largest mesh velocity
    falls below ``mesherr``.

    Args:
        problem: The PDE system.
        coldata: Collocation data.
        nx: Number of mesh points.
        mesherr: Tolerance of the mesh velocity.
        maxsteps: Maximal number of integration steps.

    Returns:
        The relaxed mesh.

    Raises:
        ConvergenceError: If the mesh does not converge within ``maxsteps``
            steps or its integration fails.
    """
    ns = coldata.ns
    x0 = np.linspace(*problem.xspan, nx)
    xproblem = fixed_mesh_ends(problem)
    ut = np.zeros((ns, problem.nu, nx), dtype=np.float64)

    def dae(t, x, xt):
        u = initial_solution(xproblem, x, ns)
        return compute_resx(xproblem, coldata, xproblem.t0, x, xt, u, ut)

    n_step = 0
    xt_norm = np.inf
    steps = dae_iterator(dae, x0, 0.0, reltol=mesherr * 1e-2, abstol=mesherr * 1e-2)
    try:
        for t, x, xt in steps:
            n_step += 1
            xt_norm = np.linalg.norm(xt, np.inf)
            if xt_norm < mesherr:
                logger.info("Mesh converged after %d steps", n_step)
                return x
            if n_step > maxsteps:
                raise ConvergenceError(n_step, maxsteps, xt_norm, mesherr)
    except IntegrationError as e:
        raise ConvergenceError(
            n_step, maxsteps, xt_norm, mesherr, f"Mesh integration failed: {e}"
        ) from e
    raise ConvergenceError(
        n_step, maxsteps, xt_norm, mesherr, "Integration ended before the mesh converged"
    )


def movcol_iterate(
    problem: Problem,
    nx: int,
    nd: int,
    t_end: Optional[float] = None,
    mesherr: float = 1e-5,
    maxsteps: int = 1000,
    integrator_options: Optional[dict] = None,
) -> Iterator[Snapshot]:
    """Integrate the PDE system on a moving mesh and yield every step.

    Integrator options should be a dictionary of options to pass to
    :class:`movcol.integrator.DAEIntegrator`. Options will be passed
    verbatim, except that ``tstop`` defaults to ``t_end``.

    Args:
        problem: The PDE system.
        nx: Number of mesh points.
        nd: Number of derivatives stored at each mesh point, even.
        t_end: Final time; integrate indefinitely if ``None``.
        mesherr: Tolerance of the initial mesh relaxation.
        maxsteps: Maximal number of steps of the initial mesh relaxation.
        integrator_options: Options to pass to the integrator.

    Yields:
        The mesh and solution after each accepted step.
    """
    check_discretization(nx, nd)
    if t_end is not None and t_end <= problem.t0:
        raise PreconditionError("t_end must be greater than t0")
    options = {} if integrator_options is None else dict(integrator_options)
    if t_end is not None:
        options.setdefault("tstop", t_end)

    coldata = collocation_data(nd)
    nu = problem.nu
    x0 = meshinit(problem, coldata, nx, mesherr=mesherr, maxsteps=maxsteps)
    u0 = initial_solution(problem, x0, nd)

    def dae(t, y, yt):
        x, u = unpack(y, nd, nu, nx)
        xt, ut = unpack(yt, nd, nu, nx)
        resx = compute_resx(problem, coldata, t, x, xt, u, ut)
        resu = compute_resu(problem, coldata, t, x, xt, u, ut)
        return np.concatenate([resx, resu.ravel(order="F")])

    for t, y, yt in dae_iterator(dae, pack(x0, u0), problem.t0, **options):
        yield Snapshot(t, y, yt, nd, nu, nx)


def movcol_solve(
    problem: Problem,
    nx: int,
    nd: int,
    t_end: float = 1.0,
    mesherr: float = 1e-5,
    maxsteps: int = 1000,
    integrator_options: Optional[dict] = None,
) -> Snapshot:
    """Solve the PDE system on a moving mesh up to ``t_end``.

    See :func:`movcol_iterate` for the arguments.

    Returns:
        The mesh and solution at ``t_end``.

    Raises:
        PreconditionError: If ``nd`` is odd or ``nx`` is smaller than 2.
        ConvergenceError: If the initial mesh does not converge.
        IntegrationError: If the integration stops before ``t_end``.
    """
    snapshot = None
    for snapshot in movcol_iterate(
        problem, nx, nd, t_end, mesherr, maxsteps, integrator_options
    ):
        if snapshot.t >= t_end:
            return snapshot
    t = problem.t0 if snapshot is None else snapshot.t
    raise IntegrationError("integration ended before t_end", t, 0.0)
