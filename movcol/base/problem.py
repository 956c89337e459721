# Copyright (c) 2024 Yilin Zou
from typing import Callable, Self

from .evaluation import callback_values
from .vectypes import *


def fixed_end(t, x, xt, u, ut):
    """Mesh boundary condition keeping a mesh endpoint at rest."""
    return xt


def uniform_monitor(t, x, u):
    """Constant monitor function, which leads to a uniform mesh."""
    return 1.0


class Problem:
    r"""Description of a time-dependent PDE system

    .. math::
        F(t, x, u, u_t) = \frac{\partial}{\partial x} G(t, x, u, u_t)

    on a moving mesh.

    The argument ``u`` of the functions holds the spatial derivatives
    ``u[j, i]`` of order ``j`` of function ``i``; ``ut`` holds their partial
    time derivatives. Inside the domain ``u`` has ``nd + 1`` rows and ``ut``
    ``nd`` rows, where ``nd`` is the number of derivatives stored at each mesh
    point. At mesh points, ``u`` and ``ut`` have ``nd`` rows and ``ut`` is the
    rate of change following the mesh point.

    A ``Problem`` is immutable; use :meth:`replace` to derive a modified copy.
    """

    _fields = (
        "xspan",
        "nu",
        "u0",
        "F",
        "G",
        "Bl",
        "Br",
        "M",
        "t0",
        "tau",
        "gamma",
        "Bxl",
        "Bxr",
    )

    def __init__(
        self,
        xspan: tuple[float, float],
        nu: int,
        u0: Callable,
        F: Callable,
        G: Callable,
        Bl: Callable,
        Br: Callable,
        M: Callable = uniform_monitor,
        t0: float = 0.0,
        tau: float = 0.0,
        gamma: float = 0.0,
        Bxl: Callable = fixed_end,
        Bxr: Callable = fixed_end,
    ) -> None:
        """
        Args:
            xspan: Left and right end of the domain.
            nu: Number of functions.
            u0: ``u0(x)`` returns the initial derivatives at ``x``, ``nd * nu``
                values ordered derivative first (column-major ``(nd, nu)``).
            F: ``F(t, x, u, ut)`` returns ``nu`` values.
            G: ``G(t, x, u, ut)`` returns ``nu`` values.
            Bl: ``Bl(t, x, xt, u, ut)`` returns at least ``nu * nd / 2``
                boundary residuals at the left end.
            Br: ``Br(t, x, xt, u, ut)`` returns at least ``nu * nd / 2``
                boundary residuals at the right end.
            M: ``M(t, x, u)`` returns the (positive) monitor function.
            t0: Initial time.
            tau: Time scale of the mesh movement.
            gamma: Spatial smoothing of the mesh.
            Bxl: ``Bxl(t, x, xt, u, ut)`` returns the residual of the left mesh
                endpoint's motion.
            Bxr: ``Bxr(t, x, xt, u, ut)`` returns the residual of the right mesh
                endpoint's motion.
        """
        xspan = tuple(float(v) for v in xspan)
        if len(xspan) != 2:
            raise ValueError("xspan must contain the left and right end")
        if not xspan[0] < xspan[1]:
            raise ValueError("xspan[0] must be smaller than xspan[1]")
        if not isinstance(nu, (int, np.integer)) or nu < 1:
            raise ValueError("nu must be a positive int")
        if tau < 0:
            raise ValueError("tau must be non-negative")
        if gamma < 0:
            raise ValueError("gamma must be non-negative")

        self._xspan = xspan
        self._nu = int(nu)
        self._u0 = u0
        self._F = F
        self._G = G
        self._Bl = Bl
        self._Br = Br
        self._M = M
        self._t0 = float(t0)
        self._tau = float(tau)
        self._gamma = float(gamma)
        self._Bxl = Bxl
        self._Bxr = Bxr

    def replace(self, **changes) -> Self:
        """Return a copy of the problem with the given fields replaced."""
        for name in changes:
            if name not in self._fields:
                raise ValueError(f"unknown field {name!r}")
        kwargs = {name: getattr(self, name) for name in self._fields}
        kwargs.update(changes)
        return type(self)(**kwargs)

    @property
    def xspan(self) -> tuple[float, float]:
        return self._xspan

    @property
    def nu(self) -> int:
        return self._nu

    @property
    def u0(self) -> Callable:
        return self._u0

    @property
    def F(self) -> Callable:
        return self._F

    @property
    def G(self) -> Callable:
        return self._G

    @property
    def Bl(self) -> Callable:
        return self._Bl

    @property
    def Br(self) -> Callable:
        return self._Br

    @property
    def M(self) -> Callable:
        return self._M

    @property
    def t0(self) -> float:
        return self._t0

    @property
    def tau(self) -> float:
        return self._tau

    @property
    def gamma(self) -> float:
        return self._gamma

    @property
    def Bxl(self) -> Callable:
        return self._Bxl

    @property
    def Bxr(self) -> Callable:
        return self._Bxr


def fixed_mesh_ends(problem: Problem) -> Problem:
    """Return a copy of ``problem`` whose mesh endpoints do not move."""
    return problem.replace(Bxl=fixed_end, Bxr=fixed_end)


def initial_solution(problem: Problem, x: VecFloat, nd: int) -> VecFloat:
    """Evaluate the initial condition at the mesh points ``x``.

    Returns:
        Array ``u[j, i, k]`` of shape ``(nd, nu, len(x))``.
    """
    nu = problem.nu
    u = np.empty((nd, nu, len(x)), dtype=np.float64)
    for k, x_ in enumerate(x):
        u[:, :, k] = callback_values(problem.u0(x_), nd * nu, "u0").reshape(
            (nd, nu), order="F"
        )
    return u
