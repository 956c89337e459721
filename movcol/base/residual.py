# Copyright (c) 2024 Yilin Zou
"""Residuals of the discretized PDE and of the moving mesh.

Memory alignment of the solution::

         derivative (nd)
        /   mesh point (nx)
       /   /
    u[j, i, k]
          \\
           function (nu)
"""
from .collocation import CollocationData
from .evaluation import *
from .exceptions import PreconditionError
from .problem import Problem
from .vectypes import *


def _check_shape(coldata: CollocationData, u: VecFloat) -> tuple[int, int, int]:
    nd, nu, nx = u.shape
    if nd != coldata.ns:
        raise PreconditionError(
            f"u stores {nd} derivatives but the collocation data is built for {coldata.ns}"
        )
    return nd, nu, nx


def compute_resu(
    problem: Problem,
    coldata: CollocationData,
    t: float,
    x: VecFloat,
    xt: VecFloat,
    u: VecFloat,
    ut: VecFloat,
) -> VecFloat:
    """Compute the residual of the PDE and its boundary conditions.

    Element ``k`` contributes ``F - AB @ G / h`` at its ``ns`` Gauss points,
    stored in ``resu[:, :, k]``. The last mesh point has no element to the
    right; its slots hold the boundary conditions, the first half from ``Bl``
    and the second half from ``Br``.

    Args:
        problem: The PDE system.
        coldata: Collocation data for ``nd`` derivatives.
        t: Time.
        x: Mesh points, shape ``(nx,)``.
        xt: Velocity of the mesh points.
        u: Solution, shape ``(nd, nu, nx)``.
        ut: Rate of change of ``u`` along the mesh points.

    Returns:
        Residual of shape ``(nu, ns, nx)``.
    """
    nd, nu, nx = _check_shape(coldata, u)
    ns = coldata.ns
    ns2 = ns // 2
    AB_T = coldata.AB.T

    resu = np.empty((nu, ns, nx), dtype=np.float64)
    scratch = ElementScratch(nd, nu)

    for k in range(nx - 1):
        left = MeshPoint(x[k], xt[k], u[:, :, k], ut[:, :, k])
        right = MeshPoint(x[k + 1], xt[k + 1], u[:, :, k + 1], ut[:, :, k + 1])
        h = x[k + 1] - x[k]
        ht = xt[k + 1] - xt[k]
        H, Ht = scale_vectors(h, ht, nd)

        F_gauss = collocation_values(
            coldata.gauss, problem.F, "F", t, left, right, H, Ht,
            scratch.f_gauss, scratch,
        )
        G_lobatto = collocation_values(
            coldata.lobatto, problem.G, "G", t, left, right, H, Ht,
            scratch.g_lobatto, scratch,
        )
        resu[:, :, k] = F_gauss - G_lobatto @ AB_T / h

    res_l = callback_values(
        problem.Bl(t, x[0], xt[0], u[:, :, 0], ut[:, :, 0]),
        nu * ns2, "Bl", at_least=True,
    )
    res_r = callback_values(
        problem.Br(t, x[-1], xt[-1], u[:, :, -1], ut[:, :, -1]),
        nu * ns2, "Br", at_least=True,
    )
    resu[:, :ns2, -1] = res_l.reshape((nu, ns2), order="F")
    resu[:, ns2:, -1] = res_r.reshape((nu, ns2), order="F")
    return resu


def compute_resx(
    problem: Problem,
    coldata: CollocationData,
    t: float,
    x: VecFloat,
    xt: VecFloat,
    u: VecFloat,
    ut: VecFloat,
) -> VecFloat:
    r"""Compute the residual of the moving mesh equation.

    The mesh equidistributes the monitor function ``M`` with temporal
    relaxation ``tau`` and spatial smoothing ``gamma``. With
    :math:`Y_{k+1/2} = 1/h_k - \tau \dot h_k / h_k^2` on element ``k``,
    :math:`Z = Y - \gamma(\gamma + 1) \Delta^2 Y` and :math:`M_{k+1/2}` the
    monitor at the element midpoint, the interior residuals are
    :math:`Z_{k+1/2} / M_{k+1/2} - Z_{k-1/2} / M_{k-1/2}`. ``Y`` is extended
    by constants beyond both ends of the mesh. The first and last residuals
    are given by ``Bxl`` and ``Bxr``.

    Args:
        problem: The PDE system.
        coldata: Collocation data for ``nd`` derivatives.
        t: Time.
        x: Mesh points, shape ``(nx,)``.
        xt: Velocity of the mesh points.
        u: Solution, shape ``(nd, nu, nx)``.
        ut: Rate of change of ``u`` along the mesh points.

    Returns:
        Residual of shape ``(nx,)``.
    """
    nd, nu, nx = _check_shape(coldata, u)
    Q_half = coldata.midpoint
    scratch = ElementScratch(nd, nu)

    M_half = np.empty(nx - 1, dtype=np.float64)
    for k in range(nx - 1):
        ul = u[:, :, k]
        ur = u[:, :, k + 1]
        if k == 0 or k == nx - 2:
            M_half[k] = (
                callback_values(problem.M(t, x[k], ul), 1, "M")[0]
                + callback_values(problem.M(t, x[k + 1], ur), 1, "M")[0]
            ) / 2
        else:
            H, _ = scale_vectors(x[k + 1] - x[k], 0.0, nd)
            u_half = compute_ux(Q_half, H, ul, ur, out=scratch.ux)
            x_half = (x[k] + x[k + 1]) / 2
            M_half[k] = callback_values(problem.M(t, x_half, u_half), 1, "M")[0]

    h = np.diff(x)
    ht = np.diff(xt)
    Y_half = np.empty(nx + 1, dtype=np.float64)
    Y_half[1:-1] = -problem.tau * ht / h**2 + 1 / h
    Y_half[0] = Y_half[1]
    Y_half[-1] = Y_half[-2]

    g = problem.gamma * (problem.gamma + 1)
    Z_half = Y_half[1:-1] - g * (Y_half[2:] - 2 * Y_half[1:-1] + Y_half[:-2])

    resx = np.empty(nx, dtype=np.float64)
    resx[1:-1] = np.diff(Z_half / M_half)
    resx[0] = callback_values(
        problem.Bxl(t, x[0], xt[0], u[:, :, 0], ut[:, :, 0]), 1, "Bxl"
    )[0]
    resx[-1] = callback_values(
        problem.Bxr(t, x[-1], xt[-1], u[:, :, -1], ut[:, :, -1]), 1, "Bxr"
    )[0]
    return resx
