# Copyright (c) 2024 Yilin Zou
"""Reconstruction of spatial and temporal derivatives inside an element.

Each mesh point stores ``nd`` derivatives ``[u, u_x, u_xx, ...]`` of each of
the ``nu`` functions together with their rates of change along the moving
mesh point. Inside an element the solution is the Hermite interpolant of the
endpoint data, so derivatives up to order ``nd`` are available at any point.
"""
from collections import namedtuple
from typing import Callable, Optional, Sequence

import numba as nb

from .collocation import CollocationPoint
from .exceptions import CallbackSizeError
from .vectypes import *


class MeshPoint(namedtuple("MeshPoint", ["x", "xt", "u", "ut"])):
    """Named tuple to store the data of a mesh point."""

    x: float
    """Position."""
    xt: float
    """Velocity."""
    u: VecFloat
    """Derivatives ``u[j, i]`` of order ``j`` of function ``i``, shape ``(nd, nu)``."""
    ut: VecFloat
    """Rate of change of ``u`` along the moving mesh point."""

    @property
    def nd(self) -> int:
        return self.u.shape[0]

    @property
    def nu(self) -> int:
        return self.u.shape[1]


def scale_vectors(h: float, ht: float, nd: int) -> tuple[VecFloat, VecFloat]:
    """Compute ``H = [h^j]`` and its time derivative ``Ht = [j ht h^(j-1)]``
    for ``j = 0, ..., nd``."""
    j = np.arange(nd + 1)
    H = np.power(h, j, dtype=np.float64)
    Ht = np.zeros(nd + 1, dtype=np.float64)
    Ht[1:] = j[1:] * ht * np.power(h, j[1:] - 1, dtype=np.float64)
    return H, Ht


@nb.njit
def _mult_lr(
    Q_left: VecFloat,
    Q_right: VecFloat,
    Hul: VecFloat,
    Hur: VecFloat,
    res: VecFloat,
) -> None:
    nd, nu = Hul.shape
    for i in range(nu):
        for k in range(nd + 1):
            acc = 0.0
            for j in range(nd):
                acc += Hul[j, i] * Q_left[k, j] + Hur[j, i] * Q_right[k, j]
            res[k, i] = acc


def compute_ux(
    Q: CollocationPoint,
    H: VecFloat,
    ul: VecFloat,
    ur: VecFloat,
    out: Optional[VecFloat] = None,
) -> VecFloat:
    """Compute the derivatives ``ux[j, i]`` of order ``j = 0, ..., nd`` at the
    point ``x_l + Q.s * h`` of an element.

    Args:
        Q: Collocation point.
        H: Scale vector ``[1, h, ..., h^nd]``.
        ul: Derivatives at the left end, shape ``(nd, nu)``.
        ur: Derivatives at the right end, shape ``(nd, nu)``.
        out: Optional output array of shape ``(nd + 1, nu)``.

    Returns:
        The derivatives at the point, shape ``(nd + 1, nu)``.
    """
    nd, nu = ul.shape
    if out is None:
        out = np.empty((nd + 1, nu), dtype=np.float64)
    Hc = H[:nd, np.newaxis]
    _mult_lr(Q.left, Q.right, Hc * ul, Hc * ur, out)
    out /= H[:, np.newaxis]
    return out


def compute_utx(
    Q: CollocationPoint,
    H: VecFloat,
    Ht: VecFloat,
    xt: float,
    utl: VecFloat,
    utr: VecFloat,
    ux: VecFloat,
    ul: VecFloat,
    ur: VecFloat,
    out: Optional[VecFloat] = None,
    work: Optional[VecFloat] = None,
) -> VecFloat:
    """Compute the partial time derivatives ``utx[j, i]`` of order
    ``j = 0, ..., nd - 1`` at the point ``x_l + Q.s * h`` of a moving element.

    The endpoint rates ``utl``, ``utr`` follow the moving mesh points. The
    rescaling of the element and the motion of the point itself are removed,
    so ``utx`` is the derivative at a fixed position in space.

    Args:
        Q: Collocation point.
        H: Scale vector ``[1, h, ..., h^nd]``.
        Ht: Time derivative of ``H``.
        xt: Velocity of the left end of the element.
        utl: Rates of the derivatives at the left end, shape ``(nd, nu)``.
        utr: Rates of the derivatives at the right end, shape ``(nd, nu)``.
        ux: Spatial derivatives at the point, as returned by :func:`compute_ux`.
        ul: Derivatives at the left end.
        ur: Derivatives at the right end.
        out: Optional output array of shape ``(nd, nu)``.
        work: Optional work array of shape ``(nd + 1, nu)``.

    Returns:
        The time derivatives at the point, shape ``(nd, nu)``.
    """
    nd, nu = utl.shape
    if out is None:
        out = np.empty((nd, nu), dtype=np.float64)
    xt_s = xt + Q.s * Ht[1]

    Hc = H[:nd, np.newaxis]
    Htc = Ht[:nd, np.newaxis]
    if work is None:
        work = np.empty((nd + 1, nu), dtype=np.float64)
    _mult_lr(Q.left, Q.right, Hc * utl + Htc * ul, Hc * utr + Htc * ur, work)
    # the point x_l + s h moves with velocity xt_s
    out[:] = (work[:nd] - Htc * ux[:nd]) / Hc - xt_s * ux[1:]
    return out


def callback_values(
    value, expected: int, name: str, at_least: bool = False
) -> VecFloat:
    """Convert the return value of a user function to a flat array of
    ``expected`` values.

    Args:
        value: Return value of the user function.
        expected: Number of values required.
        name: Name of the user function, for error messages.
        at_least: If ``True``, values beyond the first ``expected`` are
            discarded instead of being an error.

    Returns:
        The values as a 1D array (column-major order for 2D results).
    """
    v = np.asarray(value, dtype=np.float64).ravel(order="F")
    if v.size < expected or (not at_least and v.size != expected):
        raise CallbackSizeError(name, expected, v.size, at_least)
    return v[:expected]


class ElementScratch:
    """Work arrays reused while the residual of one element after another is
    evaluated.

    Arrays handed to user functions are overwritten at the next collocation
    point; user functions must copy them to keep their content.
    """

    def __init__(self, nd: int, nu: int) -> None:
        self.ux = np.empty((nd + 1, nu), dtype=np.float64)
        self.utx = np.empty((nd, nu), dtype=np.float64)
        self.utx_work = np.empty((nd + 1, nu), dtype=np.float64)
        self.f_gauss = np.empty((nu, nd), dtype=np.float64)
        self.g_lobatto = np.empty((nu, nd + 1), dtype=np.float64)


def _snap_to_end(end: MeshPoint, ux: VecFloat, utx: VecFloat) -> None:
    # stored derivatives are exact; only the highest order is reconstructed
    ux[:-1] = end.u
    utx[:] = end.ut - end.xt * ux[1:]


def collocation_values(
    Qs: Sequence[CollocationPoint],
    f: Callable,
    name: str,
    t: float,
    left: MeshPoint,
    right: MeshPoint,
    H: VecFloat,
    Ht: VecFloat,
    out: VecFloat,
    scratch: ElementScratch,
) -> VecFloat:
    """Evaluate ``f(t, x, ux, utx)`` at each collocation point of an element.

    At ``s = 0`` and ``s = 1`` the stored endpoint data is used directly.

    Args:
        Qs: Collocation points.
        f: User function returning ``nu`` values.
        name: Name of ``f``, for error messages.
        t: Time.
        left: Left end of the element.
        right: Right end of the element.
        H: Scale vector of the element.
        Ht: Time derivative of ``H``.
        out: Output array of shape ``(nu, len(Qs))``.
        scratch: Work arrays of the element.

    Returns:
        ``out`` with column ``j`` holding the values at ``Qs[j]``.
    """
    nu = left.nu
    h = H[1]
    ux = scratch.ux
    utx = scratch.utx
    for j, Q in enumerate(Qs):
        compute_ux(Q, H, left.u, right.u, out=ux)
        compute_utx(
            Q, H, Ht, left.xt, left.ut, right.ut, ux, left.u, right.u,
            out=utx, work=scratch.utx_work,
        )
        if Q.s == 0.0:
            x = left.x
            _snap_to_end(left, ux, utx)
        elif Q.s == 1.0:
            x = right.x
            _snap_to_end(right, ux, utx)
        else:
            x = left.x + Q.s * h
        out[:, j] = callback_values(f(t, x, ux, utx), nu, name)
    return out
