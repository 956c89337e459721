# Copyright (c) 2024 Yilin Zou
import functools
from collections import namedtuple
from typing import Optional

import numpy as np
import scipy.linalg

from .polynomial import *
from .vectypes import *


class CollocationPoint(namedtuple("CollocationPoint", ["left", "right", "s"])):
    """Named tuple to store the interpolation coefficients of a collocation
    point.

    For endpoint data ``ul = [u, u_x, u_xx, ...]`` at the left end and ``ur``
    at the right end of an element of width ``h``,
    ``h^k u^(k)(x_l + s h) = left[k] @ (H * ul) + right[k] @ (H * ur)`` with
    ``H = [1, h, h^2, ...]``.
    """

    left: VecFloat
    """Coefficient matrix of the left endpoint, shape ``(ns + 1, ns)``."""
    right: VecFloat
    """Coefficient matrix of the right endpoint, shape ``(ns + 1, ns)``."""
    s: float
    """Location of the point in the reference element ``[0, 1]``."""


def _readonly(a: VecFloat) -> VecFloat:
    a.flags.writeable = False
    return a


def generate_Q(n: int, s: float, kmax: Optional[int] = None) -> CollocationPoint:
    """Compute the interpolation coefficients at a point ``s`` of the
    reference element.

    ``Q[k, j]`` is the ``k``-th derivative of the ``j``-th Hermite basis
    function at ``s``.

    Args:
        n: Number of derivatives stored at each endpoint.
        s: Location in ``[0, 1]``.
        kmax: Number of derivative rows, ``n + 1`` by default.

    Returns:
        The collocation point at ``s``.
    """
    if kmax is None:
        kmax = n + 1
    L_left, L_right = hermite01(n)
    Q_left = np.array(
        [[np.polyval(poly_coef(L, k), s) for L in L_left] for k in range(kmax)],
        dtype=np.float64,
    )
    Q_right = np.array(
        [[np.polyval(poly_coef(L, k), s) for L in L_right] for k in range(kmax)],
        dtype=np.float64,
    )
    return CollocationPoint(_readonly(Q_left), _readonly(Q_right), float(s))


def generate_AB(n: int) -> VecFloat:
    """Compute the flux reconstruction matrix ``AB = inv(A) @ B``.

    ``A @ F = B @ G`` approximates ``F = dG/ds`` with ``F`` given at the ``n``
    Gauss nodes and ``G`` at the ``n + 1`` Lobatto nodes: ``A[j, k]`` is minus
    the integral of the ``k``-th Lagrange polynomial through the Gauss nodes
    over ``[lobatto[j], lobatto[j + 1]]`` and ``B`` is the bidiagonal
    difference matrix.

    Args:
        n: Number of Gauss nodes.

    Returns:
        Matrix of shape ``(n, n + 1)``.
    """
    s_g, _ = xw_gauss(n)
    s_l, _ = xw_lobatto(n + 1)
    L_int = lagrange_antiderivative(s_g)
    A = -np.array(
        [[L_int[k](s_l[j + 1]) - L_int[k](s_l[j]) for k in range(n)] for j in range(n)],
        dtype=np.float64,
    )
    B = np.eye(n, n + 1, dtype=np.float64) - np.eye(n, n + 1, k=1, dtype=np.float64)
    return scipy.linalg.solve(A, B)


class CollocationData:
    """Coefficient tables shared by every element of the mesh.

    The tables depend on the number of derivatives ``ns`` stored at each mesh
    point only. They are built once and never modified.
    """

    def __init__(self, ns: int) -> None:
        """
        Args:
            ns: Number of derivatives stored at each mesh point, which is also
                the number of Gauss collocation points. Should be even.
        """
        self._ns = ns
        s_g, _ = xw_gauss(ns)
        s_l, _ = xw_lobatto(ns + 1)
        self._gauss = tuple(generate_Q(ns, s) for s in s_g)
        self._lobatto = tuple(generate_Q(ns, s) for s in s_l)
        self._AB = _readonly(generate_AB(ns))

    @property
    def ns(self) -> int:
        """Number of derivatives stored at each mesh point."""
        return self._ns

    @property
    def gauss(self) -> tuple[CollocationPoint, ...]:
        """Collocation points at the ``ns`` Gauss nodes."""
        return self._gauss

    @property
    def lobatto(self) -> tuple[CollocationPoint, ...]:
        """Collocation points at the ``ns + 1`` Lobatto nodes."""
        return self._lobatto

    @property
    def midpoint(self) -> CollocationPoint:
        """The Lobatto point at ``s = 1/2``."""
        return self._lobatto[self._ns // 2]

    @property
    def AB(self) -> VecFloat:
        """Flux reconstruction matrix, shape ``(ns, ns + 1)``."""
        return self._AB


@functools.lru_cache
def collocation_data(ns: int) -> CollocationData:
    """Cached :class:`CollocationData` for ``ns`` derivatives."""
    return CollocationData(ns)
