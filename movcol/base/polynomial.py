# Copyright (c) 2024 Yilin Zou
import functools

import numpy as np
import scipy.interpolate
import scipy.special
import sympy as sp

from .vectypes import *


@functools.lru_cache
def xw_gauss(num_point: int) -> tuple[VecFloat, VecFloat]:
    """Compute the Legendre-Gauss nodes and quadrature weights.

    The interval is ``[0, 1]``.

    Args:
        num_point: Number of nodes.

    Returns:
        Nodes and weights of the Legendre-Gauss scheme.
    """
    if num_point <= 0:
        raise ValueError("Number of Gauss nodes must be at least 1.")
    x, w = np.polynomial.legendre.leggauss(num_point)
    return np.array((x + 1) / 2, dtype=float), np.array(w / 2, dtype=float)


@functools.lru_cache
def xw_lobatto(num_point: int) -> tuple[VecFloat, VecFloat]:
    """Compute the Legendre-Gauss-Lobatto nodes and quadrature weights.

    The interval is ``[0, 1]``, both ends are nodes.

    Args:
        num_point: Number of nodes.

    Returns:
        Nodes and weights of the Legendre-Gauss-Lobatto scheme.
    """
    if num_point <= 1:
        raise ValueError("Number of Lobatto nodes must be at least 2.")

    x = [-1.0, 1.0]
    if num_point > 2:
        # interior nodes are the roots of P'_{n-1}
        p_j = scipy.special.jacobi(num_point - 2, 1, 1)
        for root in np.roots(p_j):
            x.append(root.real)
    x.sort()
    x = np.array(x, dtype=float)

    p_l = scipy.special.legendre(num_point - 1)
    w = 2 / (num_point * (num_point - 1) * np.polyval(p_l, x) ** 2)
    return (x + 1) / 2, w / 2


@functools.lru_cache
def hermite01(n: int) -> tuple[tuple[sp.Poly, ...], tuple[sp.Poly, ...]]:
    r"""Compute the Hermite basis of degree ``2n - 1`` on ``[0, 1]``.

    The left basis function ``j`` has :math:`d^k L_j / ds^k = \delta_{kj}` at
    ``s = 0`` and vanishing derivatives up to order ``n - 1`` at ``s = 1``; the
    right basis is the mirror image. The coefficients are exact rationals.

    Args:
        n: Number of derivatives (including the value) matched at each end.

    Returns:
        Left and right basis polynomials in the variable ``s``.
    """
    if n <= 0:
        raise ValueError("Number of matched derivatives must be at least 1.")
    s = sp.Symbol("s")
    m = 2 * n
    V = sp.zeros(m, m)
    for k in range(n):
        for p in range(k, m):
            # k-th derivative of s**p at s = 0 and at s = 1
            if p == k:
                V[k, p] = sp.factorial(k)
            V[n + k, p] = sp.ff(p, k)
    C = V.inv()
    basis = [
        sp.Poly(sum(C[p, j] * s**p for p in range(m)), s, domain="QQ")
        for j in range(m)
    ]
    return tuple(basis[:n]), tuple(basis[n:])


def poly_coef(poly: sp.Poly, order: int = 0) -> VecFloat:
    """Floating point coefficients (highest power first, as used by
    :func:`numpy.polyval`) of the ``order``-th derivative of ``poly``."""
    for _ in range(order):
        poly = poly.diff()
    return np.array([float(c) for c in poly.all_coeffs()], dtype=float)


def lagrange_antiderivative(nodes: VecFloat) -> list[np.poly1d]:
    """Antiderivatives of the Lagrange basis polynomials through ``nodes``.

    Args:
        nodes: Distinct interpolation nodes.

    Returns:
        ``P[k]`` with ``P[k]' = L_k``, where ``L_k`` is the ``k``-th Lagrange
        basis polynomial.
    """
    P = []
    for i in range(len(nodes)):
        y = np.zeros_like(nodes)
        y[i] = 1
        poly = scipy.interpolate.lagrange(nodes, y)
        P.append(np.poly1d(np.polyint(poly)))
    return P
