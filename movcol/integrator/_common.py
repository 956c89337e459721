# Copyright (c) 2024 Yilin Zou
from typing import Callable, Optional

import scipy.linalg

from movcol.base.vectypes import *

EPS = np.finfo(np.float64).eps


def error_weights(y: VecFloat, reltol: float, abstol: VecFloat) -> VecFloat:
    """Weights of the error norm, ``abstol + reltol * |y|``."""
    return abstol + reltol * np.abs(y)


def wrms(v: VecFloat, w: VecFloat) -> float:
    """Weighted root mean square norm of ``v``."""
    if not len(v):
        return 0.0
    return float(np.sqrt(np.mean((v / w) ** 2)))


def lagrange_weights(nodes: VecFloat, t: float) -> VecFloat:
    """Values at ``t`` of the Lagrange basis polynomials through ``nodes``."""
    n = len(nodes)
    l = np.ones(n, dtype=np.float64)
    for i in range(n):
        for m in range(n):
            if m != i:
                l[i] *= (t - nodes[m]) / (nodes[i] - nodes[m])
    return l


def bdf_coefficients(nodes: VecFloat) -> VecFloat:
    """Variable step BDF coefficients.

    ``a[i]`` is the derivative at ``nodes[0]`` of the Lagrange basis polynomial
    through ``nodes`` belonging to ``nodes[i]``, so that
    ``y'(nodes[0]) ~ sum_i a[i] y(nodes[i])``.
    """
    n = len(nodes)
    a = np.zeros(n, dtype=np.float64)
    t = nodes[0]
    a[0] = sum(1 / (t - nodes[m]) for m in range(1, n))
    for i in range(1, n):
        num = 1.0
        den = 1.0
        for m in range(n):
            if m != i:
                den *= nodes[i] - nodes[m]
                if m != 0:
                    num *= t - nodes[m]
        a[i] = num / den
    return a


def iteration_matrix(
    fun: Callable[[float, VecFloat, VecFloat], VecFloat],
    t: float,
    y: VecFloat,
    yp: VecFloat,
    alpha: float,
    r: VecFloat,
    w: VecFloat,
    h: float,
) -> VecFloat:
    """Finite difference approximation of ``dF/dy + alpha * dF/dyp``.

    Column ``j`` perturbs ``y[j]`` by ``delta`` and ``yp[j]`` by
    ``alpha * delta`` at once.

    Args:
        fun: Residual function ``F(t, y, yp)``.
        t: Time.
        y: State.
        yp: Derivative of the state.
        alpha: Leading coefficient of the BDF formula.
        r: ``F(t, y, yp)``.
        w: Error weights.
        h: Step size.

    Returns:
        Dense matrix of shape ``(len(r), len(y))``.
    """
    n = len(y)
    J = np.empty((len(r), n), dtype=np.float64)
    sqrt_eps = np.sqrt(EPS)
    for j in range(n):
        delta = sqrt_eps * max(abs(y[j]), abs(h * yp[j]), w[j])
        delta = (y[j] + delta) - y[j]
        y_ = y.copy()
        yp_ = yp.copy()
        y_[j] += delta
        yp_[j] += alpha * delta
        J[:, j] = (np.asarray(fun(t, y_, yp_), dtype=np.float64) - r) / delta
    return J


def differential_components(
    fun: Callable[[float, VecFloat, VecFloat], VecFloat],
    t: float,
    y: VecFloat,
    yp: VecFloat,
    w: VecFloat,
) -> VecBool:
    """Find the components whose derivative enters the residual.

    The remaining (algebraic) components are excluded from the local error
    test.
    """
    r = np.asarray(fun(t, y, yp), dtype=np.float64)
    n = len(y)
    mask = np.zeros(n, dtype=bool)
    sqrt_eps = np.sqrt(EPS)
    for j in range(n):
        delta = sqrt_eps * max(abs(yp[j]), w[j], 1.0)
        yp_ = yp.copy()
        yp_[j] += delta
        r_ = np.asarray(fun(t, y, yp_), dtype=np.float64)
        mask[j] = not np.array_equal(r_, r, equal_nan=True)
    return mask


def consistent_algebraic(
    fun: Callable[[float, VecFloat, VecFloat], VecFloat],
    t: float,
    y: VecFloat,
    yp: VecFloat,
    algebraic: VecBool,
    w: VecFloat,
    max_iter: int,
) -> Optional[VecFloat]:
    """Solve ``F(t, y, yp) = 0`` for the algebraic components of ``y``.

    The differential components and ``yp`` are held fixed. Each iteration
    uses a fresh finite difference Jacobian of the algebraic columns and a
    least squares Gauss-Newton step, halved until the residual decreases.

    Returns:
        The corrected state, or ``None`` if the iteration fails to converge
        within ``max_iter`` iterations.
    """
    idx = np.flatnonzero(algebraic)
    y = np.array(y, dtype=np.float64)
    if not len(idx):
        return y
    r = np.asarray(fun(t, y, yp), dtype=np.float64)
    sqrt_eps = np.sqrt(EPS)
    for _ in range(max_iter):
        if not np.all(np.isfinite(r)):
            return None
        J = np.empty((len(r), len(idx)), dtype=np.float64)
        for c, j in enumerate(idx):
            delta = sqrt_eps * max(abs(y[j]), w[j])
            delta = (y[j] + delta) - y[j]
            y_ = y.copy()
            y_[j] += delta
            J[:, c] = (np.asarray(fun(t, y_, yp), dtype=np.float64) - r) / delta
        if not np.all(np.isfinite(J)):
            return None
        d = scipy.linalg.lstsq(J, -r, check_finite=False)[0]
        if wrms(d, w[idx]) <= 1e-3:
            y[idx] += d
            return y

        norm = np.linalg.norm(r)
        lam = 1.0
        while lam >= 1e-4:
            y_ = y.copy()
            y_[idx] += lam * d
            r_ = np.asarray(fun(t, y_, yp), dtype=np.float64)
            if np.all(np.isfinite(r_)) and np.linalg.norm(r_) < norm:
                break
            lam /= 2
        else:
            return None
        y, r = y_, r_
    return None
