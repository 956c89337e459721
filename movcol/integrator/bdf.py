# Copyright (c) 2024 Yilin Zou
import logging
import warnings
from typing import Callable, Iterator, Optional

import scipy.linalg

from ._common import *
from movcol.base.exceptions import IntegrationError

logger = logging.getLogger(__name__)


class DAEIntegrator:
    """Variable step, variable order BDF integrator for implicit systems
    ``F(t, y, y') = 0``.

    Each call of :meth:`step` advances the solution by one accepted step.
    The integrator is exhausted (:attr:`done`) once ``tstop`` is reached;
    without ``tstop`` it can be stepped indefinitely. Iterating over the
    integrator yields the triples ``(t, y, y')`` of the accepted steps.

    The state is not restartable: to integrate again from the initial values,
    create a new integrator.
    """

    def __init__(
        self,
        fun: Callable[[float, VecFloat, VecFloat], VecFloat],
        y0: VecFloat,
        t0: float,
        yp0: Optional[VecFloat] = None,
        reltol: float = 1e-3,
        abstol: float | VecFloat = 1e-6,
        h0: Optional[float] = None,
        hmin: Optional[float] = None,
        hmax: float = np.inf,
        max_order: int = 2,
        max_newton: int = 4,
        max_jacobian: int = 3,
        tstop: Optional[float] = None,
        max_steps: Optional[int] = None,
        suppress_algebraic: bool = True,
        consistent_init: bool = True,
        max_init_newton: int = 50,
    ) -> None:
        """
        ``yp0`` need not be consistent with ``y0``; the first step is taken
        with the implicit Euler method, which only uses ``y0``.

        Components whose derivative does not enter ``F`` are algebraic. If
        ``consistent_init`` is ``True``, they are solved for before the first
        step so that ``F(t0, y0, yp0) = 0`` holds as far as they allow; otherwise
        their value may jump in the first step. If ``suppress_algebraic`` is
        ``True``, they are excluded from the local error test.

        Args:
            fun: Residual function ``F(t, y, yp)``, returning an array of the
                same length as ``y``.
            y0: Initial state.
            t0: Initial time.
            yp0: Initial derivative of the state, zero by default.
            reltol: Relative error tolerance.
            abstol: Absolute error tolerance, scalar or per component.
            h0: Initial step size.
            hmin: Minimal step size; a step below ``hmin`` is an error.
            hmax: Maximal step size.
            max_order: Maximal order of the BDF formula, 1 to 5.
            max_newton: Maximal Newton iterations per iteration matrix.
            max_jacobian: Maximal number of iteration matrices evaluated in one
                step attempt before the step is retried with a smaller size.
            tstop: Time at which the integration ends exactly.
            max_steps: Maximal number of accepted steps, unlimited if ``None``.
            suppress_algebraic: Whether to exclude algebraic components from the
                error test.
            consistent_init: Whether to compute consistent algebraic components
                before the first step.
            max_init_newton: Maximal Gauss-Newton iterations of the initial
                condition calculation.
        """
        if not 1 <= max_order <= 5:
            raise ValueError("max_order must be between 1 and 5")
        if max_newton < 1:
            raise ValueError("max_newton must be at least 1")
        if max_jacobian < 1:
            raise ValueError("max_jacobian must be at least 1")
        if max_init_newton < 1:
            raise ValueError("max_init_newton must be at least 1")
        if reltol < 0 or np.any(np.asarray(abstol) < 0):
            raise ValueError("tolerances must be non-negative")
        if reltol == 0 and np.any(np.asarray(abstol) == 0):
            raise ValueError("reltol and abstol must not both be zero")
        if tstop is not None and tstop <= t0:
            raise ValueError("tstop must be greater than t0")

        self._fun = fun
        self._t = float(t0)
        self._y = np.array(y0, dtype=np.float64)
        n = len(self._y)
        if yp0 is None:
            self._yp = np.zeros(n, dtype=np.float64)
        else:
            self._yp = np.array(yp0, dtype=np.float64)
        self._reltol = float(reltol)
        self._abstol = np.broadcast_to(np.asarray(abstol, dtype=np.float64), (n,))
        self._hmin = hmin
        self._hmax = float(hmax)
        self._max_order = max_order
        self._max_newton = max_newton
        self._max_jacobian = max_jacobian
        self._max_init_newton = max_init_newton
        self._tstop = tstop
        self._max_steps = max_steps

        if h0 is None:
            h0 = 1e-3 * (tstop - t0) if tstop is not None else 1e-3
        self._h = min(float(h0), self._hmax)

        w = error_weights(self._y, self._reltol, self._abstol)
        differential = differential_components(fun, self._t, self._y, self._yp, w)
        self._algebraic = ~differential
        if suppress_algebraic:
            self._differential = differential
        else:
            self._differential = np.ones(n, dtype=bool)
        self._initialized = not consistent_init

        self._history_t = [self._t]
        self._history_y = [self._y.copy()]
        self._n_steps = 0
        self._done = False

    @property
    def t(self) -> float:
        """Time of the last accepted step."""
        return self._t

    @property
    def y(self) -> VecFloat:
        """State at :attr:`t`."""
        return self._y

    @property
    def yp(self) -> VecFloat:
        """Derivative of the state at :attr:`t`."""
        return self._yp

    @property
    def h(self) -> float:
        """Size of the next step."""
        return self._h

    @property
    def order(self) -> int:
        """Order of the BDF formula of the next step."""
        return max(1, min(self._max_order, len(self._history_t) - 1))

    @property
    def n_steps(self) -> int:
        """Number of accepted steps."""
        return self._n_steps

    @property
    def differential(self) -> VecBool:
        """Mask of the components included in the error test."""
        return self._differential

    @property
    def done(self) -> bool:
        """Whether ``tstop`` has been reached."""
        return self._done

    def __iter__(self) -> Iterator[tuple[float, VecFloat, VecFloat]]:
        return self

    def __next__(self) -> tuple[float, VecFloat, VecFloat]:
        if self._done:
            raise StopIteration
        return self.step()

    def _predict(self, t_new: float, h: float, k: int) -> VecFloat:
        if len(self._history_t) == 1:
            y_pred = self._y + h * self._yp
        else:
            nodes = np.array(self._history_t[-(k + 1) :], dtype=np.float64)
            l = lagrange_weights(nodes, t_new)
            y_pred = l @ np.array(self._history_y[-(k + 1) :])
        # algebraic components start from their last value
        return np.where(self._differential, y_pred, self._y)

    def _newton(
        self, t: float, y_pred: VecFloat, alpha: float, beta: VecFloat, h: float
    ) -> Optional[VecFloat]:
        w = error_weights(self._y, self._reltol, self._abstol)
        y = y_pred.copy()
        for _ in range(self._max_jacobian):
            yp = alpha * y + beta
            r = np.asarray(self._fun(t, y, yp), dtype=np.float64)
            if not np.all(np.isfinite(r)):
                return None
            J = iteration_matrix(self._fun, t, y, yp, alpha, r, w, h)
            if not np.all(np.isfinite(J)):
                return None
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
                lu, piv = scipy.linalg.lu_factor(J, check_finite=False)
            if np.any(np.diag(lu) == 0):
                return None
            for _ in range(self._max_newton):
                d = scipy.linalg.lu_solve((lu, piv), -r, check_finite=False)
                y = y + d
                if not np.all(np.isfinite(y)):
                    return None
                if wrms(d, w) <= 1e-2:
                    return y
                r = np.asarray(self._fun(t, y, alpha * y + beta), dtype=np.float64)
                if not np.all(np.isfinite(r)):
                    return None
            # refresh the iteration matrix at the current iterate
        return None

    def _initialize(self) -> None:
        w = error_weights(self._y, self._reltol, self._abstol)
        y = consistent_algebraic(
            self._fun, self._t, self._y, self._yp, self._algebraic, w,
            self._max_init_newton,
        )
        if y is None:
            raise IntegrationError(
                "unable to compute consistent initial values", self._t, 0.0
            )
        logger.debug(
            "Initial values made consistent in %d algebraic components",
            int(np.count_nonzero(self._algebraic)),
        )
        self._y = y
        self._history_y = [y.copy()]
        self._initialized = True

    def _reset_history(self) -> None:
        self._history_t = self._history_t[-1:]
        self._history_y = self._history_y[-1:]

    def step(self) -> tuple[float, VecFloat, VecFloat]:
        """Advance the solution by one accepted step.

        Returns:
            Time, state and derivative of the state after the step.

        Raises:
            IntegrationError: If the initial values cannot be made consistent,
                the step size falls below the minimal step size, the maximal
                number of steps is exceeded, or ``tstop`` has already been
                reached.
        """
        if self._done:
            raise IntegrationError("integration already reached tstop", self._t, 0.0)
        if self._max_steps is not None and self._n_steps >= self._max_steps:
            raise IntegrationError(
                f"maximal number of steps ({self._max_steps}) exceeded",
                self._t,
                self._h,
            )
        if not self._initialized:
            self._initialize()

        t = self._t
        w = error_weights(self._y, self._reltol, self._abstol)
        n_fail = 0
        while True:
            h = min(self._h, self._hmax)
            last = False
            if self._tstop is not None and t + 1.01 * h >= self._tstop:
                h = self._tstop - t
                last = True
            hmin = self._hmin
            if hmin is None:
                hmin = 16 * EPS * max(abs(t), abs(t + h), 1.0)
            if h < hmin:
                raise IntegrationError("step size too small", t, h)

            k = self.order
            t_new = self._tstop if last else t + h
            y_pred = self._predict(t_new, h, k)

            nodes = np.array([t_new] + self._history_t[::-1][:k], dtype=np.float64)
            a = bdf_coefficients(nodes)
            alpha = a[0]
            beta = a[1:] @ np.array(self._history_y[::-1][:k])

            y_new = self._newton(t_new, y_pred, alpha, beta, h)
            if y_new is None:
                n_fail += 1
                logger.debug(
                    "Newton iteration failed at t = %.6g with h = %.3e", t_new, h
                )
                self._h = h / 4
                if n_fail >= 3:
                    self._reset_history()
                continue

            mask = self._differential
            err = wrms((y_new - y_pred)[mask] / (k + 1), w[mask])
            if err > 1:
                n_fail += 1
                logger.debug(
                    "Step rejected at t = %.6g with h = %.3e, order %d, error %.3e",
                    t_new, h, k, err,
                )
                self._h = h * max(0.2, 0.9 * err ** (-1 / (k + 1)))
                if n_fail >= 3:
                    self._reset_history()
                continue
            break

        yp_new = alpha * y_new + beta
        self._history_t.append(t_new)
        self._history_y.append(y_new.copy())
        if len(self._history_t) > self._max_order + 1:
            del self._history_t[0]
            del self._history_y[0]
        self._t = t_new
        self._y = y_new
        self._yp = yp_new
        self._n_steps += 1

        factor = 5.0 if err == 0 else min(5.0, max(0.2, 0.9 * err ** (-1 / (k + 1))))
        if n_fail:
            factor = min(factor, 1.0)
        if not last:
            self._h = h * factor
        self._done = last
        logger.debug(
            "Step %d accepted: t = %.6g, h = %.3e, order %d, error %.3e",
            self._n_steps, t_new, h, k, err,
        )
        return self._t, self._y.copy(), self._yp.copy()


def dae_iterator(
    fun: Callable[[float, VecFloat, VecFloat], VecFloat],
    y0: VecFloat,
    t0: float,
    **options,
) -> Iterator[tuple[float, VecFloat, VecFloat]]:
    """Iterate over the accepted steps of :class:`DAEIntegrator`.

    Options are passed verbatim to :class:`DAEIntegrator`.

    Args:
        fun: Residual function ``F(t, y, yp)``.
        y0: Initial state.
        t0: Initial time.

    Yields:
        Time, state and derivative of the state after each step.
    """
    integrator = DAEIntegrator(fun, y0, t0, **options)
    while not integrator.done:
        yield integrator.step()
