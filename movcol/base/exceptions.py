# Copyright (c) 2024 Yilin Zou
"""Exception classes raised by movcol.

All exceptions derive from :class:`MovcolError`. Errors caused by invalid
arguments additionally derive from :class:`ValueError`, and errors caused
by a failing iteration from :class:`RuntimeError`, so callers may catch
either the package-specific or the built-in type.
"""
from typing import Optional


class MovcolError(Exception):
    """Base class of all movcol errors."""


class PreconditionError(MovcolError, ValueError):
    """Raised when the discretization parameters are invalid, before any
    work is done."""


class CallbackSizeError(MovcolError, ValueError):
    """Raised when a user supplied function returns the wrong number of
    values."""

    def __init__(self, name: str, expected: int, got: int, at_least: bool = False):
        """
        Args:
            name: Name of the offending function, e.g. ``"Bl"``.
            expected: Number of values required.
            got: Number of values returned.
            at_least: Whether ``expected`` is a lower bound rather than an
                exact count.
        """
        self.name = name
        self.expected = expected
        self.got = got
        qualifier = "at least " if at_least else ""
        super().__init__(
            f"{name} must return {qualifier}{expected} values, got {got}"
        )


class ConvergenceError(MovcolError, RuntimeError):
    """Raised when the mesh relaxation does not converge within the allowed
    number of steps."""

    def __init__(
        self,
        steps: int,
        max_steps: int,
        residual: float,
        tolerance: float,
        message: Optional[str] = None,
    ):
        self.steps = steps
        self.max_steps = max_steps
        self.residual = residual
        self.tolerance = tolerance
        if message is None:
            message = f"Unable to converge in {max_steps} steps"
        super().__init__(
            f"{message} (steps: {steps}, |xt|_inf: {residual:.2e}, "
            f"tolerance: {tolerance:.2e})"
        )


class IntegrationError(MovcolError, RuntimeError):
    """Raised when the DAE integrator cannot advance the solution."""

    def __init__(self, message: str, t: float, h: float):
        self.t = t
        self.h = h
        super().__init__(f"{message} at t = {t:.6g} (step size {h:.3e})")
