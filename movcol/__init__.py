# Copyright (c) 2024 Yilin Zou
"""# movcol: MOVing COLlocation

**movcol** solves time-dependent PDE systems of the form
``F(t, x, u, u_t) = d/dx G(t, x, u, u_t)`` in one space dimension.

The solution is represented by Hermite polynomials between mesh points and
collocated at Gauss points. The mesh points move with the solution,
concentrating where a user supplied monitor function is large. Mesh and
solution form one differential-algebraic system, which is integrated by a
BDF method.
"""

from .base.collocation import CollocationData
from .base.exceptions import (
    CallbackSizeError,
    ConvergenceError,
    IntegrationError,
    MovcolError,
    PreconditionError,
)
from .base.problem import Problem
from .solver import Snapshot, meshinit, movcol_iterate, movcol_solve

__author__ = "Yilin Zou"
__copyright__ = "Copyright (c) 2024 Yilin Zou"

__all__ = [
    "CallbackSizeError",
    "CollocationData",
    "ConvergenceError",
    "IntegrationError",
    "MovcolError",
    "PreconditionError",
    "Problem",
    "Snapshot",
    "meshinit",
    "movcol_iterate",
    "movcol_solve",
]
