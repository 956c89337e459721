# Copyright (c) 2024 Yilin Zou
"""Submodule for integrating implicit differential-algebraic systems
``F(t, y, y') = 0``.

The solvers of movcol consume the integrator through the iteration protocol
only: a lazy sequence of ``(t, y, y')`` triples satisfying the system.
"""

from .bdf import DAEIntegrator, dae_iterator

__all__ = [
    "DAEIntegrator",
    "dae_iterator",
]
