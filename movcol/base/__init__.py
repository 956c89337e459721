# Copyright (c) 2024 Yilin Zou
"""This submodule contains the collocation machinery of the movcol package:
coefficient tables, derivative reconstruction inside an element, and the
residuals of the solution and of the moving mesh."""
