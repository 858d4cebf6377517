"""
Kernel functions define the matrices that ``hmatrices`` compresses: the entry
``(i, j)`` of the matrix is the value of the kernel at the ``i``-th target
point and the ``j``-th source point. Any pure function of two points can be
used through :class:`Custom`, and the usual building blocks can be combined
with ``+`` and ``*``.
"""

__all__ = [
    "Distance",
    "L1Distance",
    "L2Distance",
    "Kernel",
    "Custom",
    "Sum",
    "Product",
    "Constant",
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Laplace",
    "Helmholtz",
]

from hmatrices.kernels.base import Constant, Custom, Kernel, Product, Sum
from hmatrices.kernels.distance import Distance, L1Distance, L2Distance
from hmatrices.kernels.stationary import (
    Exp,
    ExpSquared,
    Helmholtz,
    Laplace,
    Matern32,
    Stationary,
)
