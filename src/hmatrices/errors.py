"""
Exceptions and warnings raised by ``hmatrices``.

Structural problems (bad parameters, incompatible shapes, forbidden element
access) are errors and abort at the point of misuse. Numerical degradations
are inherent to hierarchical approximations, so they are reported as warnings
and the computation continues.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "ShapeMismatchError",
    "UsageError",
    "ConvergenceWarning",
    "IllConditioningWarning",
]


class ConfigurationError(ValueError):
    """An invalid parameter was passed to a splitter, compressor or operation"""


class ShapeMismatchError(ValueError):
    """The operands of a hierarchical operation have incompatible shapes"""


class UsageError(RuntimeError):
    """Direct element access on an :class:`HMatrix` with the guard disabled"""


class ConvergenceWarning(RuntimeWarning):
    """A compressor could not reach its tolerance within its rank budget"""


class IllConditioningWarning(RuntimeWarning):
    """A diagonal block was found to be (nearly) singular"""
