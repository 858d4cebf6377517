"""
Admissibility conditions decide which blocks of a hierarchical matrix are
compressed. They are pure predicates over a pair of cluster tree nodes: the
*target* (row) node and the *source* (column) node.
"""

from __future__ import annotations

__all__ = ["Admissibility", "StrongAdmissibilityStd", "WeakAdmissibilityStd"]

from abc import abstractmethod

import equinox as eqx

from hmatrices.clustertree import ClusterTree
from hmatrices.errors import ConfigurationError


class Admissibility(eqx.Module):
    @abstractmethod
    def __call__(self, target: ClusterTree, source: ClusterTree) -> bool:
        raise NotImplementedError


class StrongAdmissibilityStd(Admissibility):
    r"""The standard strong admissibility condition

    A block is admissible when the two clusters are separated and

    .. math::

        \max(\mathrm{diam}(t),\,\mathrm{diam}(s)) \le \eta\,\mathrm{dist}(t,\,s)

    where the diameters and the distance are computed using the bounding boxes
    of the clusters.

    Args:
        eta: The parameter :math:`\eta`. Larger values give more admissible
            blocks, but with larger ranks.
    """

    eta: float = eqx.field(static=True, default=1.0)

    def __check_init__(self) -> None:
        if not self.eta > 0:
            raise ConfigurationError(f"eta must be positive; got {self.eta}")

    def __call__(self, target: ClusterTree, source: ClusterTree) -> bool:
        dist = target.container.distance(source.container)
        if dist <= 0:
            return False
        diam = max(target.container.diameter, source.container.diameter)
        return diam <= self.eta * dist


class WeakAdmissibilityStd(Admissibility):
    """Every block whose index ranges don't overlap is admissible

    With a single cluster tree for rows and columns this gives the HODLR
    partition where only the diagonal blocks are refined.
    """

    def __call__(self, target: ClusterTree, source: ClusterTree) -> bool:
        return target.hi <= source.lo or source.hi <= target.lo
