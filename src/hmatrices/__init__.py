"""
``hmatrices`` is a library for hierarchical matrices in Python, built on top
of `jax <https://github.com/google/jax>`_ and `equinox
<https://github.com/patrick-kidger/equinox>`_. A hierarchical matrix
approximates a dense matrix of pairwise interactions between points (for
example the values of a kernel function) by splitting it recursively into
blocks and storing the blocks that couple well separated groups of points in
low-rank form. This gives near linear storage and arithmetic costs.

The usual workflow is to build a :class:`ClusterTree` over the points, wrap a
kernel in a :class:`KernelMatrix`, and call :func:`HMatrix.assemble`:

.. code-block:: python

    tree = hmatrices.ClusterTree(points)
    K = hmatrices.KernelMatrix(hmatrices.kernels.Laplace(), points)
    H = hmatrices.HMatrix.assemble(K, tree, comp=hmatrices.PartialACA(rtol=1e-8))
    y = H @ x
"""

__author__ = "hmatrices developers"
__email__ = "hmatrices@users.noreply.github.com"
__uri__ = "https://github.com/hmatrices/hmatrices"
__license__ = "MIT"
__description__ = "Hierarchical matrices built on jax"

from hmatrices import kernels as kernels
from hmatrices.addition import hadd as hadd, hsub as hsub
from hmatrices.admissibility import (
    Admissibility as Admissibility,
    StrongAdmissibilityStd as StrongAdmissibilityStd,
    WeakAdmissibilityStd as WeakAdmissibilityStd,
)
from hmatrices.assembly import assemble as assemble
from hmatrices.clustertree import (
    CardinalitySplitter as CardinalitySplitter,
    ClusterTree as ClusterTree,
    DyadicSplitter as DyadicSplitter,
    GeometricMinimalSplitter as GeometricMinimalSplitter,
    GeometricSplitter as GeometricSplitter,
    build_cluster_tree as build_cluster_tree,
)
from hmatrices.compressors import ACA as ACA, TSVD as TSVD, PartialACA as PartialACA
from hmatrices.errors import (
    ConfigurationError as ConfigurationError,
    ConvergenceWarning as ConvergenceWarning,
    IllConditioningWarning as IllConditioningWarning,
    ShapeMismatchError as ShapeMismatchError,
    UsageError as UsageError,
)
from hmatrices.geometry import HyperRectangle as HyperRectangle
from hmatrices.hmatrices_version import __version__ as __version__
from hmatrices.hmatrix import (
    DenseBlock as DenseBlock,
    HMatrix as HMatrix,
    InternalBlock as InternalBlock,
    LowRankBlock as LowRankBlock,
)
from hmatrices.inverse import inv as inv
from hmatrices.kernelmatrix import KernelMatrix as KernelMatrix
from hmatrices.lu import HLU as HLU, lu as lu
from hmatrices.multiplication import hmul as hmul
from hmatrices.permuted import PermutedMatrix as PermutedMatrix
from hmatrices.rkmatrix import RkMatrix as RkMatrix
