# Copyright (c) 2011-2016 by California Institute of Technology
# Copyright (c) 2016 by The Regents of the University of Michigan
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions
# are met:
#
# 1. Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder(s) nor the names of its
#    contributors may be used to endorse or promote products derived
#    from this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED.  IN NO EVENT SHALL THE
# COPYRIGHT HOLDERS OR THE CONTRIBUTORS BE LIABLE FOR ANY DIRECT,
# INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES
# (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION)
# HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT,
# STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING
# IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#
"""
Linear algebra primitives shared by the polytope and system modules.

All geometric comparisons in the package use the absolute tolerance L{TOL}.
Vertex sets are kept as 2-D arrays with one point per row.
"""
import logging

import numpy as np

logger = logging.getLogger(__name__)

TOL = 1.0e-8


class DimensionMismatch(ValueError):
    """Raised when operands of incompatible dimensions meet."""


def assert_equal_dims(n, m):
    if n != m:
        raise DimensionMismatch('Dimension mismatch: {n} != {m}'.format(n=n, m=m))


def as_vector(v, dim=None):
    """Convert v to a flat float array, rejecting non-finite entries.

    @param dim: expected length, checked if given
    @type dim: C{int}

    @rtype: L{ndarray}
    """
    v = np.asarray(v, dtype=float)
    if v.ndim != 1:
        v = v.reshape(-1)
    if not np.all(np.isfinite(v)):
        raise ValueError('Vector with non-finite coordinates: {v}'.format(v=v))
    if dim is not None:
        assert_equal_dims(v.shape[0], dim)
    return v


def as_matrix(m, rows=None, cols=None):
    """Convert m to a 2-D float array, rejecting ragged or non-finite input.

    @rtype: L{ndarray}
    """
    try:
        m = np.array(m, dtype=float)
    except ValueError:
        raise ValueError('Malformed matrix: {m}'.format(m=m))
    if m.ndim == 0:
        m = m.reshape(1, 1)
    elif m.ndim == 1:
        m = m.reshape(-1, 1) if rows is not None and m.shape[0] == rows else m.reshape(1, -1)
    if m.ndim != 2:
        raise ValueError('Expected a matrix, got shape {s}'.format(s=m.shape))
    if not np.all(np.isfinite(m)):
        raise ValueError('Matrix with non-finite entries: {m}'.format(m=m))
    if rows is not None:
        assert_equal_dims(m.shape[0], rows)
    if cols is not None:
        assert_equal_dims(m.shape[1], cols)
    return m


def as_points(points, dim=None):
    """Convert a collection of points to a k x dim array.

    An empty collection needs dim to be given.
    """
    pts = np.asarray(points, dtype=float)
    if pts.size == 0:
        if dim is None:
            raise ValueError('Cannot infer dimension of an empty point set')
        return np.empty((0, dim))
    if pts.ndim == 1:
        pts = pts.reshape(1, -1) if dim is None or pts.shape[0] == dim else pts.reshape(-1, 1)
    if pts.ndim != 2:
        raise ValueError('Malformed point set of shape {s}'.format(s=pts.shape))
    if not np.all(np.isfinite(pts)):
        raise ValueError('Point set with non-finite coordinates')
    if dim is not None:
        assert_equal_dims(pts.shape[1], dim)
    return pts


def norm2(v):
    return float(np.sqrt(np.dot(v, v)))


def are_close(x, y, tol=TOL):
    """Whether two vectors agree coordinate-wise up to tol."""
    return bool(np.all(np.abs(np.asarray(x) - np.asarray(y)) < tol))


def apply(m, points):
    """Image of every row of points under the linear map m."""
    return np.dot(points, m.T)


def minkowski_xpy(xs, ys):
    """All pairwise sums x + y of two vertex sets."""
    return (xs[:, np.newaxis, :] + ys[np.newaxis, :, :]).reshape(-1, xs.shape[1])


def minkowski_xmy(xs, ys):
    """All pairwise differences x - y of two vertex sets."""
    return (xs[:, np.newaxis, :] - ys[np.newaxis, :, :]).reshape(-1, xs.shape[1])


def minkowski_axpy(a, xs, ys):
    """All pairwise A x + y.

    @param a: n x m matrix
    @param xs: k x m vertex set
    @param ys: l x n vertex set

    @return: (k l) x n vertex set
    """
    return minkowski_xpy(apply(a, xs), ys)
