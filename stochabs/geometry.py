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
Convex polytopes, halfspaces and unions of polytopes.

A L{Polytope} is kept in both vertex and halfspace form. Both forms are
canonical: vertices are the extreme points and halfspaces are the facets, so
no representation carries redundant elements. Polytopes which are unbounded
or not full-dimensional are treated as empty, which is how all degenerate
results of the operations below are reported. Only malformed input raises.

A L{Region} is an ordered collection of polytopes of the same dimension. The
operations producing regions keep their members disjoint up to boundaries.

See Also
========
L{polytope.Polytope}, L{polytope.Region}
"""
import itertools
import logging
import math

import numpy as np
import ply.lex as lex
import ply.yacc as yacc
import polytope as pc
from scipy.optimize import linprog
from scipy.spatial import ConvexHull, Delaunay, HalfspaceIntersection, QhullError

from .linalg import (TOL, as_matrix, as_points, as_vector, assert_equal_dims,
                     are_close, minkowski_xpy, norm2)

logger = logging.getLogger(__name__)

# Number of rejection sampling trials before falling back to a random convex
# combination of the vertices
_MAX_REJECTIONS = 1000


class Halfspace(object):
    """Closed halfspace {x : normal . x <= offset} with a unit normal.

    A zero normal is normalized to the trivial halfspace (offset +inf, the
    whole space) or to the infeasible one (offset -inf, nothing).

    @ivar normal: unit normal vector
    @type normal: L{ndarray}

    @ivar offset: signed distance of the boundary from the origin
    @type offset: C{float}
    """
    def __init__(self, normal, offset):
        self.normal = np.asarray(normal, dtype=float)
        self.offset = float(offset)

    @classmethod
    def normalized(cls, normal, offset):
        """Create a halfspace with normal rescaled to unit length.

        @type normal: array_like
        @type offset: C{float}

        @rtype: L{Halfspace}
        """
        normal = as_vector(normal)
        offset = float(offset)
        if math.isnan(offset):
            raise ValueError('Halfspace offset is NaN')
        norm = norm2(normal)
        if norm < TOL:
            return cls(np.zeros_like(normal), math.inf if offset > -TOL else -math.inf)
        return cls(normal / norm, offset / norm)

    @classmethod
    def parse(cls, text, variables):
        """Parse a linear inequality such as C{"x - 2y <= 1"} or C{"x > 1e-3"}.

        @param text: inequality with one of <, <=, >, >=
        @param variables: names of the coordinates, in order
        @type variables: C{list} of C{str}

        @rtype: L{Halfspace}
        """
        global _parser
        if _parser is None:
            _parser = LinearInequalityParser()
        lhs, op, rhs = _parser.parse(text)
        lcoef, lconst = _coefficients(lhs, variables)
        rcoef, rconst = _coefficients(rhs, variables)
        if op.startswith('<'):
            return cls.normalized(lcoef - rcoef, rconst - lconst)
        return cls.normalized(rcoef - lcoef, lconst - rconst)

    @property
    def dim(self):
        return self.normal.shape[0]

    @property
    def halfspaces(self):
        return (self,)

    @property
    def is_trivial(self):
        return self.offset == math.inf

    @property
    def is_infeasible(self):
        return self.offset == -math.inf

    def flip(self):
        """Closure of the complement."""
        return Halfspace(-self.normal, -self.offset)

    def contains(self, point):
        return float(np.dot(self.normal, point)) - self.offset < TOL

    def contains_all(self, points):
        return bool(np.all(np.dot(points, self.normal) - self.offset < TOL))

    def is_same_as(self, other):
        if self.offset == other.offset:
            return are_close(self.normal, other.normal)
        return (abs(self.offset - other.offset) < TOL and
                are_close(self.normal, other.normal))

    def translate(self, v):
        return Halfspace.normalized(self.normal, self.offset + float(np.dot(self.normal, v)))

    def apply_right(self, m):
        """Halfspace {x : m x in self}."""
        return Halfspace.normalized(np.dot(self.normal, m), self.offset)

    def serialize(self):
        return {'normal': self.normal.tolist(), 'offset': self.offset}

    @classmethod
    def deserialize(cls, data):
        return cls.normalized(data['normal'], data['offset'])

    def __repr__(self):
        return 'Halfspace(normal={n}, offset={o})'.format(n=self.normal.tolist(), o=self.offset)


class LinearInequalityParser(object):
    """LALR parser of linear inequalities over named coordinates.

    Each side parses to a C{dict} from variable name to coefficient, with the
    constant term under C{None}. Terms are written C{2x}, C{2 * x}, C{x} or
    C{2}; numbers may carry a decimal exponent.
    """
    tokens = ['REAL', 'IDENTIFIER', 'PLUS', 'MINUS', 'TIMES', 'LEQ', 'GEQ', 'LT', 'GT']

    start = 'inequality'

    def __init__(self):
        self.lexer = lex.lex(module=self)
        self.parser = yacc.yacc(module=self, debug=False, write_tables=False)

    def parse(self, text):
        """Return C{(lhs, op, rhs)}.

        @raise ValueError: if text is not a linear inequality
        """
        return self.parser.parse(text, lexer=self.lexer)

    # Lexer
    def t_LEQ(self, t):
        r'<='
        return t

    def t_GEQ(self, t):
        r'>='
        return t

    def t_LT(self, t):
        r'<'
        return t

    def t_GT(self, t):
        r'>'
        return t

    def t_PLUS(self, t):
        r'\+'
        return t

    def t_MINUS(self, t):
        r'-'
        return t

    def t_TIMES(self, t):
        r'\*'
        return t

    def t_REAL(self, t):
        r'(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?'
        t.value = float(t.value)
        return t

    def t_IDENTIFIER(self, t):
        r'[A-Za-z_]\w*'
        return t

    def t_error(self, t):
        raise ValueError('Unexpected character {c!r} at position {i}'.format(
            c=t.value[0], i=t.lexpos))

    t_ignore = ' \t'

    # Parser
    def p_inequality(self, p):
        """
        inequality : expression LT expression
                   | expression LEQ expression
                   | expression GT expression
                   | expression GEQ expression
        """
        p[0] = (p[1], p[2], p[3])

    def p_expression_sum(self, p):
        """
        expression : expression PLUS term
                   | expression MINUS term
        """
        p[0] = _add_term(p[1], p[3], p[2] == '-')

    def p_expression_signed(self, p):
        """
        expression : PLUS term
                   | MINUS term
        """
        p[0] = _add_term({}, p[2], p[1] == '-')

    def p_expression_term(self, p):
        """
        expression : term
        """
        p[0] = _add_term({}, p[1], False)

    def p_term_constant(self, p):
        """
        term : REAL
        """
        p[0] = (None, p[1])

    def p_term_variable(self, p):
        """
        term : IDENTIFIER
        """
        p[0] = (p[1], 1.0)

    def p_term_scaled(self, p):
        """
        term : REAL IDENTIFIER
             | REAL TIMES IDENTIFIER
        """
        p[0] = (p[len(p) - 1], p[1])

    def p_error(self, p):
        if p is None:
            raise ValueError('Not a linear inequality')
        raise ValueError('Unexpected {v!r} at position {i}'.format(v=p.value, i=p.lexpos))


_parser = None


def _add_term(expr, term, negate):
    var, value = term
    expr[var] = expr.get(var, 0.0) + (-value if negate else value)
    return expr


def _coefficients(expr, variables):
    coef = np.zeros(len(variables))
    for var, value in expr.items():
        if var is None:
            continue
        if var not in variables:
            raise ValueError('Unknown variable {v!r}'.format(v=var))
        coef[variables.index(var)] += value
    return coef, expr.get(None, 0.0)


def _facet_halfspaces(equations):
    """Convert Qhull facet equations to distinct halfspaces.

    Qhull triangulates its output, so facets of a polytope in dimension 3 and
    above may appear several times.
    """
    halfspaces = []
    for eq in equations:
        h = Halfspace.normalized(eq[:-1], -eq[-1])
        if not any(h.is_same_as(g) for g in halfspaces):
            halfspaces.append(h)
    return tuple(halfspaces)


def _is_bounded(a):
    """Whether {x : a x <= b} is bounded for any b making it non-empty.

    The recession cone {d : a d <= 0} is trivial iff a has full column rank
    and some strictly positive y satisfies a^T y = 0.
    """
    m, n = a.shape
    if np.linalg.matrix_rank(a) < n:
        return False
    res = linprog(np.zeros(m), A_eq=a.T, b_eq=np.zeros(n),
                  bounds=[(1.0, None)] * m, method='highs')
    return res.status == 0


def _extents_overlap(ext1, ext2):
    return bool(np.all(np.minimum(ext1[:, 1], ext2[:, 1]) -
                       np.maximum(ext1[:, 0], ext2[:, 0]) > TOL))


class Polytope(object):
    """Bounded convex polytope.

    Use the constructors L{hull}, L{from_halfspaces}, L{from_box}, L{empty}
    or L{deserialize}; the initializer trusts its arguments.

    @ivar dim: dimension of the ambient space
    @type dim: C{int}
    """
    def __init__(self, dim, vertices, halfspaces):
        self.dim = dim
        vertices.setflags(write=False)
        self._vertices = vertices
        self._halfspaces = tuple(halfspaces)
        self._a = None
        self._b = None
        self._volume = None
        self._centroid = None
        self._extent = None

    @classmethod
    def empty(cls, dim):
        return cls(dim, np.empty((0, dim)), ())

    @classmethod
    def hull(cls, points, dim=None):
        """Convex hull of a point set.

        @param points: k x dim array of points
        @param dim: dimension, required if points may be empty
        @type dim: C{int}

        @return: the hull, empty if the points do not span a full-dimensional set
        @rtype: L{Polytope}
        """
        points = as_points(points, dim)
        dim = points.shape[1]
        if points.shape[0] <= dim:
            return cls.empty(dim)
        if dim == 1:
            return cls._interval(points[:, 0].min(), points[:, 0].max())
        try:
            qhull = ConvexHull(points)
        except QhullError:
            return cls.empty(dim)
        if qhull.volume < TOL:
            return cls.empty(dim)
        poly = cls(dim, points[qhull.vertices], _facet_halfspaces(qhull.equations))
        poly._volume = float(qhull.volume)
        return poly

    @classmethod
    def _interval(cls, lo, hi):
        if hi - lo < TOL:
            return cls.empty(1)
        return cls(1, np.array([[lo], [hi]], dtype=float),
                   (Halfspace([-1.0], -lo), Halfspace([1.0], hi)))

    @classmethod
    def from_halfspaces(cls, halfspaces, dim, bounded=False):
        """Intersection of halfspaces, without redundant ones.

        @param halfspaces: iterable of L{Halfspace}
        @param dim: dimension of the halfspaces
        @param bounded: whether the intersection is known to be bounded,
            which skips the boundedness test
        @type bounded: C{bool}

        @rtype: L{Polytope}
        """
        normals = []
        offsets = []
        for h in halfspaces:
            assert_equal_dims(h.dim, dim)
            if h.is_infeasible:
                return cls.empty(dim)
            if h.is_trivial:
                continue
            normals.append(h.normal)
            offsets.append(h.offset)
        if len(offsets) <= dim:
            return cls.empty(dim)
        a = np.array(normals)
        b = np.array(offsets)
        if dim == 1:
            uppers = b[a[:, 0] > 0]
            lowers = -b[a[:, 0] < 0]
            if uppers.size == 0 or lowers.size == 0:
                return cls.empty(1)
            return cls._interval(lowers.max(), uppers.min())
        if not bounded and not _is_bounded(a):
            return cls.empty(dim)
        radius, center = pc.cheby_ball(pc.Polytope(a, b))
        if center is None or radius < TOL:
            return cls.empty(dim)
        center = np.asarray(center, dtype=float).reshape(-1)
        try:
            hsi = HalfspaceIntersection(np.hstack([a, -b[:, np.newaxis]]), center)
        except QhullError:
            return cls.empty(dim)
        points = hsi.intersections
        points = points[np.all(np.isfinite(points), axis=1)]
        return cls.hull(points, dim)

    @classmethod
    def from_box(cls, box):
        """Axis-aligned box from a dim x 2 array of [lower, upper] bounds."""
        box = as_matrix(box, cols=2)
        if np.any(box[:, 1] - box[:, 0] < TOL):
            return cls.empty(box.shape[0])
        return cls.hull(list(itertools.product(*box)), box.shape[0])

    @classmethod
    def from_pc(cls, poly):
        """Convert a L{polytope.Polytope}."""
        dim = poly.dim
        if pc.is_empty(poly) or not pc.is_fulldim(poly):
            return cls.empty(dim)
        vertices = pc.extreme(poly)
        if vertices is None:
            return cls.empty(dim)
        return cls.hull(vertices, dim)

    def to_pc(self):
        """Convert to a L{polytope.Polytope}."""
        if self.is_empty:
            return pc.Polytope()
        return pc.Polytope(self.a, self.b, minrep=True, vertices=np.array(self._vertices))

    @classmethod
    def deserialize(cls, data, dim=None):
        return cls.hull(data, dim)

    def serialize(self):
        return self._vertices.tolist()

    @property
    def vertices(self):
        return self._vertices

    @property
    def halfspaces(self):
        return self._halfspaces

    @property
    def a(self):
        """Unit normals of the facets, one per row."""
        if self._a is None:
            self._a = np.array([h.normal for h in self._halfspaces]).reshape(-1, self.dim)
            self._b = np.array([h.offset for h in self._halfspaces])
        return self._a

    @property
    def b(self):
        if self._b is None:
            self.a
        return self._b

    @property
    def is_empty(self):
        return self._vertices.shape[0] == 0

    @property
    def volume(self):
        if self._volume is None:
            if self.is_empty:
                self._volume = 0.0
            elif self.dim == 1:
                self._volume = float(self._vertices[1, 0] - self._vertices[0, 0])
            else:
                self._volume = float(ConvexHull(self._vertices).volume)
        return self._volume

    @property
    def centroid(self):
        """Centre of mass, None if empty."""
        if self._centroid is None and not self.is_empty:
            if self.dim == 1:
                self._centroid = self._vertices.mean(axis=0)
            else:
                simplices = self._vertices[Delaunay(self._vertices).simplices]
                edges = simplices[:, 1:, :] - simplices[:, :1, :]
                weights = np.abs(np.linalg.det(edges))
                self._centroid = np.dot(weights, simplices.mean(axis=1)) / weights.sum()
        return self._centroid

    @property
    def extent(self):
        """dim x 2 array of coordinate-wise [min, max], None if empty."""
        if self._extent is None and not self.is_empty:
            self._extent = np.column_stack([self._vertices.min(axis=0),
                                            self._vertices.max(axis=0)])
        return self._extent

    @property
    def bounding_box(self):
        if self.is_empty:
            return self
        return Polytope.from_box(self.extent)

    def contains(self, point):
        if self.is_empty:
            return False
        point = as_vector(point, self.dim)
        return bool(np.all(np.dot(self.a, point) - self.b < TOL))

    def _contains_all(self, points):
        return bool(np.all(np.dot(points, self.a.T) - self.b < TOL))

    def is_same_as(self, other):
        assert_equal_dims(self.dim, other.dim)
        if self.is_empty or other.is_empty:
            return self.is_empty and other.is_empty
        return self._contains_all(other.vertices) and other._contains_all(self._vertices)

    def translate(self, v):
        v = as_vector(v, self.dim)
        if self.is_empty:
            return self
        poly = Polytope(self.dim, self._vertices + v,
                        [h.translate(v) for h in self._halfspaces])
        poly._volume = self._volume
        return poly

    def invert(self):
        """Point reflection through the origin."""
        if self.is_empty:
            return self
        poly = Polytope(self.dim, -self._vertices,
                        [Halfspace(-h.normal, h.offset) for h in self._halfspaces])
        poly._volume = self._volume
        return poly

    def scale(self, factor):
        """Image under x -> factor x."""
        factor = float(factor)
        if self.is_empty or factor < TOL:
            return Polytope.empty(self.dim)
        return Polytope(self.dim, self._vertices * factor,
                        [Halfspace(h.normal, h.offset * factor) for h in self._halfspaces])

    def apply(self, m):
        """Image under the linear map m."""
        m = as_matrix(m, cols=self.dim)
        if self.is_empty:
            return Polytope.empty(m.shape[0])
        return Polytope.hull(np.dot(self._vertices, m.T), m.shape[0])

    def pullback(self, m):
        """Halfspaces of the preimage {x : m x in self}."""
        m = as_matrix(m, rows=self.dim)
        if self.is_empty:
            return (Halfspace(np.zeros(m.shape[1]), -math.inf),)
        return tuple(h.apply_right(m) for h in self._halfspaces)

    def apply_right(self, m):
        """Preimage {x : m x in self}, empty if unbounded."""
        m = as_matrix(m, rows=self.dim)
        return Polytope.from_halfspaces(self.pullback(m), m.shape[1])

    def minkowski(self, other):
        assert_equal_dims(self.dim, other.dim)
        if self.is_empty or other.is_empty:
            return Polytope.empty(self.dim)
        return Polytope.hull(minkowski_xpy(self._vertices, other.vertices), self.dim)

    def pontryagin(self, other):
        """Erosion {x : x + other in self}.

        Eroding by an empty polytope gives an empty polytope.
        """
        assert_equal_dims(self.dim, other.dim)
        if self.is_empty or other.is_empty:
            return Polytope.empty(self.dim)
        support = np.max(np.dot(other.vertices, self.a.T), axis=0)
        halfspaces = [Halfspace(n, o) for n, o in zip(self.a, self.b - support)]
        return Polytope.from_halfspaces(halfspaces, self.dim, bounded=True)

    def intersect(self, *others):
        """Intersection with halfspaces and polytopes.

        @param others: L{Halfspace} or L{Polytope} objects

        @rtype: L{Polytope}
        """
        if self.is_empty:
            return self
        halfspaces = []
        for other in others:
            assert_equal_dims(self.dim, other.dim)
            if isinstance(other, Polytope):
                if other.is_empty or not _extents_overlap(self.extent, other.extent):
                    return Polytope.empty(self.dim)
            halfspaces.extend(other.halfspaces)
        if not halfspaces:
            return self
        active = [h for h in halfspaces if not h.contains_all(self._vertices)]
        if not active:
            return self
        return Polytope.from_halfspaces(self._halfspaces + tuple(active), self.dim,
                                        bounded=True)

    def do_intersect(self, other):
        return not self.intersect(other).is_empty

    def split(self, *halfspaces):
        """Cut by each halfspace in turn.

        @return: the non-empty pieces, each on one side of every halfspace
        @rtype: L{Region}
        """
        pieces = [self] if not self.is_empty else []
        for h in halfspaces:
            cut = []
            for piece in pieces:
                if h.contains_all(piece.vertices):
                    cut.append(piece)
                    continue
                flipped = h.flip()
                if flipped.contains_all(piece.vertices):
                    cut.append(piece)
                    continue
                for part in (piece.intersect(h), piece.intersect(flipped)):
                    if not part.is_empty:
                        cut.append(part)
            pieces = cut
        return Region(pieces, self.dim)

    def remove(self, *others):
        """Set difference, by recursively cutting along the facets of others.

        @param others: L{Polytope}, L{Halfspace} or L{Region} objects

        @rtype: L{Region}
        """
        flat = []
        for other in others:
            if isinstance(other, Region):
                flat.extend(other.polytopes)
            else:
                assert_equal_dims(self.dim, other.dim)
                flat.append(other)
        if self.is_empty:
            return Region.empty(self.dim)
        return Region(_regiondiff(self, flat), self.dim)

    def sample(self, rng=None):
        """Uniformly distributed random point, by rejection in the bounding box."""
        if self.is_empty:
            raise ValueError('Cannot sample from an empty polytope')
        if rng is None:
            rng = np.random.default_rng()
        ext = self.extent
        for _ in range(_MAX_REJECTIONS):
            point = rng.uniform(ext[:, 0], ext[:, 1])
            if self.contains(point):
                return point
        logger.debug('Rejection sampling failed, using a convex combination')
        weights = rng.dirichlet(np.ones(self._vertices.shape[0]))
        return np.dot(weights, self._vertices)

    def __repr__(self):
        return 'Polytope(dim={d}, vertices={v})'.format(d=self.dim, v=self._vertices.tolist())


def _regiondiff(poly, others):
    k = 0
    while k < len(others) and not poly.do_intersect(others[k]):
        k += 1
    if k == len(others):
        return [poly]
    pieces = []
    for h in others[k].halfspaces:
        candidate = poly.intersect(h.flip())
        if not candidate.is_empty:
            pieces.extend(_regiondiff(candidate, others[k + 1:]))
        poly = poly.intersect(h)
        if poly.is_empty:
            break
    return pieces


class Region(object):
    """Union of convex polytopes of the same dimension.

    Empty members are dropped on construction.

    @ivar polytopes: the members
    @type polytopes: C{tuple} of L{Polytope}
    """
    def __init__(self, polytopes=(), dim=None):
        members = []
        for poly in polytopes:
            if dim is None:
                dim = poly.dim
            assert_equal_dims(poly.dim, dim)
            if not poly.is_empty:
                members.append(poly)
        if dim is None:
            raise ValueError('Cannot infer the dimension of an empty region')
        self.dim = dim
        self.polytopes = tuple(members)

    @classmethod
    def empty(cls, dim):
        return cls((), dim)

    @classmethod
    def deserialize(cls, data, dim=None):
        return cls([Polytope.deserialize(p, dim) for p in data], dim)

    def serialize(self):
        return [p.serialize() for p in self.polytopes]

    def __len__(self):
        return len(self.polytopes)

    def __iter__(self):
        return iter(self.polytopes)

    def __getitem__(self, index):
        return self.polytopes[index]

    def __repr__(self):
        return 'Region(dim={d}, polytopes={n})'.format(d=self.dim, n=len(self.polytopes))

    @property
    def is_empty(self):
        return len(self.polytopes) == 0

    @property
    def volume(self):
        return sum(p.volume for p in self.polytopes)

    @property
    def extent(self):
        if self.is_empty:
            return None
        exts = np.array([p.extent for p in self.polytopes])
        return np.column_stack([exts[:, :, 0].min(axis=0), exts[:, :, 1].max(axis=0)])

    @property
    def bounding_box(self):
        if self.is_empty:
            return Polytope.empty(self.dim)
        return Polytope.from_box(self.extent)

    def hull(self):
        if self.is_empty:
            return Polytope.empty(self.dim)
        return Polytope.hull(np.vstack([p.vertices for p in self.polytopes]), self.dim)

    def contains(self, point):
        return any(p.contains(point) for p in self.polytopes)

    def covers(self, other):
        """Whether other is a subset of self."""
        return as_region(other, self.dim).remove(self).is_empty

    def is_same_as(self, other):
        other = as_region(other, self.dim)
        return self.covers(other) and other.covers(self)

    def do_intersect(self, other):
        other = as_region(other, self.dim)
        return any(x.do_intersect(y) for x in self.polytopes for y in other.polytopes)

    def simplify(self):
        """Disjoint region with the same union, larger members kept whole."""
        members = sorted(self.polytopes, key=lambda p: -p.volume)
        pieces = []
        for i, poly in enumerate(members):
            pieces.extend(poly.remove(*members[:i]).polytopes)
        return Region(pieces, self.dim)

    def union(self, other):
        other = as_region(other, self.dim)
        return Region(self.polytopes + other.polytopes, self.dim).simplify()

    def intersect(self, other):
        """Intersection with a halfspace, polytope or region."""
        if isinstance(other, Halfspace):
            return Region([p.intersect(other) for p in self.polytopes], self.dim)
        other = as_region(other, self.dim)
        return Region([x.intersect(y) for x in self.polytopes for y in other.polytopes],
                      self.dim)

    def remove(self, other):
        """Difference with a halfspace, polytope or region."""
        if isinstance(other, Halfspace):
            others = (other,)
        else:
            others = as_region(other, self.dim).polytopes
        pieces = []
        for poly in self.polytopes:
            pieces.extend(poly.remove(*others).polytopes)
        return Region(pieces, self.dim)

    def minkowski(self, poly):
        return Region([x.minkowski(poly) for x in self.polytopes], self.dim).simplify()

    def pontryagin(self, poly):
        """Erosion of the union, through the complement in the bounding box."""
        if self.is_empty:
            return self
        if len(self.polytopes) == 1:
            return Region([self.polytopes[0].pontryagin(poly)], self.dim)
        bbox = self.bounding_box
        outside = bbox.remove(*self.polytopes)
        return bbox.pontryagin(poly).remove(outside.minkowski(poly.invert()))

    def scale(self, factor):
        return Region([p.scale(factor) for p in self.polytopes], self.dim)

    def sample(self, rng=None):
        """Uniformly distributed random point of the union."""
        if self.is_empty:
            raise ValueError('Cannot sample from an empty region')
        if rng is None:
            rng = np.random.default_rng()
        volumes = np.array([p.volume for p in self.polytopes])
        index = rng.choice(len(self.polytopes), p=volumes / volumes.sum())
        return self.polytopes[index].sample(rng)


PolytopeUnion = Region


def as_region(obj, dim=None):
    """Wrap a polytope or an iterable of polytopes as a L{Region}."""
    if isinstance(obj, Region):
        if dim is not None:
            assert_equal_dims(obj.dim, dim)
        return obj
    if isinstance(obj, Polytope):
        if dim is not None:
            assert_equal_dims(obj.dim, dim)
        return Region([obj], obj.dim)
    return Region(obj, dim)
