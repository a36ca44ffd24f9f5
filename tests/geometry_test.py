#!/usr/bin/env python
"""Tests of `stochabs.geometry` and `stochabs.linalg`."""
import logging

import numpy as np
import polytope as pc
import pytest

from stochabs.geometry import Halfspace, Polytope, Region, as_region
from stochabs.linalg import DimensionMismatch, as_points, minkowski_axpy

logging.basicConfig()
logger = logging.getLogger(__name__)


def box(*bounds):
    return Polytope.from_box(bounds)


def box_volume_test():
    p = box([0, 4], [0, 3])
    assert not p.is_empty
    assert p.volume == pytest.approx(12.0)
    assert len(p.halfspaces) == 4
    assert p.vertices.shape == (4, 2)
    assert np.allclose(p.centroid, [2.0, 1.5])
    assert np.allclose(p.extent, [[0, 4], [0, 3]])


def degenerate_hull_test():
    assert Polytope.hull([[0, 0], [1, 1], [2, 2]]).is_empty
    assert Polytope.hull([[0, 0], [1, 0]]).is_empty
    assert Polytope.hull(np.empty((0, 2)), dim=2).is_empty
    assert Polytope.from_box([[0, 1], [2, 2]]).is_empty


def redundant_points_test():
    p = Polytope.hull([[0, 0], [2, 0], [0, 2], [2, 2], [1, 1], [1, 0]])
    assert p.vertices.shape[0] == 4
    assert p.is_same_as(box([0, 2], [0, 2]))


def interval_test():
    p = Polytope.hull([[3.0], [-1.0], [0.5]])
    assert p.dim == 1
    assert p.volume == pytest.approx(4.0)
    assert p.contains([0.0])
    assert not p.contains([3.5])
    q = Polytope.from_halfspaces([Halfspace.parse('-1 < x', ['x']),
                                  Halfspace.parse('x < 1', ['x'])], 1)
    assert q.is_same_as(box([-1, 1]))


def from_halfspaces_test():
    variables = ['x', 'y']
    triangle = Polytope.from_halfspaces(
        [Halfspace.parse(t, variables) for t in ('x > 0', 'y > 0', 'x + y < 1')], 2)
    assert triangle.volume == pytest.approx(0.5)
    assert len(triangle.halfspaces) == 3
    # Unbounded
    wedge = Polytope.from_halfspaces(
        [Halfspace.parse(t, variables) for t in ('x > 0', 'y > 0', 'x - y < 1')], 2)
    assert wedge.is_empty
    # Infeasible
    assert Polytope.from_halfspaces(
        [Halfspace.parse(t, variables) for t in ('x > 2', 'x < 1', 'y > 0', 'y < 1')], 2).is_empty


def halfspace_parse_test():
    h = Halfspace.parse('x - 2y <= 1', ['x', 'y'])
    assert np.allclose(h.normal, np.array([1, -2]) / np.sqrt(5))
    assert h.offset == pytest.approx(1 / np.sqrt(5))
    g = Halfspace.parse('2y + 1 >= x', ['x', 'y'])
    assert h.is_same_as(g)
    assert h.flip().contains([0, -10])
    with pytest.raises(ValueError):
        Halfspace.parse('x + z < 1', ['x', 'y'])
    with pytest.raises(ValueError):
        Halfspace.parse('x + y', ['x', 'y'])
    with pytest.raises(ValueError):
        Halfspace.parse('x < y < 1', ['x', 'y'])
    with pytest.raises(ValueError):
        Halfspace.parse('x # 1', ['x', 'y'])


def halfspace_parse_exponent_test():
    h = Halfspace.parse('1e-3x < 1', ['x', 'y'])
    assert np.allclose(h.normal, [1, 0])
    assert h.offset == pytest.approx(1000.0)
    h = Halfspace.parse('x < 2.5E+1', ['x', 'y'])
    assert h.offset == pytest.approx(25.0)
    h = Halfspace.parse('-y >= -1.5e0', ['x', 'y'])
    assert h.is_same_as(Halfspace.parse('y <= 1.5', ['x', 'y']))
    h = Halfspace.parse('2 * x + .5y <= 1', ['x', 'y'])
    assert h.is_same_as(Halfspace.normalized([2, 0.5], 1))


def trivial_halfspace_test():
    assert Halfspace.normalized([0, 0], 1).is_trivial
    assert Halfspace.normalized([0, 0], -1).is_infeasible
    p = box([0, 1], [0, 1])
    assert p.intersect(Halfspace.normalized([0, 0], 1)).is_same_as(p)
    assert p.intersect(Halfspace.normalized([0, 0], -1)).is_empty


def intersect_test():
    p = box([0, 2], [0, 2])
    q = box([1, 3], [1, 3])
    assert p.intersect(q).is_same_as(box([1, 2], [1, 2]))
    assert p.do_intersect(q)
    # Touching only at the boundary
    assert not p.do_intersect(box([2, 3], [0, 2]))
    assert p.intersect(box([5, 6], [5, 6])).is_empty


def remove_test():
    p = box([0, 2], [0, 2])
    q = box([1, 3], [1, 3])
    diff = p.remove(q)
    assert diff.volume == pytest.approx(3.0)
    for i, x in enumerate(diff):
        for y in diff.polytopes[i + 1:]:
            assert not x.do_intersect(y)
    assert not diff.do_intersect(q)
    assert p.remove(p).is_empty
    assert p.remove(box([4, 5], [4, 5])).is_same_as(p)


def split_test():
    p = box([0, 2], [0, 2])
    parts = p.split(Halfspace.parse('x < 1', ['x', 'y']), Halfspace.parse('y < 5', ['x', 'y']))
    assert len(parts) == 2
    assert sorted(x.volume for x in parts) == pytest.approx([2.0, 2.0])
    assert parts.is_same_as(p)


def minkowski_pontryagin_test():
    p = box([0, 1], [0, 1])
    w = box([-0.5, 0.5], [-0.5, 0.5])
    assert p.minkowski(w).is_same_as(box([-0.5, 1.5], [-0.5, 1.5]))
    assert box([0, 4], [0, 4]).pontryagin(box([-1, 1], [-1, 1])).is_same_as(box([1, 3], [1, 3]))
    assert p.pontryagin(box([-1, 1], [-1, 1])).is_empty
    assert p.pontryagin(Polytope.empty(2)).is_empty
    assert p.minkowski(w).pontryagin(w).is_same_as(p)


def region_pontryagin_test():
    region = Region([box([0, 2], [0, 2]), box([2, 4], [0, 2])])
    eroded = region.pontryagin(box([-0.5, 0.5], [-0.5, 0.5]))
    assert eroded.volume == pytest.approx(3.0)
    assert eroded.is_same_as(box([0.5, 3.5], [0.5, 1.5]))


def linear_maps_test():
    p = box([0, 1], [0, 2])
    m = np.array([[2, 0], [0, 0.5]])
    image = p.apply(m)
    assert image.is_same_as(box([0, 2], [0, 1]))
    assert image.apply_right(m).is_same_as(p)
    assert p.translate([1, 1]).is_same_as(box([1, 2], [1, 3]))
    assert p.invert().is_same_as(box([-1, 0], [-2, 0]))
    assert p.scale(2).is_same_as(box([0, 2], [0, 4]))
    # Singular maps have unbounded preimages
    assert p.apply_right(np.array([[1, 0], [0, 0]])).is_empty


def region_test():
    a = box([0, 2], [0, 2])
    b = box([1, 3], [1, 3])
    union = Region([a]).union(b)
    assert union.volume == pytest.approx(7.0)
    assert union.covers(a)
    assert not Region([a]).covers(b)
    assert union.contains([2.5, 2.5])
    assert np.allclose(union.extent, [[0, 3], [0, 3]])
    assert union.hull().volume == pytest.approx(9.0 - 1.0)
    assert Region([a, b]).simplify().volume == pytest.approx(7.0)
    assert union.intersect(Halfspace.parse('x < 1', ['x', 'y'])).volume == pytest.approx(2.0)
    assert union.remove(a).is_same_as(b.remove(a))
    assert Region.empty(2).is_empty
    with pytest.raises(ValueError):
        Region([])


def sample_test():
    rng = np.random.default_rng(7)
    p = Polytope.hull([[0, 0], [1, 0], [0, 1]])
    for _ in range(20):
        assert p.contains(p.sample(rng))
    region = Region([p, box([2, 3], [2, 3])])
    for _ in range(20):
        assert region.contains(region.sample(rng))
    with pytest.raises(ValueError):
        Polytope.empty(2).sample(rng)


def serialization_test():
    p = Polytope.hull([[0, 0], [2, 0], [1, 3]])
    assert Polytope.deserialize(p.serialize(), 2).is_same_as(p)
    region = Region([p, box([5, 6], [0, 1])])
    assert Region.deserialize(region.serialize(), 2).is_same_as(region)
    h = Halfspace.parse('x + y < 1', ['x', 'y'])
    assert Halfspace.deserialize(h.serialize()).is_same_as(h)


def polytope_interop_test():
    p = box([0, 1], [0, 2])
    q = p.to_pc()
    assert pc.is_fulldim(q)
    assert Polytope.from_pc(q).is_same_as(p)
    assert Polytope.from_pc(pc.box2poly([[0, 1], [0, 2]])).is_same_as(p)


def malformed_input_test():
    with pytest.raises(DimensionMismatch):
        box([0, 1], [0, 1]).intersect(box([0, 1]))
    with pytest.raises(ValueError):
        Polytope.hull([[0, 0], [1, np.nan], [0, 1]])
    with pytest.raises(ValueError):
        Polytope.hull([[0, 0], [1, np.inf], [0, 1]])
    with pytest.raises(ValueError):
        as_points([[0, 0], [1]])
    with pytest.raises(DimensionMismatch):
        as_region(box([0, 1], [0, 1]), 3)


def minkowski_axpy_test():
    xs = np.array([[0.0, 0.0], [1.0, 0.0]])
    ys = np.array([[0.0, 1.0], [0.0, 2.0]])
    result = minkowski_axpy(np.eye(2) * 2, xs, ys)
    assert result.shape == (4, 2)
    assert {tuple(p) for p in result} == {(0, 1), (0, 2), (2, 1), (2, 2)}
