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
Linear stochastic systems x' = A x + B u + w and their reachability operators.

The backward operators take a domain polytope X, a control region U and a
target region Y and return regions restricted to X:

  - L{LinearStochasticSystem.pre}: X ∩ {x : some u in U reaches Y for some w}
  - L{LinearStochasticSystem.pre_r}: X ∩ {x : some u in U reaches Y for every w}
  - L{LinearStochasticSystem.attr}: X minus pre_r of the complement of Y
  - L{LinearStochasticSystem.attr_r}: X minus pre of the complement of Y

Complements are taken in the extended state space, the state space together
with everything reachable from it in one step.
"""
import logging

import numpy as np

from .geometry import Polytope, Region, as_region
from .linalg import (as_matrix, as_vector, assert_equal_dims, minkowski_axpy,
                     minkowski_xmy)

logger = logging.getLogger(__name__)


class LinearStochasticSystem(object):
    """Discrete-time linear system with bounded additive disturbance.

    @ivar A: dynamics matrix, dim x dim
    @type A: L{ndarray}

    @ivar B: control matrix, dim x control_dim
    @type B: L{ndarray}

    @ivar xx: state space
    @type xx: L{Polytope}

    @ivar ww: random space of the disturbance w
    @type ww: L{Polytope}

    @ivar uus: control space
    @type uus: L{Region}
    """
    def __init__(self, A, B, state_space, random_space, control_space):
        self.A = as_matrix(A)
        if self.A.shape[0] != self.A.shape[1]:
            raise ValueError('Dynamics matrix must be square, got shape {s}'.format(s=self.A.shape))
        self.B = as_matrix(B, rows=self.A.shape[0])
        self.xx = state_space
        self.ww = random_space
        self.uus = as_region(control_space)
        assert_equal_dims(self.xx.dim, self.dim)
        assert_equal_dims(self.ww.dim, self.dim)
        assert_equal_dims(self.uus.dim, self.control_dim)
        if self.xx.is_empty:
            raise ValueError('State space is empty')
        if self.ww.is_empty:
            raise ValueError('Random space is empty')
        if self.uus.is_empty:
            raise ValueError('Control space is empty')

        self._one_step_reachable = None
        self._extended_state_space = None

    @property
    def dim(self):
        return self.A.shape[0]

    @property
    def control_dim(self):
        return self.B.shape[1]

    @property
    def one_step_reachable(self):
        """Everything reachable from the state space in one step.

        @rtype: L{Region}
        """
        if self._one_step_reachable is None:
            self._one_step_reachable = self.post(self.xx, self.uus)
        return self._one_step_reachable

    @property
    def extended_state_space(self):
        if self._extended_state_space is None:
            self._extended_state_space = self.one_step_reachable.union(self.xx)
        return self._extended_state_space

    @property
    def extent(self):
        return self.extended_state_space.extent

    def eval(self, x, u, w):
        """Successor A x + B u + w."""
        x = as_vector(x, self.dim)
        u = as_vector(u, self.control_dim)
        w = as_vector(w, self.dim)
        return np.dot(self.A, x) + np.dot(self.B, u) + w

    def _controls_into(self, ys, us=None):
        """Controls in us (default: the control space) with B u in ys."""
        us = self.uus if us is None else as_region(us, self.control_dim)
        controls = []
        for y in ys:
            pullback = y.pullback(self.B)
            for u in us:
                controls.append(u.intersect(*pullback))
        return Region(controls, self.control_dim)

    def post(self, x, us):
        """Hull of the one-step successors of x under each control polytope.

        @type x: L{Polytope}
        @param us: control polytopes
        @type us: L{Region} or L{Polytope}

        @rtype: L{Region}
        """
        us = as_region(us, self.control_dim)
        axpws = minkowski_axpy(self.A, x.vertices, self.ww.vertices)
        posts = []
        for u in us:
            posts.append(Polytope.hull(minkowski_axpy(self.B, u.vertices, axpws), self.dim))
        return Region(posts, self.dim).simplify()

    def pre(self, x, us, ys):
        """Part of x from which some control reaches ys under some disturbance.

        @rtype: L{Region}
        """
        us = as_region(us, self.control_dim)
        ys = as_region(ys, self.dim)
        pres = []
        for u in us:
            bupws = minkowski_axpy(self.B, u.vertices, self.ww.vertices)
            for y in ys:
                back = Polytope.hull(minkowski_xmy(y.vertices, bupws), self.dim)
                pres.append(x.intersect(*back.pullback(self.A)))
        return Region(pres, self.dim).simplify()

    def pre_r(self, x, us, ys):
        """Part of x from which some control reaches ys under every disturbance.

        @rtype: L{Region}
        """
        us = as_region(us, self.control_dim)
        pontrys = as_region(ys, self.dim).pontryagin(self.ww)
        if pontrys.is_empty:
            return Region.empty(self.dim)
        pres = []
        for u in us:
            bus = np.dot(u.vertices, self.B.T)
            for pontry in pontrys:
                back = Polytope.hull(minkowski_xmy(pontry.vertices, bus), self.dim)
                pres.append(x.intersect(*back.pullback(self.A)))
        return Region(pres, self.dim).simplify()

    def attr(self, x, us, ys):
        """Part of x from which no control robustly avoids ys.

        @rtype: L{Region}
        """
        complement = self.extended_state_space.remove(as_region(ys, self.dim))
        return x.remove(self.pre_r(x, us, complement))

    def attr_r(self, x, us, ys):
        """Part of x from which every control reaches ys almost surely.

        @rtype: L{Region}
        """
        complement = self.extended_state_space.remove(as_region(ys, self.dim))
        return x.remove(self.pre(x, us, complement))

    def act(self, x, ys):
        """Controls with which some point of x reaches ys for some disturbance.

        @rtype: L{Region}
        """
        axpws = minkowski_axpy(self.A, x.vertices, self.ww.vertices)
        backs = [Polytope.hull(minkowski_xmy(y.vertices, axpws), self.dim)
                 for y in as_region(ys, self.dim)]
        return self._controls_into(backs).simplify()

    def act_r(self, x, ys):
        """Controls with which every point of x reaches ys for every disturbance.

        @rtype: L{Region}
        """
        axpw = Polytope.hull(minkowski_axpy(self.A, x.vertices, self.ww.vertices), self.dim)
        return self._controls_into(as_region(ys, self.dim).pontryagin(axpw))

    def act_r_point(self, x, ys):
        """Controls with which the point x reaches ys for every disturbance.

        @rtype: L{Region}
        """
        axpw = self.ww.translate(np.dot(self.A, as_vector(x, self.dim)))
        return self._controls_into(as_region(ys, self.dim).pontryagin(axpw))

    def z_non_zero(self, ys):
        """Values of A x + B u from which ys is reached with positive probability.

        @rtype: L{Region}
        """
        return as_region(ys, self.dim).minkowski(self.ww.invert())

    def z_one(self, ys):
        """Values of A x + B u from which ys is reached almost surely.

        @rtype: L{Region}
        """
        return as_region(ys, self.dim).pontryagin(self.ww)

    def decompose(self, predicates, labels=None, satisfying=None):
        """Create the initial abstraction of the system.

        The outer states are the convex pieces of the one-step reachable set
        outside the state space. The state space is split by the predicates.

        @param predicates: linear predicates over the state space
        @type predicates: C{list} of L{Halfspace}

        @param labels: predicate labels, predicates with an empty label only
            shape the partition
        @type labels: C{list} of C{str}

        @param satisfying: labels of the predicates whose conjunction is
            satisfying by construction, cells inside it are tagged satisfying
        @type satisfying: iterable of C{str}

        @rtype: L{AbstractedLSS}
        """
        from .abstract.abstraction import AbstractedLSS, StateKind

        predicates = list(predicates)
        if labels is None:
            labels = ['P{i}'.format(i=i + 1) for i in range(len(predicates))]
        labels = list(labels)
        if len(labels) != len(predicates):
            raise ValueError('Got {n} labels for {m} predicates'.format(n=len(labels),
                                                                     m=len(predicates)))
        for predicate in predicates:
            assert_equal_dims(predicate.dim, self.dim)
        satisfying = None if satisfying is None else frozenset(satisfying)

        system = AbstractedLSS(self)
        for label, predicate in zip(labels, predicates):
            if label:
                system.predicates[label] = predicate

        outer = self.one_step_reachable.remove(self.xx)
        for poly in outer:
            system.new_state(poly, StateKind.OUTER)

        for poly in self.xx.split(*predicates):
            center = poly.centroid
            preds = frozenset(label for label, predicate in zip(labels, predicates)
                              if label and predicate.contains(center))
            kind = StateKind.UNDECIDED
            if satisfying is not None and satisfying <= preds:
                kind = StateKind.SATISFYING
            system.new_state(poly, kind, preds)

        logger.info('Decomposed system into {n} states ({m} outer)'.format(
            n=len(system.states), m=len(outer)))
        return system

    def serialize(self):
        return {
            'A': self.A.tolist(),
            'B': self.B.tolist(),
            'xx': self.xx.serialize(),
            'ww': self.ww.serialize(),
            'uus': self.uus.serialize()
        }

    @classmethod
    def deserialize(cls, data):
        A = as_matrix(data['A'])
        B = as_matrix(data['B'], rows=A.shape[0])
        dim = A.shape[0]
        return cls(A, B,
                   Polytope.deserialize(data['xx'], dim),
                   Polytope.deserialize(data['ww'], dim),
                   Region.deserialize(data['uus'], B.shape[1]))


LSS = LinearStochasticSystem
