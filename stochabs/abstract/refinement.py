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
Refinement of abstractions guided by analysis results.

A refinery looks at the undecided (system state, automaton state) pairs of an
analysis and proposes a partition of each state's polytope. Partitions are
applied with L{AbstractedLSS.refine}; states for which a refinery finds
nothing to split are left out of its partitions, so refining homogeneous or
decided states is a no-op.

See Also
========
L{stochabs.abstract.abstraction}
"""
import logging
from enum import Enum

import numpy as np

from stochabs.geometry import Region
from stochabs.transys.game import AnalysisResult

from .abstraction import State, StateKind, itemized_operator_partition

logger = logging.getLogger(__name__)


class PostProcessing(Enum):
    NONE = 'none'
    HULL = 'hull'
    LARGEST = 'largest'
    SUPPRESS = 'suppress'


class ActionPick(Enum):
    BEST = 'best'
    RANDOM = 'random'


class LayerGenerator(Enum):
    PRE_R = 'PreR'
    PRE = 'Pre'


class RobustReachabilitySettings:
    """Settings for robust reachability refinement

      - expand_target: Whether parts recognized as done are added to the target
          This lets the target grow backwards through the partition during
          the update phase of an iteration

          type: C{bool}

      - dont_refine_small: Whether to stop refining small parts
          A part is small if eroding it by the random space leaves nothing.
          Small parts are only refined further if their transition to the
          avoided region is unavoidable

          type: C{bool}

      - post_processing: Simplification applied to the good part of a split
          One of 'none', 'hull' (convex hull), 'largest' (largest polytope
          only) and 'suppress' (drop small polytopes)

          type: L{PostProcessing} or C{str}

      - action_pick: How the control for a robust attractor is chosen
          'best' takes the control region usable from the most sample points,
          'random' any control region found

          type: L{ActionPick} or C{str}

      - seed: Seed of the random number generator used for sampling

          type: C{int}
    """
    def __init__(self, expand_target=True, dont_refine_small=False, post_processing='none',
                 action_pick='best', seed=None):
        self.expand_target = expand_target
        self.dont_refine_small = dont_refine_small
        self.post_processing = PostProcessing(post_processing)
        self.action_pick = ActionPick(action_pick)
        self.seed = seed


class LayerSettings:
    """Settings for the layer decomposition of transition refinement

      - generator: Operator growing a layer from the previous one, 'PreR' or 'Pre'

          type: L{LayerGenerator} or C{str}

      - scaling: Factor applied to the control space when generating layers
          Layers generated with a contracted control space leave a margin for
          the refinement within a layer

          type: C{float}

      - range: First and last layer to refine, counted from 1
          Layers before the first one are generated but not refined

          type: (C{int}, C{int})
    """
    def __init__(self, generator='PreR', scaling=1.0, range=(1, 10)):
        self.generator = LayerGenerator(generator)
        self.scaling = scaling
        self.range = tuple(range)
        if len(self.range) != 2 or self.range[0] > self.range[1]:
            raise ValueError('Invalid layer range {r}'.format(r=range))


def sample_control(lss, origin, target, rng=None, action_pick=ActionPick.BEST):
    """Control polytope for a robust attractor from origin into target.

    Sample points are the vertices of the hull of the robust predecessor and
    3 dim random points inside it. Their robust controls are partitioned by
    which points share them.

    @type origin: L{Polytope}
    @type target: L{Region}

    @return: a control polytope, None if no sample has a robust control
    @rtype: L{Polytope}
    """
    if rng is None:
        rng = np.random.default_rng()
    pre_r = lss.pre_r(origin, lss.uus, target).hull()
    if pre_r.is_empty:
        return None
    xs = list(pre_r.vertices)
    for _ in range(3 * lss.dim):
        xs.append(pre_r.sample(rng))
    parts = [part for part in itemized_operator_partition(xs, lambda x: lss.act_r_point(x, target))
             if not part.region.is_empty]
    if not parts:
        return None
    if ActionPick(action_pick) is ActionPick.BEST:
        part = max(parts, key=lambda p: len(p.items))
    else:
        part = parts[int(rng.integers(len(parts)))]
    return part.region.polytopes[0]


def refine_attr_r(lss, origin, target, rng=None, action_pick=ActionPick.BEST):
    """Split origin into its robust attractor wrt target and the rest.

    If origin already has a robust control into target it is returned whole
    as the good part.

    @return: good and other part
    @rtype: (L{Region}, L{Region})
    """
    empty = Region.empty(lss.dim)
    if not lss.act_r(origin, target).is_empty:
        return Region([origin]), empty
    u = sample_control(lss, origin, target, rng, action_pick)
    if u is not None:
        attr_r = lss.attr_r(origin, u, target).simplify()
        if not attr_r.is_empty:
            return attr_r, origin.remove(attr_r)
    return empty, Region([origin])


def _split(part, region):
    """Partition part by region, region first."""
    inner = Region([part]).intersect(region).simplify()
    if inner.is_empty:
        return Region([part])
    return Region(inner.polytopes + part.remove(inner).polytopes)


class Refinery(object):
    """Base of the refinement strategies.

    @ivar system: the abstraction to refine
    @type system: L{AbstractedLSS}

    @ivar objective: the objective of the analysis
    @type objective: L{Objective}

    @ivar results: the analysis results of system
    @type results: L{AnalysisResults}

    @ivar automaton_states: automaton states considered for refinement
    @type automaton_states: C{list}
    """
    def __init__(self, system, objective, results, automaton_states=None):
        self.system = system
        self.objective = objective
        self.results = results
        if automaton_states is None:
            automaton_states = objective.all_states
        self.automaton_states = list(automaton_states)

    def partition(self, x):
        """Partition of the polytope of state x.

        @type x: L{State}
        @rtype: L{Region}
        """
        raise NotImplementedError

    def partition_all(self, states=None):
        """Partitions of the given states, omitting trivial ones.

        @param states: states or labels, all states if not given

        @return: map from state label to partition
        @rtype: C{dict}
        """
        if states is None:
            states = list(self.system.states.values())
        partitions = dict()
        for x in states:
            if not isinstance(x, State):
                x = self.system.states[x]
            if x.kind is StateKind.OUTER:
                continue
            region = self.partition(x)
            if len(region) > 1:
                partitions[x.label] = region
        logger.info('{r} proposes to split {n} states'.format(r=type(self).__name__,
                                                              n=len(partitions)))
        return partitions

    def refine(self, states=None):
        """Partition states, refine the system and remap the results.

        @return: the refinement map
        @rtype: C{dict}
        """
        refinement_map = self.system.refine(self.partition_all(states))
        self.results.remap(refinement_map)
        return refinement_map

    def _get_result(self, x):
        result = self.results.get(x.label)
        return AnalysisResult() if result is None else result

    def _is_decided(self, x, q):
        return self._get_result(x).is_decided(q)

    def _get_states(self, which, q):
        """States classified as which for automaton state q. Outer states
        always count as 'no'."""
        states = []
        for x in self.system.states.values():
            if which == 'no' and x.kind is StateKind.OUTER:
                states.append(x)
            elif q in getattr(self._get_result(x), which):
                states.append(x)
        return states

    def _get_state_region(self, which, q):
        return Region([x.polytope for x in self._get_states(which, q)],
                      self.system.lss.dim).simplify()

    def _q_next(self, x, q):
        return self.objective.next_state(x.predicates, q)


class _HolisticGeometricRefinery(Refinery):
    """Split every undecided pair by a region depending on the next
    automaton state."""

    def partition(self, x):
        parts = Region([x.polytope])
        for q in self.automaton_states:
            q_next = self._q_next(x, q)
            if self._is_decided(x, q) or q_next is None:
                continue
            pieces = []
            for part in parts:
                pieces.extend(self._partition(part, q_next).polytopes)
            parts = Region(pieces, x.polytope.dim)
        return parts

    def _partition(self, part, q_next):
        raise NotImplementedError


class PositiveRobustRefinery(_HolisticGeometricRefinery):
    """Split off the part that robustly reaches the yes-region of the next
    automaton state, using the robust predecessor ('PreR') or the robust
    attractor ('AttrR')."""

    def __init__(self, system, objective, results, operator='PreR',
                 automaton_states=None, settings=None):
        super(PositiveRobustRefinery, self).__init__(system, objective, results, automaton_states)
        if operator not in ('PreR', 'AttrR'):
            raise ValueError('Unknown operator {op!r} for positive robust refinement'.format(
                op=operator))
        self.operator = operator
        self.settings = RobustReachabilitySettings() if settings is None else settings
        self._rng = np.random.default_rng(self.settings.seed)
        self._yes = {q: self._get_state_region('yes', q) for q in objective.all_states}

    def _partition(self, part, q_next):
        lss = self.system.lss
        if self.operator == 'PreR':
            return _split(part, lss.pre_r(part, lss.uus, self._yes[q_next]))
        good, other = refine_attr_r(lss, part, self._yes[q_next], self._rng,
                                    self.settings.action_pick)
        return Region(good.polytopes + other.polytopes, lss.dim)


class NegativeAttrRefinery(_HolisticGeometricRefinery):
    """Split off the attractor of the no-region of the next automaton state."""

    def __init__(self, system, objective, results, automaton_states=None):
        super(NegativeAttrRefinery, self).__init__(system, objective, results, automaton_states)
        lss = system.lss
        self._attr = dict()
        for q in objective.all_states:
            no = self._get_state_region('no', q)
            self._attr[q] = lss.attr(lss.xx, lss.uus, no).simplify()

    def _partition(self, part, q_next):
        return _split(part, self._attr[q_next])


class SafetyRefinery(_HolisticGeometricRefinery):
    """Split off the robust attractor of the part of the state space that is
    not in the no-region of the next automaton state."""

    def __init__(self, system, objective, results, automaton_states=None, settings=None):
        super(SafetyRefinery, self).__init__(system, objective, results, automaton_states)
        self.settings = RobustReachabilitySettings() if settings is None else settings
        self._rng = np.random.default_rng(self.settings.seed)
        lss = system.lss
        self._ok = {q: Region([lss.xx]).remove(self._get_state_region('no', q)).simplify()
                    for q in objective.all_states}

    def _partition(self, part, q_next):
        safe, other = refine_attr_r(self.system.lss, part, self._ok[q_next], self._rng,
                                    self.settings.action_pick)
        return Region(safe.polytopes + other.polytopes, part.dim)


class OuterAttrRefinery(Refinery):
    """Split undecided states by their attractor wrt the outer region.

    With operator 'attr' the split-off part cannot robustly avoid leaving the
    state space, with 'attrR' it leaves the state space almost surely.
    """
    def __init__(self, system, objective, results, operator='attr', automaton_states=None):
        super(OuterAttrRefinery, self).__init__(system, objective, results, automaton_states)
        lss = system.lss
        outer = Region([x.polytope for x in system.states_of_kind(StateKind.OUTER)], lss.dim)
        if operator == 'attr':
            self._attr = lss.attr(lss.xx, lss.uus, outer).simplify()
        elif operator == 'attrR':
            self._attr = lss.attr_r(lss.xx, lss.uus, outer).simplify()
        else:
            raise ValueError('Unknown operator {op!r} for outer attractor refinement'.format(
                op=operator))
        self.operator = operator

    def partition(self, x):
        if all(self._is_decided(x, q) for q in self.automaton_states):
            return Region([x.polytope])
        return _split(x.polytope, self._attr)


class SelfLoopRefinery(Refinery):
    """Remove self-loops of undecided states.

    A state with an action whose support only leads back to the state is
    split by the origins of that support. If optimistic, states with an
    action free of self-loops are left alone. If only_safe, actions that may
    lead to a no-state are ignored.
    """
    def __init__(self, system, objective, results, optimistic=True, only_safe=True,
                 automaton_states=None):
        super(SelfLoopRefinery, self).__init__(system, objective, results, automaton_states)
        self.optimistic = optimistic
        self.only_safe = only_safe
        self._no_states = {q: {x.label for x in self._get_states('no', q)}
                           for q in objective.all_states}

    def partition(self, x):
        whole = Region([x.polytope])
        if x.one_step_reachable().intersect(x.polytope).is_empty:
            return whole
        for q in self.automaton_states:
            if self._is_decided(x, q) or self._q_next(x, q) != q:
                continue
            good_action = None
            support = None
            for action in x.actions:
                if self.only_safe and not self._is_safe(action.targets, q):
                    continue
                if x.label not in action.targets:
                    good_action = action
                    continue
                loop = None
                for candidate in action.supports:
                    if candidate.targets == (x.label,):
                        loop = candidate
                        break
                if loop is None:
                    good_action = action
                else:
                    support = loop
                    break
            if not (self.optimistic and good_action is not None) and support is not None:
                pre_p = support.origins.simplify()
                return Region(pre_p.polytopes + x.polytope.remove(pre_p).polytopes)
        return whole

    def _is_safe(self, targets, q):
        return self._no_states[q].isdisjoint(targets)


class _Part(object):
    def __init__(self, polytope, label, done=False):
        self.polytope = polytope
        self.label = label
        self.done = done


class RobustReachabilityProblem(object):
    """Refine parts of states until they robustly reach a target.

    @param parts: map from state label to the region of the state to refine
    @param reach: target region
    @param avoid: region to avoid
    @type settings: L{RobustReachabilitySettings}
    """
    def __init__(self, lss, parts, reach, avoid, settings, rng=None):
        self.lss = lss
        self.reach = reach
        self.avoid = avoid
        self.settings = settings
        self._rng = np.random.default_rng(settings.seed) if rng is None else rng
        self._parts = [_Part(poly, label) for label, region in parts.items() for poly in region]
        self._target = reach.simplify()

    @property
    def partitions(self):
        """Current partitions by state label.

        @rtype: C{dict} of C{str} to L{Region}
        """
        polys = dict()
        for part in self._parts:
            polys.setdefault(part.label, []).append(part.polytope)
        return {label: Region(p, self.lss.dim) for label, p in polys.items()}

    @property
    def all_done(self):
        return all(part.done for part in self._parts)

    def iterate(self, n=1):
        for i in range(n):
            self._update()
            if self.all_done:
                logger.debug('Robust reachability problem done after {i} iterations'.format(i=i))
                break
            self._refine()
        if logger.getEffectiveLevel() <= logging.DEBUG:
            msg = 'Robust reachability parts: {d} of {n} done'.format(
                d=sum(1 for part in self._parts if part.done), n=len(self._parts))
            msg += ', target volume {v:.4f}'.format(v=self._target.volume)
            logger.debug(msg)

    def _post_process(self, good):
        method = self.settings.post_processing
        if method is PostProcessing.NONE:
            return good
        if method is PostProcessing.HULL:
            return Region([good.hull()], self.lss.dim)
        if method is PostProcessing.LARGEST:
            if good.is_empty:
                return good
            return Region([max(good.polytopes, key=lambda p: p.volume)])
        if method is PostProcessing.SUPPRESS:
            return Region([p for p in good if not p.pontryagin(self.lss.ww).is_empty], self.lss.dim)
        raise ValueError('Unknown post-processing {m}'.format(m=method))

    def _refine(self):
        lss = self.lss
        parts = []
        for part in self._parts:
            if part.done:
                parts.append(part)
            elif (self.settings.dont_refine_small and
                  part.polytope.pontryagin(lss.ww).is_empty and
                  not lss.act(part.polytope, self.avoid).is_same_as(lss.uus)):
                part.done = True
                parts.append(part)
            else:
                good, other = refine_attr_r(lss, part.polytope, self._target, self._rng,
                                            self.settings.action_pick)
                if self.settings.post_processing is not PostProcessing.NONE:
                    good = self._post_process(good).intersect(part.polytope)
                    other = part.polytope.remove(good)
                parts.extend(_Part(poly, part.label, True) for poly in good)
                parts.extend(_Part(poly, part.label, False) for poly in other)
        self._parts = parts

    def _update(self):
        while self._update_step():
            pass

    def _update_step(self):
        new_target = list(self.reach.polytopes)
        changed = False
        for part in self._parts:
            if part.done:
                new_target.append(part.polytope)
                continue
            if not self.lss.act_r(part.polytope, self._target).is_empty:
                part.done = True
                new_target.append(part.polytope)
                changed = True
        if self.settings.expand_target:
            self._target = Region(new_target, self.lss.dim).simplify()
        return changed


class TransitionRefinery(Refinery):
    """Layered refinement of the transition between two automaton states.

    States are sorted into the ones to avoid (no-states of origin and states
    leading to other automaton states), the ones to reach (yes-states of
    origin and states leading to target) and the ones to refine (states
    staying in origin). Without layers, one robust reachability problem is
    posed for all states to refine. With layers, the states to refine are
    cut into shells grown backwards from the reach region by the layer
    generator, and each shell in the layer range is its own problem whose
    target is the previous shell.

    @param origin: automaton state of the transition
    @param target: automaton state the transition leads to
    @type layers: L{LayerSettings}
    @type settings: L{RobustReachabilitySettings}
    """
    def __init__(self, system, objective, results, origin, target, layers=None,
                 settings=None):
        super(TransitionRefinery, self).__init__(system, objective, results, [origin])
        self.settings = RobustReachabilitySettings() if settings is None else settings
        self._rng = np.random.default_rng(self.settings.seed)
        lss = system.lss
        bad = []
        good = []
        todo = dict()
        for x in system.states.values():
            q_next = self._q_next(x, origin)
            result = self._get_result(x)
            if x.kind is StateKind.OUTER or origin in result.no:
                bad.append(x.polytope)
            elif origin in result.yes:
                good.append(x.polytope)
            elif q_next == origin:
                todo[x.label] = Region([x.polytope])
                if origin == target:
                    good.append(x.polytope)
            elif q_next == target:
                good.append(x.polytope)
            else:
                bad.append(x.polytope)

        self._problems = []
        avoid = Region(bad, lss.dim).simplify()
        reach = Region(good, lss.dim).simplify()
        if layers is None:
            self._problems.append(RobustReachabilityProblem(lss, todo, reach, avoid,
                                                            self.settings, self._rng))
        else:
            uus = lss.uus.scale(layers.scaling)
            for i in range(1, layers.range[1] + 1):
                layer = self._generate_layer(reach, uus, layers.generator)
                if layers.range[0] <= i:
                    layer_todo = dict()
                    for label, region in todo.items():
                        intersection = region.intersect(layer).simplify()
                        if not intersection.is_empty:
                            layer_todo[label] = intersection
                            todo[label] = region.remove(intersection).simplify()
                    if not layer_todo:
                        logger.debug('Layer generation converged after {i} layers'.format(i=i))
                        break
                    self._problems.append(RobustReachabilityProblem(lss, layer_todo, reach, avoid,
                                                                    self.settings, self._rng))
                reach = layer.remove(avoid).simplify()
        logger.info('Transition refinement {o} -> {t} with {n} subproblems'.format(
            o=origin, t=target, n=len(self._problems)))
        self._update_partitions()

    def _generate_layer(self, target, uus, generator):
        lss = self.system.lss
        if generator is LayerGenerator.PRE_R:
            layer = lss.pre_r(lss.xx, uus, target)
        elif generator is LayerGenerator.PRE:
            layer = lss.pre(lss.xx, uus, target)
        else:
            raise NotImplementedError('Layer generator {g} does not exist'.format(g=generator))
        return layer.union(target)

    def _update_partitions(self):
        collected = dict()
        for problem in self._problems:
            for label, region in problem.partitions.items():
                collected.setdefault(label, []).extend(region.polytopes)
        self._partitions = dict()
        for label, polys in collected.items():
            state = self.system.states[label]
            region = Region(polys, state.polytope.dim)
            rest = state.polytope.remove(region).simplify()
            self._partitions[label] = Region(region.polytopes + rest.polytopes)

    @property
    def problems(self):
        return list(self._problems)

    def iterate(self, n=1):
        for problem in self._problems:
            problem.iterate(n)
        self._update_partitions()

    def partition(self, x):
        partition = self._partitions.get(x.label)
        return Region([x.polytope]) if partition is None else partition


REFINERIES = {
    'OuterAttr': OuterAttrRefinery,
    'NegativeAttr': NegativeAttrRefinery,
    'PositiveRobust': PositiveRobustRefinery,
    'Safety': SafetyRefinery,
    'SelfLoop': SelfLoopRefinery,
    'Transition': TransitionRefinery
}
