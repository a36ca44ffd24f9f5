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
Finite abstraction of a linear stochastic system.

The states of an L{AbstractedLSS} are polytopes partitioning the extended
state space. A state offers actions, each a region of controls leading to the
same set of target states, and every action has supports, the groups of
targets which can be hit jointly under one disturbance outcome.

Actions and supports are computed on first access and invalidated when a
state they depend on is refined.

See Also
========
L{stochabs.transys.game}, L{stochabs.abstract.refinement}
"""
import logging
from enum import Enum

import numpy as np

from stochabs.geometry import Polytope, Region, Halfspace, as_region
from stochabs.hybrid import LinearStochasticSystem
from stochabs.linalg import minkowski_xmy

logger = logging.getLogger(__name__)

debug = False

# Relative tolerance for the volume of a partition to match its parent
_VOLUME_RTOL = 1e-6


class InvariantViolation(RuntimeError):
    """Raised when the partition or the labelling of states would break."""


class StateKind(Enum):
    OUTER = -10
    NONSATISFYING = -1
    UNDECIDED = 0
    SATISFYING = 1


class ItemizedPart(object):
    """A region together with the items whose operator images contain it."""
    def __init__(self, region, items):
        self.region = region
        self.items = items

    def __repr__(self):
        return 'ItemizedPart(items={i}, region={r})'.format(i=self.items, r=self.region)


def itemized_operator_partition(items, operator):
    """Partition the union of operator images by which images contain a point.

    Every point of the union lies in exactly one returned part, and the
    items of that part are exactly those whose image contains the point.

    @param items: the items, in the order they are to be listed in parts
    @param operator: maps an item to a L{Region}

    @rtype: C{list} of L{ItemizedPart}
    """
    parts = []
    for item in items:
        remaining = operator(item)
        next_parts = []
        for part in parts:
            if remaining.is_empty:
                next_parts.append(part)
                continue
            common = part.region.intersect(remaining)
            if common.is_empty:
                next_parts.append(part)
                continue
            not_common = part.region.remove(common)
            if not_common.is_empty:
                next_parts.append(ItemizedPart(part.region, part.items + [item]))
            else:
                next_parts.append(ItemizedPart(not_common, part.items))
                next_parts.append(ItemizedPart(common, part.items + [item]))
            remaining = remaining.remove(common)
        if not remaining.is_empty:
            next_parts.append(ItemizedPart(remaining, [item]))
        parts = next_parts
    return parts


class AbstractedLSS(object):
    """Partition of the extended state space of an LSS into states.

    Created by L{LinearStochasticSystem.decompose} or L{deserialize}.

    @ivar lss: the abstracted system
    @type lss: L{LinearStochasticSystem}

    @ivar predicates: labelled linear predicates, in order of definition
    @type predicates: C{dict} of C{str} to L{Halfspace}

    @ivar states: the current states by label, in order of creation
    @type states: C{dict} of C{str} to L{State}

    @ivar label_num: counter for generated labels
    @type label_num: C{int}
    """
    def __init__(self, lss):
        self.lss = lss
        self.predicates = dict()
        self.states = dict()
        self.label_num = 0

    def gen_label(self):
        """Return the next free label of the form C{X<n>}."""
        while True:
            self.label_num += 1
            label = 'X{n}'.format(n=self.label_num)
            if label not in self.states:
                return label

    def new_state(self, polytope, kind, predicates=(), label=None):
        """Add a state to the system.

        @param label: label of the state, generated if not given
        @type label: C{str}

        @rtype: L{State}
        """
        if label is None:
            label = self.gen_label()
        elif label in self.states:
            raise InvariantViolation('Duplicate state label {l}'.format(l=label))
        state = State(self, label, polytope, kind, predicates)
        self.states[label] = state
        return state

    def state_of(self, x):
        """Return the state containing point x, None if x is outside."""
        for state in self.states.values():
            if state.polytope.contains(x):
                return state
        return None

    def states_of_kind(self, *kinds):
        return [state for state in self.states.values() if state.kind in kinds]

    def update_kinds(self, satisfying, non_satisfying):
        """Record analysis outcomes in the kinds of the states.

        Outer states keep their kind. A decided state reported as undecided
        keeps its kind.

        @param satisfying: labels of the states now known to satisfy
        @param non_satisfying: labels of the states now known to violate
        """
        satisfying = set(satisfying)
        non_satisfying = set(non_satisfying)
        for label, state in self.states.items():
            if state.kind is StateKind.OUTER:
                continue
            if label in satisfying:
                kind = StateKind.SATISFYING
            elif label in non_satisfying:
                kind = StateKind.NONSATISFYING
            else:
                kind = StateKind.UNDECIDED
            if kind is StateKind.UNDECIDED:
                if state.kind is not StateKind.UNDECIDED:
                    logger.warning('State {l} was {k} and is now undecided, '
                                   'keeping {k}'.format(l=label, k=state.kind.name))
                continue
            if state.kind is not StateKind.UNDECIDED and state.kind is not kind:
                raise InvariantViolation('State {l} would change from {k1} to {k2}'.format(
                    l=label, k1=state.kind.name, k2=kind.name))
            state.kind = kind

    def refine(self, partitions):
        """Replace states by the members of their partitions.

        Children inherit kind and predicates of their parent. A partition with
        a single member is a no-op.

        @param partitions: map from states or their labels to a L{Region}
            partitioning the state's polytope
        @type partitions: C{dict}

        @return: map from each replaced label to the labels of its children
        @rtype: C{dict} of C{str} to C{tuple} of C{str}
        """
        refinement_map = dict()
        for key, partition in partitions.items():
            state = key if isinstance(key, State) else self.states[key]
            partition = as_region(partition, self.lss.dim)
            if state.kind is StateKind.OUTER:
                raise InvariantViolation('Outer state {l} cannot be refined'.format(l=state.label))
            if len(partition) == 1 and not debug:
                continue
            _check_partition(state, partition)
            if len(partition) == 1:
                continue
            children = tuple(self.new_state(poly, state.kind, state.predicates).label
                             for poly in partition)
            del self.states[state.label]
            refinement_map[state.label] = children
            logger.debug('Refined {p} into {c}'.format(p=state.label, c=children))
        if refinement_map:
            self.reset_actions(refinement_map)
            logger.info('Refined {n} states into {m} states'.format(
                n=len(refinement_map), m=sum(len(c) for c in refinement_map.values())))
        return refinement_map

    def reset_actions(self, targets):
        """Drop cached actions of states that may reach any of targets."""
        targets = set(targets)
        for state in self.states.values():
            state.reset_actions(targets)

    def check_partition(self):
        """Whether the states partition the extended state space."""
        region = Region([s.polytope for s in self.states.values()], self.lss.dim)
        volume = self.lss.extended_state_space.volume
        if abs(region.volume - volume) > _VOLUME_RTOL * max(1.0, volume):
            return False
        return region.is_same_as(self.lss.extended_state_space)

    # Game graph interface

    @property
    def state_labels(self):
        return list(self.states)

    def predicate_labels_of(self, label):
        return self.states[label].predicates

    def action_count_of(self, label):
        return len(self.states[label].actions)

    def support_count_of(self, label, action_index):
        return len(self.states[label].actions[action_index].supports)

    def target_labels_of(self, label, action_index, support_index):
        return self.states[label].actions[action_index].supports[support_index].targets

    def serialize_game_graph(self):
        """Game graph of the abstraction as plain data.

        @return: map from state label to its predicate labels and, per action,
            the target labels of each support
        @rtype: C{dict}
        """
        graph = dict()
        for label, state in self.states.items():
            graph[label] = {
                'predicates': sorted(state.predicates),
                'actions': [[list(support.targets) for support in action.supports]
                            for action in state.actions]
            }
        return graph

    def serialize(self, include_actions=False):
        return {
            'lss': self.lss.serialize(),
            'predicates': [{'label': label, 'halfspace': h.serialize()}
                           for label, h in self.predicates.items()],
            'states': [state.serialize(include_actions) for state in self.states.values()],
            'label_num': self.label_num
        }

    @classmethod
    def deserialize(cls, data):
        lss = LinearStochasticSystem.deserialize(data['lss'])
        system = cls(lss)
        for pred in data['predicates']:
            system.predicates[pred['label']] = Halfspace.deserialize(pred['halfspace'])
        for item in data['states']:
            state = system.new_state(Polytope.deserialize(item['polytope'], lss.dim),
                                     StateKind[item['kind']], item['predicates'],
                                     label=item['label'])
            if 'actions' in item:
                state._restore_actions(item['actions'])
        system.label_num = data['label_num']
        return system


def _check_partition(state, partition):
    volume = state.polytope.volume
    if abs(partition.volume - volume) > _VOLUME_RTOL * max(1.0, volume):
        raise InvariantViolation('Faulty partition of {l}: volume {v1} instead of {v2}'.format(
            l=state.label, v1=partition.volume, v2=volume))
    if debug and not Region([state.polytope]).is_same_as(partition):
        raise InvariantViolation('Faulty partition of {l}'.format(l=state.label))


class State(object):
    """A polytope of the abstraction.

    @ivar label: identifier within the owning system
    @type label: C{str}

    @ivar polytope: the region of the state
    @type polytope: L{Polytope}

    @ivar kind: classification of the state
    @type kind: L{StateKind}

    @ivar predicates: labels of the predicates satisfied in the state
    @type predicates: C{frozenset} of C{str}
    """
    def __init__(self, system, label, polytope, kind, predicates=()):
        self.system = system
        self.label = label
        self.polytope = polytope
        self.kind = kind
        self.predicates = frozenset(predicates)
        self._reachable = None
        self._actions = None

    def __repr__(self):
        return 'State({l}, {k})'.format(l=self.label, k=self.kind.name)

    @property
    def is_outer(self):
        return self.kind is StateKind.OUTER

    @property
    def is_satisfying(self):
        return self.kind is StateKind.SATISFYING

    @property
    def is_non_satisfying(self):
        return self.kind.value < 0

    @property
    def is_undecided(self):
        return self.kind is StateKind.UNDECIDED

    @property
    def lss(self):
        return self.system.lss

    @property
    def centroid(self):
        return self.polytope.centroid

    def one_step_reachable(self):
        """Successors of the state under the full control space.

        @rtype: L{Region}
        """
        return self.lss.post(self.polytope, self.lss.uus)

    @property
    def reachable(self):
        """Labels of the states intersecting the one-step successors."""
        if self._reachable is None:
            if self.is_outer:
                self._reachable = ()
            else:
                post = self.one_step_reachable()
                self._reachable = tuple(label for label, state in self.system.states.items()
                                        if post.do_intersect(state.polytope))
        return self._reachable

    @property
    def actions(self):
        """Actions of the state, one per set of targets reachable together.

        @rtype: C{list} of L{Action}
        """
        if self._actions is None:
            if self.is_outer:
                self._actions = []
            else:
                states = self.system.states
                parts = itemized_operator_partition(
                    self.reachable, lambda label: self.lss.act(self.polytope, states[label].polytope))
                self._actions = [Action(self, part.items, part.region.simplify())
                                 for part in parts]
                logger.debug('State {l} has {n} actions'.format(l=self.label,
                                                                n=len(self._actions)))
        return self._actions

    def reset_actions(self, targets=None):
        """Drop cached actions if any of targets is reachable."""
        if targets is None or (self._reachable is not None and
                               any(label in targets for label in self._reachable)):
            self._reachable = None
            self._actions = None

    def _restore_actions(self, data):
        dim = self.lss.dim
        control_dim = self.lss.control_dim
        actions = []
        for item in data:
            action = Action(self, item['targets'], Region.deserialize(item['controls'], control_dim))
            action._supports = [ActionSupport(action, sup['targets'],
                                              Region.deserialize(sup['origins'], dim))
                                for sup in item['supports']]
            actions.append(action)
        self._actions = actions
        self._reachable = tuple(sorted({label for action in actions for label in action.targets}))

    def serialize(self, include_actions=False):
        data = {
            'label': self.label,
            'polytope': self.polytope.serialize(),
            'predicates': sorted(self.predicates),
            'kind': self.kind.name
        }
        if include_actions:
            data['actions'] = [action.serialize() for action in self.actions]
        return data


class Action(object):
    """Control choice in a state.

    @ivar origin: the state of the action
    @type origin: L{State}

    @ivar targets: labels of the states reachable with these controls
    @type targets: C{tuple} of C{str}

    @ivar controls: controls realizing the action
    @type controls: L{Region}
    """
    def __init__(self, origin, targets, controls):
        self.origin = origin
        self.targets = tuple(targets)
        self.controls = controls
        self._supports = None

    def __repr__(self):
        return 'Action({o} -> {t})'.format(o=self.origin.label, t=list(self.targets))

    @property
    def supports(self):
        """Groups of targets hit together with positive probability.

        @rtype: C{list} of L{ActionSupport}
        """
        if self._supports is None:
            self._supports = self._compute_supports()
        return self._supports

    def _compute_supports(self):
        lss = self.origin.lss
        states = self.origin.system.states
        parts = itemized_operator_partition(
            self.targets, lambda label: lss.z_non_zero(states[label].polytope))
        z_ones = lss.z_one(Region([states[label].polytope for label in self.targets], lss.dim))
        supports = []
        for part in parts:
            zs = part.region.intersect(z_ones)
            pres = []
            for u in self.controls:
                bus = np.dot(u.vertices, lss.B.T)
                for z in zs:
                    back = Polytope.hull(minkowski_xmy(z.vertices, bus), lss.dim)
                    pres.append(self.origin.polytope.intersect(*back.pullback(lss.A)))
            origins = Region(pres, lss.dim).simplify()
            if not origins.is_empty:
                supports.append(ActionSupport(self, part.items, origins))
        return supports

    def serialize(self):
        return {
            'targets': list(self.targets),
            'controls': self.controls.serialize(),
            'supports': [support.serialize() for support in self.supports]
        }


class ActionSupport(object):
    """Targets hit together, and the origin points where this can happen.

    @ivar targets: labels of the target states
    @type targets: C{tuple} of C{str}

    @ivar origins: part of the origin state from which the support occurs
    @type origins: L{Region}
    """
    def __init__(self, action, targets, origins):
        self.action = action
        self.targets = tuple(targets)
        self.origins = origins

    def __repr__(self):
        return 'ActionSupport({t})'.format(t=list(self.targets))

    def serialize(self):
        return {'targets': list(self.targets), 'origins': self.origins.serialize()}


class MappedGameGraph(object):
    """Game graph interface over the output of L{AbstractedLSS.serialize_game_graph}."""
    def __init__(self, graph):
        self.graph = graph

    @property
    def state_labels(self):
        return list(self.graph)

    def predicate_labels_of(self, label):
        return frozenset(self.graph[label]['predicates'])

    def action_count_of(self, label):
        return len(self.graph[label]['actions'])

    def support_count_of(self, label, action_index):
        return len(self.graph[label]['actions'][action_index])

    def target_labels_of(self, label, action_index, support_index):
        return tuple(self.graph[label]['actions'][action_index][support_index])
