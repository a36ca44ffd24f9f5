#!/usr/bin/env python
"""Tests of `stochabs.abstract.abstraction`."""
import logging

import numpy as np
import pytest

from stochabs.abstract import abstraction
from stochabs.abstract.abstraction import (AbstractedLSS, InvariantViolation, MappedGameGraph,
                                           StateKind, itemized_operator_partition)
from stochabs.geometry import Halfspace, Polytope, Region
from stochabs.hybrid import LinearStochasticSystem

logging.basicConfig()
logger = logging.getLogger(__name__)


def box(*bounds):
    return Polytope.from_box(bounds)


def build_system():
    """Illustrative example: move right into x > 2."""
    lss = LinearStochasticSystem(
        np.eye(2), np.eye(2),
        box([0, 4], [0, 2]),
        box([-0.1, 0.1], [-0.1, 0.1]),
        box([-1, 1], [-1, 1]))
    return lss.decompose([Halfspace.parse('x > 2', ['x', 'y'])], ['p1'])


def inner_states(system):
    return [s for s in system.states.values() if not s.is_outer]


def itemized_operator_partition_test():
    images = {'a': Region([box([0, 2], [0, 2])]), 'b': Region([box([1, 3], [1, 3])])}
    parts = itemized_operator_partition(['a', 'b'], lambda item: images[item])
    assert len(parts) == 3
    by_items = {tuple(part.items): part.region for part in parts}
    assert set(by_items) == {('a',), ('a', 'b'), ('b',)}
    assert by_items[('a', 'b')].is_same_as(box([1, 2], [1, 2]))
    assert by_items[('a',)].volume == pytest.approx(3.0)
    assert by_items[('b',)].volume == pytest.approx(3.0)
    assert sum(part.region.volume for part in parts) == pytest.approx(7.0)


def itemized_operator_partition_nested_test():
    images = {'a': Region([box([0, 4], [0, 4])]), 'b': Region([box([1, 2], [1, 2])]),
              'c': Region([box([5, 6], [5, 6])])}
    parts = itemized_operator_partition(['a', 'b', 'c'], lambda item: images[item])
    by_items = {tuple(part.items): part.region for part in parts}
    assert set(by_items) == {('a',), ('a', 'b'), ('c',)}
    assert by_items[('a',)].volume == pytest.approx(15.0)


def labels_test():
    system = build_system()
    labels = list(system.states)
    assert labels == ['X{n}'.format(n=i + 1) for i in range(len(labels))]
    system.new_state(box([10, 11], [10, 11]), StateKind.UNDECIDED, label='X{n}'.format(
        n=system.label_num + 1))
    new = system.gen_label()
    assert new not in system.states
    with pytest.raises(InvariantViolation):
        system.new_state(box([10, 11], [10, 11]), StateKind.UNDECIDED, label=labels[0])


def state_of_test():
    system = build_system()
    assert 'p1' in system.state_of([3, 1]).predicates
    assert not system.state_of([1, 1]).predicates
    assert system.state_of([4.5, 1]).is_outer
    assert system.state_of([10, 10]) is None


def actions_partition_controls_test():
    system = build_system()
    uus = system.lss.uus
    for state in inner_states(system):
        actions = state.actions
        assert actions
        assert sum(a.controls.volume for a in actions) == pytest.approx(uus.volume, rel=1e-6)
        for i, a in enumerate(actions):
            assert set(a.targets) <= set(state.reachable)
            for b in actions[i + 1:]:
                assert not a.controls.do_intersect(b.controls)
    for state in system.states_of_kind(StateKind.OUTER):
        assert state.actions == []


def supports_cover_origin_test():
    system = build_system()
    state = inner_states(system)[0]
    action = state.actions[0]
    supports = action.supports
    assert supports
    origins = Region([p for s in supports for p in s.origins], system.lss.dim)
    assert origins.covers(state.polytope)
    for support in supports:
        assert set(support.targets) <= set(action.targets)


def refine_test():
    system = build_system()
    state = inner_states(system)[0]
    kind = state.kind
    predicates = state.predicates
    partition = state.polytope.split(Halfspace.parse('y < 1', ['x', 'y']))
    others = [s for s in system.states.values() if s is not state]
    for other in others:
        other.actions
    refinement_map = system.refine({state.label: partition})
    assert list(refinement_map) == [state.label]
    children = refinement_map[state.label]
    assert len(children) == 2
    assert state.label not in system.states
    for label in children:
        child = system.states[label]
        assert child.kind is kind
        assert child.predicates == predicates
    assert system.check_partition()
    # Cached actions referring to the parent were dropped
    for other in inner_states(system):
        for action in other.actions:
            assert state.label not in action.targets


def refine_noop_test():
    system = build_system()
    state = inner_states(system)[0]
    assert system.refine({state.label: Region([state.polytope])}) == {}
    assert system.refine({}) == {}
    assert state.label in system.states


def refine_checks_test():
    system = build_system()
    state = inner_states(system)[0]
    half = state.polytope.split(Halfspace.parse('y < 1', ['x', 'y']))[0]
    bad = Region([half, box([20, 21], [20, 21])])
    with pytest.raises(InvariantViolation):
        system.refine({state.label: bad})
    outer = system.states_of_kind(StateKind.OUTER)[0]
    with pytest.raises(InvariantViolation):
        system.refine({outer.label: outer.polytope.split(Halfspace.normalized([1, 0], 100))})


def refine_debug_test():
    system = build_system()
    state = inner_states(system)[0]
    poly = state.polytope
    # Same volume, different set
    shifted = Region([poly.translate([0.5, 0]).split(Halfspace.parse('y < 1', ['x', 'y']))[0],
                      poly.split(Halfspace.parse('y < 1', ['x', 'y']))[1]])
    abstraction.debug = True
    try:
        with pytest.raises(InvariantViolation):
            system.refine({state.label: shifted})
    finally:
        abstraction.debug = False


def update_kinds_test():
    system = build_system()
    a, b = [s.label for s in inner_states(system)]
    system.update_kinds([a], [b])
    assert system.states[a].is_satisfying
    assert system.states[b].is_non_satisfying
    # Undecided does not overwrite a decision
    system.update_kinds([], [])
    assert system.states[a].is_satisfying
    with pytest.raises(InvariantViolation):
        system.update_kinds([b], [])
    outer = system.states_of_kind(StateKind.OUTER)[0]
    system.update_kinds([outer.label], [])
    assert outer.is_outer


def game_graph_test():
    system = build_system()
    graph = system.serialize_game_graph()
    mapped = MappedGameGraph(graph)
    assert mapped.state_labels == system.state_labels
    for label in system.state_labels:
        assert mapped.predicate_labels_of(label) == system.predicate_labels_of(label)
        assert mapped.action_count_of(label) == system.action_count_of(label)
        for a in range(system.action_count_of(label)):
            assert mapped.support_count_of(label, a) == system.support_count_of(label, a)
            for s in range(system.support_count_of(label, a)):
                assert mapped.target_labels_of(label, a, s) == system.target_labels_of(label, a, s)


def serialization_test():
    system = build_system()
    for include_actions in (False, True):
        copy = AbstractedLSS.deserialize(system.serialize(include_actions))
        assert list(copy.states) == list(system.states)
        assert copy.label_num == system.label_num
        assert list(copy.predicates) == list(system.predicates)
        for label, state in system.states.items():
            other = copy.states[label]
            assert other.kind is state.kind
            assert other.predicates == state.predicates
            assert other.polytope.is_same_as(state.polytope)
        if include_actions:
            assert copy.serialize_game_graph() == system.serialize_game_graph()
