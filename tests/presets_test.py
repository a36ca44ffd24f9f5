#!/usr/bin/env python
"""Tests of `stochabs.presets`."""
import logging

import pytest

from stochabs.abstract.abstraction import StateKind
from stochabs.presets import OBJECTIVES, SETUPS, make_objective, make_setup, parse_polytope

logging.basicConfig()
logger = logging.getLogger(__name__)


def setups_test():
    for name in SETUPS:
        system, objective = make_setup(name)
        assert system.check_partition(), name
        assert objective.predicate_labels <= set(system.predicates)
        assert system.states_of_kind(StateKind.UNDECIDED)


def double_integrator_test():
    system, objective = make_setup('Double Integrator')
    assert system.lss.control_dim == 1
    assert system.lss.dim == 2
    assert objective.kind.name == 'Reachability'
    target = system.state_of([0, 0])
    assert target.predicates == {'p1', 'p2', 'p3', 'p4'}


def objectives_test():
    for name, kind in OBJECTIVES.items():
        objective = make_objective(name, ['a'] * len(kind.variables))
        assert objective.initial_state == 'q0'
    with pytest.raises(ValueError):
        make_objective('Persistence', ['a'])


def parse_polytope_test():
    poly = parse_polytope(['0 < x', 'x < 2', '0 < y', 'y < 1'], ['x', 'y'])
    assert poly.volume == pytest.approx(2.0)
    with pytest.raises(ValueError):
        parse_polytope(['0 < x', '0 < y'], ['x', 'y'])
    with pytest.raises(ValueError):
        parse_polytope(['0 < x', 'x < -1', '0 < y', 'y < 1'], ['x', 'y'])


def custom_setup_test():
    setup = dict(SETUPS['Illustrative Example'])
    setup['objective'] = ('Reachability & Avoidance', ['p1', 'p2'])
    with pytest.raises(ValueError):
        make_setup(setup)
    setup['predicates'] = [('p1', 'x > 3'), ('p2', 'y > 1.5')]
    system, objective = make_setup(setup)
    assert set(system.predicates) == {'p1', 'p2'}
    with pytest.raises(ValueError):
        make_setup('Moon Landing')
