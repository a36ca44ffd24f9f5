#!/usr/bin/env python
"""Tests of `stochabs.abstract.refinement`."""
import logging

import numpy as np
import pytest

from stochabs.abstract.abstraction import StateKind
from stochabs.abstract.refinement import (REFINERIES, LayerSettings, NegativeAttrRefinery,
                                          OuterAttrRefinery, PositiveRobustRefinery, Refinery,
                                          RobustReachabilitySettings, SafetyRefinery,
                                          SelfLoopRefinery, TransitionRefinery, refine_attr_r)
from stochabs.geometry import Halfspace, Polytope
from stochabs.hybrid import LinearStochasticSystem
from stochabs.presets import make_objective
from stochabs.transys.game import AnalysisResult, AnalysisResults, TwoPlayerProbabilisticGame

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
    system = lss.decompose([Halfspace.parse('x > 2', ['x', 'y'])], ['p1'])
    return system, make_objective('Reachability', ['p1'])


def left_right(system):
    return system.state_of([1, 1]), system.state_of([3, 1])


def hand_results(system):
    """The goal cell is satisfying, the cell left of it undecided."""
    left, right = left_right(system)
    return AnalysisResults({left.label: AnalysisResult(maybe=['q0']),
                            right.label: AnalysisResult(yes=['q0', 'q1'])})


def analysed_results(system, objective):
    return TwoPlayerProbabilisticGame.from_product(system, objective).analyse()


def check_results_cover(system, results):
    for x in system.states.values():
        if not x.is_outer:
            assert x.label in results


def settings_test():
    settings = RobustReachabilitySettings(post_processing='hull', action_pick='random', seed=3)
    assert settings.post_processing.value == 'hull'
    assert settings.action_pick.value == 'random'
    with pytest.raises(ValueError):
        RobustReachabilitySettings(post_processing='smooth')
    with pytest.raises(ValueError):
        RobustReachabilitySettings(action_pick='worst')
    layers = LayerSettings('Pre', 0.5, [2, 4])
    assert layers.range == (2, 4)
    with pytest.raises(ValueError):
        LayerSettings(range=(3, 1))
    with pytest.raises(ValueError):
        LayerSettings(generator='Post')


def unknown_operator_test():
    system, objective = build_system()
    results = hand_results(system)
    with pytest.raises(ValueError):
        PositiveRobustRefinery(system, objective, results, operator='Post')
    with pytest.raises(ValueError):
        OuterAttrRefinery(system, objective, results, operator='post')
    with pytest.raises(NotImplementedError):
        Refinery(system, objective, results).partition(left_right(system)[0])


def decided_states_test():
    system, objective = build_system()
    results = AnalysisResults({x.label: AnalysisResult(yes=['q0', 'q1'])
                               for x in system.states.values() if not x.is_outer})
    refineries = [
        OuterAttrRefinery(system, objective, results),
        NegativeAttrRefinery(system, objective, results),
        PositiveRobustRefinery(system, objective, results),
        PositiveRobustRefinery(system, objective, results, operator='AttrR'),
        SafetyRefinery(system, objective, results),
        SelfLoopRefinery(system, objective, results),
        TransitionRefinery(system, objective, results, 'q0', 'q1')
    ]
    for refinery in refineries:
        assert refinery.partition_all() == {}
    n = len(system.states)
    assert refineries[0].refine() == {}
    assert len(system.states) == n


def positive_robust_pre_r_test():
    system, objective = build_system()
    results = hand_results(system)
    left, right = left_right(system)
    refinery = PositiveRobustRefinery(system, objective, results, automaton_states=['q0'])
    partitions = refinery.partition_all()
    assert list(partitions) == [left.label]
    assert sorted(p.volume for p in partitions[left.label]) == pytest.approx([1.8, 2.2])
    assert partitions[left.label].is_same_as(left.polytope)
    refinement_map = refinery.refine()
    children = refinement_map[left.label]
    assert len(children) == 2
    for label in children:
        assert results[label].maybe == {'q0'}
    assert system.check_partition()
    assert system.state_of([1.5, 1]).polytope.is_same_as(box([1.1, 2], [0, 2]))


def refine_attr_r_test():
    system, _ = build_system()
    lss = system.lss
    left, right = left_right(system)
    rng = np.random.default_rng(0)
    good, other = refine_attr_r(lss, left.polytope, right.polytope, rng)
    assert not good.is_empty
    assert not other.is_empty
    assert good.union(other).is_same_as(left.polytope)
    # Already robustly controllable into the target
    small = box([1.5, 1.7], [0.5, 0.7])
    good, other = refine_attr_r(lss, small, right.polytope, rng)
    assert good.is_same_as(small)
    assert other.is_empty


def transition_test():
    system, objective = build_system()
    results = hand_results(system)
    left, _ = left_right(system)
    refinery = TransitionRefinery(system, objective, results, 'q0', 'q1',
                                  settings=RobustReachabilitySettings(seed=1))
    assert len(refinery.problems) == 1
    assert refinery.partition(left).is_same_as(left.polytope)
    refinery.iterate(1)
    partition = refinery.partition(left)
    assert len(partition) >= 2
    assert partition.is_same_as(left.polytope)
    refinement_map = refinery.refine()
    assert left.label in refinement_map
    assert system.check_partition()
    check_results_cover(system, results)


def transition_layers_test():
    system, objective = build_system()
    results = hand_results(system)
    left, _ = left_right(system)
    refinery = TransitionRefinery(system, objective, results, 'q0', 'q1',
                                  layers=LayerSettings('PreR', 1.0, (1, 3)),
                                  settings=RobustReachabilitySettings(seed=1))
    assert 1 <= len(refinery.problems) <= 3
    refinery.iterate(2)
    assert refinery.partition(left).is_same_as(left.polytope)
    refinery.refine()
    assert system.check_partition()
    check_results_cover(system, results)


def analysed_refinement_test():
    """Every strategy keeps the abstraction a partition after an analysis."""
    for name in sorted(REFINERIES):
        system, objective = build_system()
        results = analysed_results(system, objective)
        if name == 'Transition':
            refinery = REFINERIES[name](system, objective, results, 'q0', 'q1')
            refinery.iterate(1)
        else:
            refinery = REFINERIES[name](system, objective, results)
        refinery.refine()
        assert system.check_partition(), name
        check_results_cover(system, results)
        for x in system.states_of_kind(StateKind.OUTER):
            assert x.label not in results or not results[x.label].yes
