#!/usr/bin/env python
"""Tests of `stochabs.session`."""
import logging

import pytest

from stochabs.presets import make_setup
from stochabs.session import Request, SystemSession

logging.basicConfig()
logger = logging.getLogger(__name__)


class FailingPool(object):
    def apply(self, func, args=()):
        raise OSError('Worker is gone')


class LocalPool(object):
    def __init__(self):
        self.calls = 0

    def apply(self, func, args=()):
        self.calls += 1
        return func(*args)


def build_session(**kwargs):
    system, objective = make_setup('Illustrative Example')
    return SystemSession(system, objective, seed=0, **kwargs)


def labels_of(session):
    left = session.system.state_of([1, 1]).label
    right = session.system.state_of([3, 1]).label
    return left, right


def decisions_of(session):
    """Polytope, outcome and automaton state of every decided pair."""
    decided = []
    for state in session.system.states.values():
        result = session.analysis.get(state.label)
        if state.is_outer or result is None:
            continue
        for kind in ('yes', 'no'):
            decided.extend((state.polytope, kind, q) for q in getattr(result, kind))
    return decided


def error_responses_test():
    session = build_session()
    left, _ = labels_of(session)
    cases = [
        (Request(1, 'get-state', {'label': 'X999'}), 'KeyError'),
        (Request(2, 'fly'), 'ValueError'),
        (Request(3, 'get-operator', ['sideways', left]), 'ValueError'),
        (Request(4, 'refine', {'steps': [{'method': 'PositiveRobust'}]}), 'ValueError'),
        (Request(5, 'get-supports', [left, 99]), 'KeyError'),
        (Request(6, 'sample-trace', {'controller': 'Psychic'}), 'ValueError'),
        (Request(7, 'sample-trace', {'q': 'q7'}), 'KeyError'),
        (Request(8, 'load-snapshot', [42]), 'KeyError'),
    ]
    for request, error_type in cases:
        response = session.handle(request)
        assert response.id == request.id
        assert response.kind == 'error'
        assert response.error_type == error_type
        assert response.error


def get_state_test():
    session = build_session()
    left, right = labels_of(session)
    response = session.handle(Request(1, 'get-state', {'label': right}))
    assert response.kind == 'get-state'
    assert response.error is None
    data = response.data
    assert data['label'] == right
    assert data['predicates'] == ['p1']
    assert data['kind'] == 'UNDECIDED'
    assert data['analysis'] is None
    assert len(data['centroid']) == 2
    states = session.handle(Request(2, 'get-states')).data
    assert {s['label'] for s in states} == set(session.system.states)


def actions_and_supports_test():
    session = build_session()
    left, _ = labels_of(session)
    actions = session.handle(Request(1, 'get-actions', [left])).data
    assert actions
    assert [a['id'] for a in actions] == list(range(len(actions)))
    for action in actions:
        assert action['origin'] == left
        supports = session.handle(Request(2, 'get-supports', [left, action['id']])).data
        assert supports
        for support in supports:
            assert set(support['targets']) <= set(action['targets'])


def operators_test():
    session = build_session()
    _, right = labels_of(session)
    for op in ('post', 'pre', 'preR', 'attr', 'attrR'):
        response = session.handle(Request(1, 'get-operator', {'op': op, 'label': right}))
        assert response.kind == 'get-operator', response.error
        assert isinstance(response.data, list)
    controls = [[[0.5, -0.1], [1, -0.1], [1, 0.1], [0.5, 0.1]]]
    post = session.handle(Request(2, 'get-operator', ['post', right, controls])).data
    assert len(post) == 1


def analyse_and_refine_test():
    session = build_session()
    response = session.handle(Request(1, 'analyse'))
    assert response.data['offloaded'] is False
    _, right = labels_of(session)
    assert session.get_state(right)['analysis'] is not None
    summary = session.handle(Request(2, 'get-system-summary')).data
    assert set(summary) == {'q0', 'q1'}
    counts = summary['q0']['count']
    inner = [s for s in session.system.states.values() if not s.is_outer]
    assert sum(counts.values()) == len(inner)
    assert summary['q0']['volume']['yes'] + summary['q0']['volume']['maybe'] <= 8.0 + 1e-6

    steps = [{'method': 'Transition', 'origin': 'q0', 'target': 'q1', 'iterations': 1,
              'settings': {'seed': 0}},
             {'method': 'OuterAttr'}]
    response = session.handle(Request(3, 'refine', {'steps': steps}))
    assert response.kind == 'refine', response.error
    for label in response.data['states']:
        assert label not in session.system.states
    assert session.system.check_partition()
    session.handle(Request(4, 'analyse'))
    for state in session.system.states.values():
        if not state.is_outer:
            assert state.label in session.analysis


def refine_keeps_decisions_test():
    """Contracting system: the goal cell is won, the other cell only cooperatively."""
    setup = {
        'variables': ['x', 'y'],
        'control_variables': ['x', 'y'],
        'A': [[0.5, 0], [0, 0.5]],
        'B': [[1, 0], [0, 1]],
        'control_space': ['-1 < x', 'x < 1', '-1 < y', 'y < 1'],
        'random_space': ['-0.1 < x', 'x < 0.1', '-0.1 < y', 'y < 0.1'],
        'state_space': ['-2 < x', 'x < 2', '-2 < y', 'y < 2'],
        'predicates': [('p1', 'x > 1')],
        'objective': ('Reachability', ['p1'])
    }
    system, objective = make_setup(setup)
    session = SystemSession(system, objective, seed=0)
    session.analyse()
    goal = session.system.state_of([1.5, 0]).label
    assert 'q0' in session.analysis[goal].yes
    decided = decisions_of(session)
    steps = [{'method': 'Transition', 'origin': 'q0', 'target': 'q1', 'iterations': 1,
              'settings': {'seed': 0}},
             {'method': 'PositiveRobust'}]
    session.refine(steps)
    session.analyse()
    # Decided cells keep their outcome, split ones pass it to their parts
    checked = 0
    for state in session.system.states.values():
        if state.is_outer:
            continue
        result = session.analysis[state.label]
        for polytope, kind, q in decided:
            if polytope.contains(state.centroid):
                assert q in getattr(result, kind), (state.label, kind, q)
                checked += 1
    assert checked >= len(decided)


def unknown_refinement_test():
    session = build_session(analyse=True)
    response = session.handle(Request(1, 'refine', [[{'method': 'Magic'}]]))
    assert response.error_type == 'ValueError'
    response = session.handle(Request(2, 'refine', [[{'method': 'Transition', 'origin': 'q0',
                                                      'target': 'q1',
                                                      'layers': {'range': [3, 1]}}]]))
    assert response.error_type == 'ValueError'


def offloaded_analysis_test():
    pool = LocalPool()
    session = build_session(pool=pool)
    assert session.analyse()['offloaded'] is True
    assert pool.calls == 1
    local = build_session()
    local.analyse()
    for label in local.system.states:
        assert session.analysis[label].serialize() == local.analysis[label].serialize()


def failing_pool_test():
    session = build_session(pool=FailingPool())
    assert session.analyse()['offloaded'] is False
    assert session.analysis is not None


def sample_trace_test():
    session = build_session(analyse=True)
    left, _ = labels_of(session)
    for controller in ('Random', 'SafeAction'):
        trace = session.handle(Request(1, 'sample-trace', {'label': left, 'steps': 5,
                                                            'controller': controller})).data
        assert 1 <= len(trace) <= 5
        assert trace[0]['state'] == left
        assert trace[0]['q'] == 'q0'


def snapshots_test():
    session = build_session()
    initial = dict((s.label, s.kind) for s in session.system.states.values())
    session.analyse()
    sid = session.handle(Request(1, 'take-snapshot', ['Analysed'])).data
    session.handle(Request(2, 'name-snapshot', [sid, 'After analysis']))
    tree = session.handle(Request(3, 'get-snapshots')).data
    assert tree['name'] == 'Initial Problem'
    assert tree['children'][0]['name'] == 'After analysis'
    assert tree['children'][0]['is_current']

    session.handle(Request(4, 'load-snapshot', [tree['id']]))
    assert session.analysis is None
    assert {s.label: s.kind for s in session.system.states.values()} == initial
    session.handle(Request(5, 'load-snapshot', {'sid': sid}))
    assert session.analysis is not None
    assert session.snapshots.current == sid


def refine_requires_analysis_test():
    with pytest.raises(ValueError):
        build_session().refine([{'method': 'OuterAttr'}])
