#!/usr/bin/env python
"""Tests of `stochabs.transys.logic`."""
import logging

import pytest

from stochabs.presets import OBJECTIVES
from stochabs.transys.logic import (Conjunction, Implication, Objective, ObjectiveKind,
                                    OnePairStreettAutomaton, ParseError, parse_formula)

logging.basicConfig()
logger = logging.getLogger(__name__)


def truth(*symbols):
    return lambda symbol: symbol in symbols


def formula_precedence_test():
    f = parse_formula('a | b & !c')
    assert f.evaluate(truth('a'))
    assert f.evaluate(truth('b'))
    assert not f.evaluate(truth('b', 'c'))
    g = parse_formula('a -> b -> c')
    assert isinstance(g, Implication)
    assert isinstance(g.rhs, Implication)
    assert g.evaluate(truth())
    assert not g.evaluate(truth('a', 'b'))
    h = parse_formula('(a | b) & c')
    assert isinstance(h, Conjunction)
    assert not h.evaluate(truth('a'))
    assert parse_formula('true').evaluate(truth())
    assert not parse_formula('!true | false').evaluate(truth())


def formula_symbols_test():
    f = parse_formula('(h1 | h2) & v1 & !v2')
    assert f.symbols() == {'h1', 'h2', 'v1', 'v2'}
    assert parse_formula(str(f)).symbols() == f.symbols()
    g = parse_formula('!a->b|truest')
    assert isinstance(g, Implication)
    assert g.symbols() == {'a', 'b', 'truest'}
    assert g.evaluate(truth('a'))
    assert not g.evaluate(truth())


def formula_errors_test():
    for text in ('', 'a &', '(a | b', 'a b', 'a $ b', '& a', 'a)'):
        with pytest.raises(ParseError):
            parse_formula(text)


def automaton_parse_test():
    automaton = OnePairStreettAutomaton.parse('q0>phi>q1, q0>>q0, q1>>q1 | q0 | q0 | q1')
    assert automaton.states == ['q0', 'q1']
    assert automaton.initial_state == 'q0'
    assert automaton.acceptance_set_e == {'q0'}
    assert automaton.acceptance_set_f == {'q1'}
    assert automaton.symbols == {'phi'}
    assert automaton.next_state(truth('phi'), 'q0') == 'q1'
    assert automaton.next_state(truth(), 'q0') == 'q0'
    assert automaton.next_state(truth(), 'q1') == 'q1'


def automaton_first_match_test():
    automaton = OnePairStreettAutomaton.parse('q0>a>q1, q0>a | b>q2, q1>>q1, q2>>q2 | q0 | | ')
    assert automaton.next_state(truth('a', 'b'), 'q0') == 'q1'
    assert automaton.next_state(truth('b'), 'q0') == 'q2'
    # No default transition
    assert automaton.next_state(truth(), 'q0') is None
    assert automaton.acceptance_set_e == set()


def automaton_round_trip_test():
    for kind in OBJECTIVES.values():
        automaton = OnePairStreettAutomaton.parse(kind.automaton)
        copy = OnePairStreettAutomaton.parse(automaton.stringify())
        assert copy.states == automaton.states
        assert copy.initial_state == automaton.initial_state
        assert copy.acceptance_set_e == automaton.acceptance_set_e
        assert copy.acceptance_set_f == automaton.acceptance_set_f
        assert copy.defaults == automaton.defaults
        assert ([(label, target) for label, _, target in copy.transitions['q0']] ==
                [(label, target) for label, _, target in automaton.transitions['q0']])


def automaton_errors_test():
    with pytest.raises(ParseError):
        OnePairStreettAutomaton.parse('q0>a>q1 | q0')
    with pytest.raises(ParseError):
        OnePairStreettAutomaton.parse('q0>>q0, q0>>q1 | q0 | | ')
    with pytest.raises(ParseError):
        OnePairStreettAutomaton.parse('q0>a>q0, q0>a>q1 | q0 | | ')
    with pytest.raises(ParseError):
        OnePairStreettAutomaton.parse('q0 q1 | q0 | | ')
    with pytest.raises(ParseError):
        OnePairStreettAutomaton.parse('q0>>q0 | | | ')


def objective_test():
    objective = Objective(OBJECTIVES['Reachability & Avoidance'], ['p1', '(h1 | h2) & v1 & v2'])
    assert objective.initial_state == 'q0'
    assert objective.all_states == ['q0', 'q1']
    assert objective.predicate_labels == {'p1', 'h1', 'h2', 'v1', 'v2'}
    assert objective.next_state({'p1'}, 'q0') == 'q1'
    assert objective.next_state(set(), 'q0') == 'q0'
    # Inside the obstacle
    assert objective.next_state({'h1', 'v1', 'v2'}, 'q0') is None
    assert objective.next_state({'h1', 'v1', 'v2'}, 'q1') == 'q1'


def objective_errors_test():
    with pytest.raises(ValueError):
        Objective(OBJECTIVES['Reachability'], ['p1', 'p2'])
    kind = ObjectiveKind('Broken', 'F phi', ['phi'], 'q0>psi>q1, q1>>q1 | q0 | | q1')
    with pytest.raises(ParseError):
        Objective(kind, ['p1'])


def objective_serialization_test():
    objective = Objective(OBJECTIVES['Recurrence'], ['a & !b'])
    copy = Objective.deserialize(objective.serialize())
    assert copy.kind == objective.kind
    for preds in (set(), {'a'}, {'a', 'b'}):
        for q in objective.all_states:
            assert copy.next_state(preds, q) == objective.next_state(preds, q)
