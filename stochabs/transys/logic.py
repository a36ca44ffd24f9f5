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
Propositional formulas, one-pair Streett automata and objectives.

An objective instantiates the variables of an automaton with propositional
formulas over predicate labels. The automaton is deterministic: transitions
of a state are tried in order of definition, and the default transition (the
one with an empty label) applies when none matches.

Automata are written as four C{|}-separated fields:

    q0>phi>q1, q0>>q0, q1>>q1 | q0 | q0 | q1

listing the transitions C{origin>label>target}, the initial state, and the
two acceptance sets E and F. A run is accepting if it visits F infinitely
often or visits E only finitely often.
"""
import logging
from collections import namedtuple

import ply.lex as lex
import ply.yacc as yacc

logger = logging.getLogger(__name__)


class ParseError(ValueError):
    pass


class Formula(object):
    """Base of propositional formulas."""
    def evaluate(self, valuate):
        """Truth value, given the truth value of every symbol.

        @param valuate: maps a symbol to C{bool}
        @type valuate: callable
        """
        raise NotImplementedError

    def symbols(self):
        raise NotImplementedError


class Constant(Formula):
    def __init__(self, value):
        self.value = bool(value)

    def evaluate(self, valuate):
        return self.value

    def symbols(self):
        return set()

    def __str__(self):
        return 'true' if self.value else 'false'


class Atom(Formula):
    def __init__(self, symbol):
        self.symbol = symbol

    def evaluate(self, valuate):
        return bool(valuate(self.symbol))

    def symbols(self):
        return {self.symbol}

    def __str__(self):
        return self.symbol


class Negation(Formula):
    def __init__(self, arg):
        self.arg = arg

    def evaluate(self, valuate):
        return not self.arg.evaluate(valuate)

    def symbols(self):
        return self.arg.symbols()

    def __str__(self):
        return '!{a}'.format(a=_wrap(self.arg))


class _Binary(Formula):
    op = None

    def __init__(self, lhs, rhs):
        self.lhs = lhs
        self.rhs = rhs

    def symbols(self):
        return self.lhs.symbols() | self.rhs.symbols()

    def __str__(self):
        return '{l} {op} {r}'.format(l=_wrap(self.lhs), op=self.op, r=_wrap(self.rhs))


class Conjunction(_Binary):
    op = '&'

    def evaluate(self, valuate):
        return self.lhs.evaluate(valuate) and self.rhs.evaluate(valuate)


class Disjunction(_Binary):
    op = '|'

    def evaluate(self, valuate):
        return self.lhs.evaluate(valuate) or self.rhs.evaluate(valuate)


class Implication(_Binary):
    op = '->'

    def evaluate(self, valuate):
        return not self.lhs.evaluate(valuate) or self.rhs.evaluate(valuate)


def _wrap(formula):
    if isinstance(formula, _Binary):
        return '({f})'.format(f=formula)
    return str(formula)


_BINARY = {'&': Conjunction, '|': Disjunction, '->': Implication}


class FormulaParser(object):
    """LALR parser of propositional formulas.

    C{!} binds tighter than C{&}, which binds tighter than C{|}. The
    implication C{->} binds loosest and associates to the right.
    """
    tokens = ['IDENTIFIER', 'TRUE', 'FALSE', 'NEG', 'AND', 'OR', 'IMPLIES', 'LPAREN', 'RPAREN']

    reserved = {'true': 'TRUE', 'false': 'FALSE'}

    start = 'formula'

    def __init__(self):
        self.lexer = lex.lex(module=self)
        self.parser = yacc.yacc(module=self, debug=False, write_tables=False)

    def parse(self, text):
        return self.parser.parse(text, lexer=self.lexer)

    # Lexer
    def t_IMPLIES(self, t):
        r'->'
        return t

    def t_NEG(self, t):
        r'!'
        return t

    def t_AND(self, t):
        r'&'
        return t

    def t_OR(self, t):
        r'\|'
        return t

    def t_LPAREN(self, t):
        r'\('
        return t

    def t_RPAREN(self, t):
        r'\)'
        return t

    def t_IDENTIFIER(self, t):
        r'[A-Za-z_]\w*'
        t.type = self.reserved.get(t.value, 'IDENTIFIER')
        return t

    def t_error(self, t):
        raise ParseError('Unexpected character {c!r} at position {i}'.format(
            c=t.value[0], i=t.lexpos))

    t_ignore = ' \t\n'

    # Parser
    precedence = (
        ('right', 'IMPLIES'),
        ('left', 'OR'),
        ('left', 'AND'),
        ('right', 'NEG'),
    )

    def p_formula_binary(self, p):
        """
        formula : formula IMPLIES formula
                | formula OR formula
                | formula AND formula
        """
        p[0] = _BINARY[p[2]](p[1], p[3])

    def p_formula_negation(self, p):
        """
        formula : NEG formula
        """
        p[0] = Negation(p[2])

    def p_formula_group(self, p):
        """
        formula : LPAREN formula RPAREN
        """
        p[0] = p[2]

    def p_formula_constant(self, p):
        """
        formula : TRUE
                | FALSE
        """
        p[0] = Constant(p[1] == 'true')

    def p_formula_atom(self, p):
        """
        formula : IDENTIFIER
        """
        p[0] = Atom(p[1])

    def p_error(self, p):
        if p is None:
            raise ParseError('Unexpected end of formula')
        raise ParseError('Unexpected {v!r} at position {i}'.format(v=p.value, i=p.lexpos))


_parser = None


def parse_formula(text):
    """Parse a propositional formula.

    @type text: C{str}
    @rtype: L{Formula}

    @raise ParseError: if text is not a formula
    """
    global _parser
    if _parser is None:
        _parser = FormulaParser()
    return _parser.parse(text)


class OnePairStreettAutomaton(object):
    """Deterministic automaton with acceptance pair (E, F).

    @ivar states: state labels in order of appearance
    @type states: C{list} of C{str}

    @ivar transitions: per state, the labelled transitions as
        (label, formula, target) triples
    @type transitions: C{dict}

    @ivar defaults: per state, the target of the default transition
    @type defaults: C{dict}
    """
    def __init__(self):
        self.states = []
        self.transitions = dict()
        self.defaults = dict()
        self.acceptance_set_e = set()
        self.acceptance_set_f = set()
        self.initial_state = None

    def add_state(self, label):
        if label not in self.transitions:
            self.states.append(label)
            self.transitions[label] = []
            self.defaults[label] = None
        return label

    def add_transition(self, origin, label, target):
        self.add_state(origin)
        self.add_state(target)
        if not label:
            if self.defaults[origin] is not None:
                raise ParseError('Default target set twice for state {q!r}'.format(q=origin))
            self.defaults[origin] = target
            return
        if any(label == other for other, _, _ in self.transitions[origin]):
            raise ParseError('Transition {p!r} specified twice for state {q!r}'.format(
                p=label, q=origin))
        self.transitions[origin].append((label, parse_formula(label), target))

    def next_state(self, valuate, q):
        """Successor of q, None if no transition applies.

        @param valuate: truth value of each automaton symbol
        @type valuate: callable
        """
        for _, formula, target in self.transitions[q]:
            if formula.evaluate(valuate):
                return target
        return self.defaults[q]

    @property
    def symbols(self):
        symbols = set()
        for transitions in self.transitions.values():
            for _, formula, _ in transitions:
                symbols |= formula.symbols()
        return symbols

    @classmethod
    def parse(cls, text):
        fields = text.rsplit('|', 3)
        if len(fields) != 4:
            raise ParseError('Expected 4 fields in automaton {t!r}'.format(t=text))
        transitions, initial, set_e, set_f = fields
        automaton = cls()
        for transition in transitions.split(','):
            transition = transition.strip()
            if not transition:
                continue
            first = transition.find('>')
            last = transition.rfind('>')
            if first < 0 or first == last:
                raise ParseError('Malformed transition {t!r}'.format(t=transition))
            origin = transition[:first].strip()
            label = transition[first + 1:last].strip()
            target = transition[last + 1:].strip()
            if not origin or not target:
                raise ParseError('Malformed transition {t!r}'.format(t=transition))
            automaton.add_transition(origin, label, target)
        for label in _split_labels(set_e):
            automaton.acceptance_set_e.add(automaton.add_state(label))
        for label in _split_labels(set_f):
            automaton.acceptance_set_f.add(automaton.add_state(label))
        initial = initial.strip()
        if not initial:
            raise ParseError('No initial state in automaton {t!r}'.format(t=text))
        automaton.initial_state = automaton.add_state(initial)
        return automaton

    def stringify(self):
        transitions = []
        for q in self.states:
            for label, _, target in self.transitions[q]:
                transitions.append('{o}>{p}>{t}'.format(o=q, p=label, t=target))
            if self.defaults[q] is not None:
                transitions.append('{o}>>{t}'.format(o=q, t=self.defaults[q]))
        return ' | '.join([
            ','.join(transitions),
            self.initial_state,
            ','.join(q for q in self.states if q in self.acceptance_set_e),
            ','.join(q for q in self.states if q in self.acceptance_set_f)
        ])


def _split_labels(text):
    return [label.strip() for label in text.split(',') if label.strip()]


ObjectiveKind = namedtuple('ObjectiveKind', ['name', 'formula', 'variables', 'automaton'])


class Objective(object):
    """Automaton whose symbols stand for formulas over predicate labels.

    @ivar kind: description of the objective
    @type kind: L{ObjectiveKind}

    @ivar propositions: formula over predicate labels for each variable
    @type propositions: C{dict} of C{str} to L{Formula}

    @ivar automaton: the objective automaton
    @type automaton: L{OnePairStreettAutomaton}
    """
    def __init__(self, kind, terms):
        if len(terms) != len(kind.variables):
            raise ValueError('Objective {n!r} takes {k} terms, got {m}'.format(
                n=kind.name, k=len(kind.variables), m=len(terms)))
        self.kind = kind
        self.propositions = dict()
        for variable, term in zip(kind.variables, terms):
            self.propositions[variable] = parse_formula(term) if isinstance(term, str) else term
        self.automaton = OnePairStreettAutomaton.parse(kind.automaton)
        unknown = self.automaton.symbols - set(self.propositions)
        if unknown:
            raise ParseError('Automaton uses unknown variables {u}'.format(u=sorted(unknown)))
        self._cache = dict()

    @property
    def initial_state(self):
        return self.automaton.initial_state

    @property
    def all_states(self):
        return list(self.automaton.states)

    @property
    def acceptance_set_e(self):
        return self.automaton.acceptance_set_e

    @property
    def acceptance_set_f(self):
        return self.automaton.acceptance_set_f

    @property
    def predicate_labels(self):
        """Labels of all predicates the objective refers to."""
        labels = set()
        for formula in self.propositions.values():
            labels |= formula.symbols()
        return labels

    def next_state(self, predicates, q):
        """Automaton successor of q in a state satisfying the given predicates.

        @param predicates: labels of the satisfied predicates
        @param q: automaton state

        @return: next automaton state, None if there is none
        """
        key = (frozenset(predicates), q)
        if key not in self._cache:
            preds = key[0]

            def valuate(symbol):
                return self.propositions[symbol].evaluate(lambda label: label in preds)

            self._cache[key] = self.automaton.next_state(valuate, q)
        return self._cache[key]

    def serialize(self):
        return {
            'kind': self.kind._asdict(),
            'terms': [str(self.propositions[v]) for v in self.kind.variables]
        }

    @classmethod
    def deserialize(cls, data):
        kind = data['kind']
        return cls(ObjectiveKind(kind['name'], kind['formula'], list(kind['variables']),
                                 kind['automaton']),
                   data['terms'])
