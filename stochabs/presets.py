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
Predefined objectives and problem setups.

Setups are given in text form, the way a user would enter them: spaces and
predicates as linear inequalities over named coordinates.
"""
import logging

from stochabs.geometry import Halfspace, Polytope
from stochabs.hybrid import LinearStochasticSystem
from stochabs.transys.logic import Objective, ObjectiveKind

logger = logging.getLogger(__name__)


# Automaton fields: transitions | initial state | E | F
OBJECTIVES = {
    'Reachability': ObjectiveKind(
        name='Reachability',
        formula='F phi',
        variables=['phi'],
        automaton='q0>phi>q1, q0>>q0, q1>>q1 | q0 | q0 | q1'),
    'Reachability & Avoidance': ObjectiveKind(
        name='Reachability & Avoidance',
        formula='!pi U phi',
        variables=['phi', 'pi'],
        automaton='q0>phi>q1, q0>!pi>q0, q1>>q1 | q0 | q0 | q1'),
    'Safety': ObjectiveKind(
        name='Safety',
        formula='G !pi',
        variables=['pi'],
        automaton='q0>!pi>q0 | q0 | | '),
    'Eventual Safety': ObjectiveKind(
        name='Eventual Safety',
        formula='F G phi',
        variables=['phi'],
        automaton='q0>phi>q1, q0>>q0, q1>phi>q1, q1>>q0 | q0 | q0 | '),
    'Recurrence': ObjectiveKind(
        name='Recurrence',
        formula='G F phi',
        variables=['phi'],
        automaton='q0>phi>q1, q0>>q0, q1>phi>q1, q1>>q0 | q0 | q0 | q1')
}


SETUPS = {
    'Illustrative Example': {
        'variables': ['x', 'y'],
        'control_variables': ['x', 'y'],
        'A': [[1, 0], [0, 1]],
        'B': [[1, 0], [0, 1]],
        'control_space': ['-1 < x', 'x < 1', '-1 < y', 'y < 1'],
        'random_space': ['-0.1 < x', 'x < 0.1', '-0.1 < y', 'y < 0.1'],
        'state_space': ['0 < x', 'x < 4', '0 < y', 'y < 2'],
        'predicates': [('p1', 'x > 2')],
        'objective': ('Reachability', ['p1'])
    },
    'Double Integrator': {
        'variables': ['x', 'y'],
        'control_variables': ['x'],
        'A': [[1, 1], [0, 1]],
        'B': [[0.5], [1]],
        'control_space': ['-1 < x', 'x < 1'],
        'random_space': ['-0.1 < x', 'x < 0.1', '-0.1 < y', 'y < 0.1'],
        'state_space': ['-5 < x', 'x < 5', '-3 < y', 'y < 3'],
        'predicates': [('p1', '-1 < x'), ('p2', 'x < 1'), ('p3', '-1 < y'), ('p4', 'y < 1')],
        'objective': ('Reachability', ['p1 & p2 & p3 & p4'])
    },
    'Corridor': {
        'variables': ['x', 'y'],
        'control_variables': ['x', 'y'],
        'A': [[1, 0], [0, 1]],
        'B': [[1, 0], [0, 1]],
        'control_space': ['-0.5 < x', 'x < 0.5', '-0.5 < y', 'y < 0.5'],
        'random_space': ['-0.1 < x', 'x < 0.1', '-0.1 < y', 'y < 0.1'],
        'state_space': ['0 < x', 'x < 4', '0 < y', 'y < 3'],
        'predicates': [('p1', 'x > 3'), ('h1', 'y < 1.2'), ('h2', 'y > 1.8'),
                       ('v1', 'x < 3'), ('v2', 'x > 2')],
        'objective': ('Reachability & Avoidance', ['p1', '(h1 | h2) & v1 & v2'])
    }
}


def parse_polytope(inequalities, variables):
    """Polytope bounded by the given linear inequalities.

    @raise ValueError: if the polytope is empty or unbounded
    """
    halfspaces = [Halfspace.parse(text, variables) for text in inequalities]
    poly = Polytope.from_halfspaces(halfspaces, len(variables))
    if poly.is_empty:
        raise ValueError('Inequalities {i} do not describe a bounded polytope'.format(
            i=inequalities))
    return poly


def make_objective(name, terms):
    """Objective of a predefined kind with the given terms."""
    if name not in OBJECTIVES:
        raise ValueError('Unknown objective {n!r}'.format(n=name))
    return Objective(OBJECTIVES[name], terms)


def make_setup(setup):
    """Build the abstraction and objective of a setup.

    @param setup: name of a predefined setup or a setup C{dict}

    @return: initial abstraction and objective
    @rtype: (L{AbstractedLSS}, L{Objective})
    """
    if not isinstance(setup, dict):
        if setup not in SETUPS:
            raise ValueError('Unknown setup {s!r}'.format(s=setup))
        setup = SETUPS[setup]
    variables = setup['variables']
    lss = LinearStochasticSystem(
        setup['A'], setup['B'],
        parse_polytope(setup['state_space'], variables),
        parse_polytope(setup['random_space'], variables),
        parse_polytope(setup['control_space'], setup['control_variables']))
    labels = [label for label, _ in setup['predicates']]
    predicates = [Halfspace.parse(text, variables) for _, text in setup['predicates']]
    system = lss.decompose(predicates, labels)
    objective = make_objective(*setup['objective'])
    unknown = objective.predicate_labels - set(labels)
    if unknown:
        raise ValueError('Objective refers to unknown predicates {u}'.format(u=sorted(unknown)))
    return system, objective
