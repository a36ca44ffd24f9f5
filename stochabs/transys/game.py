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
Two-player probabilistic games from abstractions and objectives.

The product of a game graph (see L{stochabs.abstract.abstraction}) with a
one-pair Streett objective automaton is a 2 1/2-player parity game with
priorities 0, 1 and 2. Player 1 (the controller) picks an action in a
L{P1State}; player 2 (the adversary) picks a support of that action in a
L{P2State}, after which one of the support's targets is reached with
positive probability.

Both the adversarial and the cooperative almost-sure winning regions are
computed. Pairs won adversarially are satisfying, pairs not even won
cooperatively are violating, the rest is undecided.
"""
import logging
from collections import deque, namedtuple

import networkx as nx

from stochabs.abstract.abstraction import MappedGameGraph

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """Raised for malformed games and fixpoints that fail to converge."""


P1State = namedtuple('P1State', ['system_state', 'automaton_state'])
P2State = namedtuple('P2State', ['system_state', 'system_action', 'automaton_state'])

DEAD_END_P1 = P1State('#dead', '#dead')
DEAD_END_P2 = P2State('#dead', 0, '#dead')
WIN_P1 = P1State('#win', '#win')
WIN_P2 = P2State('#win', 0, '#win')

_SINKS = (DEAD_END_P1, DEAD_END_P2, WIN_P1, WIN_P2)


class AnalysisResult(object):
    """Classification of the automaton states for one system state.

    Automaton states in none of the sets are unreachable.
    """
    def __init__(self, yes=(), no=(), maybe=()):
        self.yes = set(yes)
        self.no = set(no)
        self.maybe = set(maybe)

    def copy(self):
        return AnalysisResult(self.yes, self.no, self.maybe)

    def is_decided(self, q):
        return q not in self.maybe

    def unreachable(self, all_states):
        return set(all_states) - self.yes - self.no - self.maybe

    def serialize(self):
        return {'yes': sorted(self.yes), 'no': sorted(self.no), 'maybe': sorted(self.maybe)}

    @classmethod
    def deserialize(cls, data):
        return cls(data['yes'], data['no'], data['maybe'])

    def __repr__(self):
        return 'AnalysisResult(yes={y}, no={n}, maybe={m})'.format(
            y=sorted(self.yes), n=sorted(self.no), m=sorted(self.maybe))


class AnalysisResults(object):
    """Analysis results by system state label."""
    def __init__(self, results=None):
        self._results = dict() if results is None else dict(results)

    def __contains__(self, label):
        return label in self._results

    def __getitem__(self, label):
        return self._results[label]

    def __iter__(self):
        return iter(self._results)

    def __len__(self):
        return len(self._results)

    def get(self, label, default=None):
        return self._results.get(label, default)

    def items(self):
        return self._results.items()

    def setdefault(self, label):
        if label not in self._results:
            self._results[label] = AnalysisResult()
        return self._results[label]

    def labels(self, which, q, all_labels=None):
        """Labels of the system states in the given class for automaton state q.

        @param which: one of C{'yes'}, C{'no'}, C{'maybe'}, C{'unreachable'}
        @param all_labels: labels of all system states, needed for
            C{'unreachable'}

        @rtype: C{set} of C{str}
        """
        if which == 'unreachable':
            if all_labels is None:
                raise ValueError('Unreachable states need all state labels')
            return {label for label in all_labels
                    if label not in self._results or
                    q not in (self._results[label].yes | self._results[label].no |
                              self._results[label].maybe)}
        if which not in ('yes', 'no', 'maybe'):
            raise ValueError('Unknown result class {w!r}'.format(w=which))
        return {label for label, result in self._results.items() if q in getattr(result, which)}

    def transfer_from_previous(self, prior):
        """Carry decided classifications of prior over undecided ones."""
        for label, old in prior.items():
            new = self._results.get(label)
            if new is None:
                continue
            for q in old.yes & new.maybe:
                new.maybe.discard(q)
                new.yes.add(q)
            for q in old.no & new.maybe:
                new.maybe.discard(q)
                new.no.add(q)

    def remap(self, refinement_map):
        """Give the children of refined states the result of their parent.

        @param refinement_map: map from parent label to child labels, as
            returned by L{AbstractedLSS.refine}
        """
        for parent, children in refinement_map.items():
            result = self._results.pop(parent, None)
            if result is None:
                continue
            for child in children:
                self._results[child] = result.copy()

    def serialize(self):
        return {label: result.serialize() for label, result in self._results.items()}

    @classmethod
    def deserialize(cls, data):
        return cls({label: AnalysisResult.deserialize(item) for label, item in data.items()})


def _prior_decision(prior, label, q):
    if prior is None:
        return None
    result = prior.get(label)
    if result is None:
        return None
    if q in result.yes:
        return True
    if q in result.no:
        return False
    return None


class TwoPlayerProbabilisticGame(object):
    """Product game of a game graph and an objective.

    @ivar graph: nodes are L{P1State} and L{P2State} values, with the node
        attributes C{priority} (0, 1 or 2) and C{actions} (list of
        C{frozenset} of successor nodes)
    @type graph: L{networkx.DiGraph}

    @ivar initial_states: the player 1 nodes the product is built from
    @type initial_states: C{set}
    """
    def __init__(self):
        self.graph = nx.DiGraph()
        self.initial_states = set()

    def add_node(self, node, priority, actions):
        actions = [frozenset(action) for action in actions]
        self.graph.add_node(node, priority=priority, actions=actions)
        for action in actions:
            for succ in action:
                self.graph.add_edge(node, succ)

    @classmethod
    def from_product(cls, system, objective, prior=None):
        """Build the product reachable from every system state paired with
        the initial automaton state.

        @param system: game graph, an L{AbstractedLSS} or L{MappedGameGraph}
        @param objective: the objective
        @type objective: L{Objective}
        @param prior: earlier results; pairs decided there become sinks
        @type prior: L{AnalysisResults}

        @rtype: L{TwoPlayerProbabilisticGame}
        """
        game = cls()
        accept_e = objective.acceptance_set_e
        accept_f = objective.acceptance_set_f

        def priority(q):
            if q in accept_f:
                return 0
            if q in accept_e:
                return 1
            return 2

        game.add_node(DEAD_END_P1, 1, [[DEAD_END_P2]])
        game.add_node(DEAD_END_P2, 1, [[DEAD_END_P1]])
        game.add_node(WIN_P1, 0, [[WIN_P2]])
        game.add_node(WIN_P2, 0, [[WIN_P1]])

        q0 = objective.initial_state
        queue = deque()
        seen = set(_SINKS)
        for label in system.state_labels:
            node = P1State(label, q0)
            game.initial_states.add(node)
            seen.add(node)
            queue.append(node)

        while queue:
            node = queue.popleft()
            if isinstance(node, P1State):
                x, q = node
                decision = _prior_decision(prior, x, q)
                if decision is True:
                    actions = [[WIN_P2]]
                elif decision is False:
                    actions = [[DEAD_END_P2]]
                else:
                    q_next = objective.next_state(system.predicate_labels_of(x), q)
                    count = 0 if q_next is None else system.action_count_of(x)
                    if count == 0:
                        actions = [[DEAD_END_P2]]
                    else:
                        actions = [[P2State(x, a, q_next)] for a in range(count)]
                game.add_node(node, priority(q), actions)
            else:
                x, a, q = node
                actions = [[P1State(t, q) for t in system.target_labels_of(x, a, s)]
                           for s in range(system.support_count_of(x, a))]
                if not actions:
                    actions = [[DEAD_END_P1]]
                game.add_node(node, priority(q), actions)
            for action in actions:
                for succ in action:
                    if succ not in seen:
                        seen.add(succ)
                        queue.append(succ)

        logger.info('Built product game with {n} nodes and {m} edges'.format(
            n=game.graph.number_of_nodes(), m=game.graph.number_of_edges()))
        return game

    def actions_of(self, node):
        return self.graph.nodes[node]['actions']

    def priority_of(self, node):
        return self.graph.nodes[node]['priority']

    def validate(self):
        """Check the game is well-formed, raising L{AnalysisError} otherwise."""
        classes = dict()
        for node, data in self.graph.nodes(data=True):
            priority = data.get('priority')
            if priority not in (0, 1, 2):
                raise AnalysisError('Node {n} has priority {p}'.format(n=node, p=priority))
            classes.setdefault(priority, set()).add(node)
            actions = data.get('actions')
            if not actions:
                raise AnalysisError('Node {n} has no actions'.format(n=node))
            for action in actions:
                if not action:
                    raise AnalysisError('Node {n} has an empty action'.format(n=node))
                for succ in action:
                    if succ not in self.graph:
                        raise AnalysisError('Successor {s} of {n} is not in the game'.format(
                            s=succ, n=node))
        for p1, p2 in ((0, 1), (0, 2), (1, 2)):
            if classes.get(p1, set()) & classes.get(p2, set()):
                raise AnalysisError('Priority classes {p1} and {p2} overlap'.format(p1=p1, p2=p2))
        for node in self.initial_states:
            if not isinstance(node, P1State):
                raise AnalysisError('Initial node {n} is not a player 1 node'.format(n=node))
        unreachable = set(self.graph) - set(_SINKS) - self.reachable()
        if unreachable:
            logger.warning('{n} game nodes are unreachable'.format(n=len(unreachable)))

    def reachable(self):
        """Nodes reachable from the initial nodes."""
        nodes = set(self.initial_states)
        for node in self.initial_states:
            nodes |= nx.descendants(self.graph, node)
        return nodes

    def solve(self):
        """Almost-sure winning region of player 1 against the adversary."""
        return self._solve(cooperative=False)

    def solve_coop(self):
        """Almost-sure winning region if the adversary cooperates."""
        return self._solve(cooperative=True)

    def _solve(self, cooperative):
        nodes = [(node, data['priority'], data['actions'],
                  cooperative or isinstance(node, P1State))
                 for node, data in self.graph.nodes(data=True)]
        every = frozenset(node for node, _, _, _ in nodes)
        cap = len(nodes) + 2

        def step(xs, ys, zs):
            result = set()
            for node, priority, actions, existential in nodes:
                if priority == 0:
                    tests = (succ <= xs for succ in actions)
                elif priority == 1:
                    tests = (succ <= xs and not succ.isdisjoint(ys) for succ in actions)
                else:
                    tests = (succ <= zs or (succ <= xs and not succ.isdisjoint(ys))
                             for succ in actions)
                if (any(tests) if existential else all(tests)):
                    result.add(node)
            return frozenset(result)

        new_x = every
        for _ in range(cap):
            old_x = new_x
            new_y = frozenset()
            for _ in range(cap):
                old_y = new_y
                new_z = every
                for _ in range(cap):
                    old_z = new_z
                    new_z = step(old_x, old_y, old_z)
                    if new_z == old_z:
                        break
                else:
                    raise AnalysisError('Inner fixpoint did not converge')
                new_y = old_z
                if new_y == old_y:
                    break
            else:
                raise AnalysisError('Middle fixpoint did not converge')
            new_x = old_y
            if new_x == old_x:
                return old_x
        raise AnalysisError('Outer fixpoint did not converge')

    def analyse(self):
        """Classify every reached (system state, automaton state) pair.

        @rtype: L{AnalysisResults}
        """
        win = self.solve()
        win_coop = self.solve_coop()
        if not win <= win_coop:
            raise AnalysisError('Adversarial winning region exceeds the cooperative one')
        results = AnalysisResults()
        for node in self.graph:
            if not isinstance(node, P1State) or node in _SINKS:
                continue
            result = results.setdefault(node.system_state)
            if node in win:
                result.yes.add(node.automaton_state)
            elif node in win_coop:
                result.maybe.add(node.automaton_state)
            else:
                result.no.add(node.automaton_state)
        logger.info('Analysis: {w} of {n} nodes won, {c} won cooperatively'.format(
            w=len(win), n=self.graph.number_of_nodes(), c=len(win_coop)))
        return results


def analyse_game_graph(graph, objective_data, prior_data=None):
    """Analyse a serialized game graph, with plain data in and out.

    Suitable for running in a worker process.

    @param graph: output of L{AbstractedLSS.serialize_game_graph}
    @param objective_data: output of L{Objective.serialize}
    @param prior_data: output of L{AnalysisResults.serialize}

    @return: serialized L{AnalysisResults}
    """
    from stochabs.transys.logic import Objective

    objective = Objective.deserialize(objective_data)
    prior = None if prior_data is None else AnalysisResults.deserialize(prior_data)
    game = TwoPlayerProbabilisticGame.from_product(MappedGameGraph(graph), objective, prior)
    game.validate()
    return game.analyse().serialize()
