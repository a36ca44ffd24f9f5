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
Request/response boundary around an abstraction, its objective and analysis.

A L{SystemSession} owns the abstraction. Callers receive plain data, never
live references to states. Requests are handled synchronously; failures are
returned as error responses instead of being raised.

The analysis may be offloaded to a C{multiprocessing} pool. If the transport
fails, the analysis runs locally.

Example::

    with multiprocessing.Pool(1) as pool:
        session = SystemSession(system, objective, pool=pool)
        session.handle(Request(1, 'analyse'))
"""
import logging
import pickle
import time
from collections import namedtuple

import numpy as np

from stochabs.abstract.abstraction import InvariantViolation
from stochabs.abstract.refinement import (REFINERIES, LayerSettings, RobustReachabilitySettings,
                                          TransitionRefinery)
from stochabs.controller import CONTROLLERS, Trace
from stochabs.geometry import Region
from stochabs.snapshot import SnapshotTree
from stochabs.transys.game import (AnalysisError, AnalysisResults, TwoPlayerProbabilisticGame,
                                   analyse_game_graph)
from stochabs.transys.logic import ParseError

logger = logging.getLogger(__name__)

Request = namedtuple('Request', ['id', 'kind', 'args'])
Request.__new__.__defaults__ = (None,)

Response = namedtuple('Response', ['id', 'kind', 'data', 'error', 'error_type'])
Response.__new__.__defaults__ = (None, None, None)

# Failures reported to the caller as error responses
_FAILURES = (KeyError, ValueError, InvariantViolation, AnalysisError, ParseError,
             NotImplementedError)

# Transport failures of the pool after which the analysis runs locally
_TRANSPORT_FAILURES = (OSError, EOFError, pickle.PicklingError)

_OPERATORS = ('post', 'pre', 'preR', 'attr', 'attrR')


class SystemSession(object):
    """Owner of an abstraction during verification.

    @param system: the abstraction
    @type system: L{AbstractedLSS}

    @param objective: the objective to verify
    @type objective: L{Objective}

    @param analyse: whether to analyse before the initial snapshot
    @type analyse: C{bool}

    @param pool: pool for offloading the analysis, see L{analyse}
    @type pool: C{multiprocessing.pool.Pool}

    @param seed: seed for trace sampling
    """
    def __init__(self, system, objective, analyse=False, pool=None, seed=None):
        self.system = system
        self.objective = objective
        self.analysis = None
        self.pool = pool
        self.rng = np.random.default_rng(seed)
        self.snapshots = SnapshotTree()
        if analyse:
            self.analyse()
        self.take_snapshot('Initial Problem')

    @property
    def lss(self):
        return self.system.lss

    def handle(self, request):
        """Dispatch a request to the method of the same name.

        The request kind uses dashes, C{'get-state'} calls L{get_state}.
        Arguments are given as a C{dict} of keyword arguments, a C{list} of
        positional arguments, or None.

        @type request: L{Request}
        @rtype: L{Response}
        """
        name = request.kind.replace('-', '_')
        try:
            if name not in _HANDLERS:
                raise ValueError('Unknown request {k!r}'.format(k=request.kind))
            method = getattr(self, name)
            args = request.args
            if args is None:
                data = method()
            elif isinstance(args, dict):
                data = method(**args)
            else:
                data = method(*args)
        except _FAILURES as e:
            logger.warning('Request {i} ({k}) failed: {e}'.format(i=request.id, k=request.kind, e=e))
            return Response(request.id, 'error', error=str(e), error_type=type(e).__name__)
        return Response(request.id, request.kind, data)

    # States, actions and supports

    def _get_state(self, label):
        if label not in self.system.states:
            raise KeyError('State {l} does not exist'.format(l=label))
        return self.system.states[label]

    def _state_data(self, state):
        result = None if self.analysis is None else self.analysis.get(state.label)
        return {
            'label': state.label,
            'kind': state.kind.name,
            'predicates': sorted(state.predicates),
            'analysis': None if result is None else result.serialize(),
            'polytope': state.polytope.serialize(),
            'centroid': state.centroid.tolist()
        }

    def get_state(self, label):
        return self._state_data(self._get_state(label))

    def get_states(self):
        return [self._state_data(state) for state in self.system.states.values()]

    def get_actions(self, label):
        state = self._get_state(label)
        return [{
            'id': i,
            'origin': state.label,
            'targets': list(action.targets),
            'controls': action.controls.serialize()
        } for i, action in enumerate(state.actions)]

    def get_supports(self, label, action_id):
        state = self._get_state(label)
        actions = state.actions
        if not 0 <= action_id < len(actions):
            raise KeyError('State {l} has no action {a}'.format(l=label, a=action_id))
        return [{
            'id': i,
            'origin': state.label,
            'targets': list(support.targets),
            'origins': support.origins.serialize()
        } for i, support in enumerate(actions[action_id].supports)]

    def get_operator(self, op, label, controls=None):
        """Apply a reachability operator to a state.

        The forward operator C{'post'} maps the state's polytope. The backward
        operators C{'pre'}, C{'preR'}, C{'attr'} and C{'attrR'} are taken in
        the state space with the state's polytope as target.

        @param controls: serialized control region, the control space if not
            given

        @return: serialized region
        """
        state = self._get_state(label)
        lss = self.lss
        us = lss.uus if controls is None else Region.deserialize(controls, lss.control_dim)
        if op == 'post':
            region = lss.post(state.polytope, us)
        elif op == 'pre':
            region = lss.pre(lss.xx, us, state.polytope)
        elif op == 'preR':
            region = lss.pre_r(lss.xx, us, state.polytope)
        elif op == 'attr':
            region = lss.attr(lss.xx, us, state.polytope)
        elif op == 'attrR':
            region = lss.attr_r(lss.xx, us, state.polytope)
        else:
            raise ValueError('Unknown operator {op!r}, expected one of {ops}'.format(
                op=op, ops=_OPERATORS))
        return region.serialize()

    def sample_trace(self, label=None, controller='Random', steps=100, q=None):
        """Sample a trace from a random point of a state or of the state space.

        @return: serialized L{Trace}
        """
        if controller not in CONTROLLERS:
            raise ValueError('Unknown controller {c!r}'.format(c=controller))
        if q is not None and q not in self.objective.all_states:
            raise KeyError('Automaton state {q} does not exist'.format(q=q))
        ctrl = CONTROLLERS[controller](self.system, self.objective, self.analysis, self.rng)
        x_init = None if label is None else self._get_state(label).polytope.sample(self.rng)
        trace = Trace(self.system, self.objective, self.rng)
        return trace.step_for(steps, ctrl, x_init, q).serialize()

    # Analysis and refinement

    def _analyse_offloaded(self, prior):
        args = (self.system.serialize_game_graph(), self.objective.serialize(),
                None if prior is None else prior.serialize())
        try:
            data = self.pool.apply(analyse_game_graph, args)
        except _TRANSPORT_FAILURES as e:
            logger.warning('Offloaded analysis failed ({e}), analysing locally'.format(e=e))
            return None
        return AnalysisResults.deserialize(data)

    def analyse(self):
        """Solve the product game and update the kinds of the states.

        @return: timing and whether the analysis was offloaded
        @rtype: C{dict}
        """
        t0 = time.perf_counter()
        prior = self.analysis
        results = None
        if self.pool is not None:
            results = self._analyse_offloaded(prior)
        offloaded = results is not None
        if results is None:
            game = TwoPlayerProbabilisticGame.from_product(self.system, self.objective, prior)
            game.validate()
            results = game.analyse()
        if prior is not None:
            results.transfer_from_previous(prior)
        self.analysis = results
        q0 = self.objective.initial_state
        self.system.update_kinds(results.labels('yes', q0), results.labels('no', q0))
        elapsed = time.perf_counter() - t0
        logger.info('Analysis took {t:.3f}s'.format(t=elapsed))
        return {'elapsed': elapsed, 'offloaded': offloaded}

    def _make_refinery(self, step, automaton_states):
        kwargs = dict(step)
        method = kwargs.pop('method', None)
        if method not in REFINERIES:
            raise ValueError('Unknown refinement method {m!r}'.format(m=method))
        iterations = kwargs.pop('iterations', 0)
        if isinstance(kwargs.get('settings'), dict):
            kwargs['settings'] = RobustReachabilitySettings(**kwargs['settings'])
        if isinstance(kwargs.get('layers'), dict):
            kwargs['layers'] = LayerSettings(**kwargs['layers'])
        cls = REFINERIES[method]
        if cls is not TransitionRefinery:
            kwargs.setdefault('automaton_states', automaton_states)
        refinery = cls(self.system, self.objective, self.analysis, **kwargs)
        if iterations:
            refinery.iterate(iterations)
        return refinery

    def refine(self, steps, automaton_states=None):
        """Apply refinement steps in order.

        @param steps: each a C{dict} with the key C{'method'} naming one of
            L{REFINERIES} and the keyword arguments of that refinery. The
            keys C{'settings'} and C{'layers'} may be given as C{dict}, and
            C{'iterations'} sets how often a L{TransitionRefinery} iterates.

        @param automaton_states: automaton states considered, all if not given

        @return: labels of the refined states and timing
        @rtype: C{dict}
        """
        if self.analysis is None:
            raise ValueError('Refinement requires an analysed system')
        t0 = time.perf_counter()
        refined = set()
        for step in steps:
            refinery = self._make_refinery(step, automaton_states)
            refined.update(refinery.refine())
        elapsed = time.perf_counter() - t0
        logger.info('Refinement of {n} states took {t:.3f}s'.format(n=len(refined), t=elapsed))
        return {'elapsed': elapsed, 'states': sorted(refined)}

    def _stats(self, q, measure):
        stats = {'yes': 0, 'no': 0, 'maybe': 0, 'unreachable': 0}
        for state in self.system.states.values():
            if state.is_outer:
                continue
            result = None if self.analysis is None else self.analysis.get(state.label)
            if result is None or q in result.maybe:
                which = 'maybe'
            elif q in result.yes:
                which = 'yes'
            elif q in result.no:
                which = 'no'
            else:
                which = 'unreachable'
            stats[which] += measure(state)
        return stats

    def get_system_summary(self):
        """Count and volume of the states per class, for each automaton state."""
        return {q: {'count': self._stats(q, lambda state: 1),
                    'volume': self._stats(q, lambda state: state.polytope.volume)}
                for q in self.objective.all_states}

    # Snapshots

    def take_snapshot(self, name):
        return self.snapshots.take(name, self.system, self.analysis)

    def load_snapshot(self, sid):
        self.snapshots.select(sid)
        self.system = self.snapshots.get_system()
        self.analysis = self.snapshots.get_analysis()

    def name_snapshot(self, sid, name):
        self.snapshots.rename(sid, name)

    def get_snapshots(self):
        return self.snapshots.treeify()


_HANDLERS = frozenset([
    'get_state', 'get_states', 'get_actions', 'get_supports', 'get_operator', 'sample_trace',
    'analyse', 'refine', 'get_system_summary', 'take_snapshot', 'load_snapshot',
    'name_snapshot', 'get_snapshots'
])
