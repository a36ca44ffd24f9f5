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
Controllers and sampled traces of an abstracted system.
"""
import logging
from collections import namedtuple

import numpy as np

from stochabs.linalg import as_vector

logger = logging.getLogger(__name__)


class Controller(object):
    """Base of controllers. Controllers keep their own memory.

    @ivar system: the abstraction the controller acts in
    @type system: L{AbstractedLSS}
    """
    def __init__(self, system, objective, analysis=None, rng=None):
        self.system = system
        self.objective = objective
        self.analysis = analysis
        self.rng = np.random.default_rng() if rng is None else rng

    def input(self, x, q):
        """Control input for state x in automaton state q.

        @rtype: L{ndarray}
        """
        raise NotImplementedError


class RandomController(Controller):
    """Uniformly random control input at every step."""

    def input(self, x, q):
        return self.system.lss.uus.sample(self.rng)


class SafeActionController(Controller):
    """Random control of an action that cannot lead into a violating state.

    Falls back to a random control input if no such action exists or no
    analysis is available.
    """
    def input(self, x, q):
        state = self.system.state_of(x)
        if self.analysis is None or state is None:
            return self.system.lss.uus.sample(self.rng)
        q_next = self.objective.next_state(state.predicates, q)
        unsafe = self.analysis.labels('no', q_next)
        unsafe.update(s.label for s in self.system.states.values() if s.is_outer)
        safe = [action for action in state.actions if unsafe.isdisjoint(action.targets)]
        if not safe:
            logger.debug('No safe action in {l}, using random control'.format(l=state.label))
            return self.system.lss.uus.sample(self.rng)
        action = safe[int(self.rng.integers(len(safe)))]
        return action.controls.sample(self.rng)


CONTROLLERS = {
    'Random': RandomController,
    'SafeAction': SafeActionController
}


TraceStep = namedtuple('TraceStep', ['x', 'u', 'w', 'x_next', 'state', 'q', 'q_next'])


class Trace(object):
    """Sampled run of the system together with its automaton run.

    @ivar steps: the sampled steps
    @type steps: C{list} of L{TraceStep}
    """
    def __init__(self, system, objective, rng=None):
        self.system = system
        self.objective = objective
        self.rng = np.random.default_rng() if rng is None else rng
        self.steps = []

    def __len__(self):
        return len(self.steps)

    def step(self, controller, x, q):
        """Sample one step from x in automaton state q.

        @return: the new step, None if x is outside the state space or the
            automaton has no transition
        @rtype: L{TraceStep}
        """
        lss = self.system.lss
        x = as_vector(x, lss.dim)
        state = self.system.state_of(x)
        if state is None or state.is_outer:
            return None
        q_next = self.objective.next_state(state.predicates, q)
        if q_next is None:
            return None
        u = as_vector(controller.input(x, q), lss.control_dim)
        w = lss.ww.sample(self.rng)
        step = TraceStep(x, u, w, lss.eval(x, u, w), state.label, q, q_next)
        self.steps.append(step)
        return step

    def step_for(self, steps, controller, x_init=None, q_init=None):
        """Sample up to the given number of steps.

        @param x_init: initial point, sampled from the state space if not given
        @param q_init: initial automaton state, the objective's initial state
            if not given
        """
        x = self.system.lss.xx.sample(self.rng) if x_init is None else x_init
        q = self.objective.initial_state if q_init is None else q_init
        for _ in range(steps):
            step = self.step(controller, x, q)
            if step is None:
                break
            x = step.x_next
            q = step.q_next
        logger.debug('Sampled trace of {n} steps'.format(n=len(self.steps)))
        return self

    def serialize(self):
        return [{
            'x': step.x.tolist(),
            'u': step.u.tolist(),
            'w': step.w.tolist(),
            'x_next': step.x_next.tolist(),
            'state': step.state,
            'q': step.q,
            'q_next': step.q_next
        } for step in self.steps]
