#!/usr/bin/env python
"""
Reach the origin box of a double integrator, alternating analysis and
refinement without a session.
"""
import logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)

import time

from stochabs.abstract.refinement import (OuterAttrRefinery, PositiveRobustRefinery,
                                          RobustReachabilitySettings)
from stochabs.presets import make_setup
from stochabs.transys.game import TwoPlayerProbabilisticGame


def volume_fraction(system, results, which, q):
    labels = results.labels(which, q)
    total = system.lss.xx.volume
    return sum(system.states[label].polytope.volume for label in labels) / total


def main(rounds=4):
    system, objective = make_setup('Double Integrator')
    settings = RobustReachabilitySettings(action_pick='best', seed=1)
    results = None
    for i in range(rounds):
        t0 = time.time()
        game = TwoPlayerProbabilisticGame.from_product(system, objective, results)
        new = game.analyse()
        if results is not None:
            new.transfer_from_previous(results)
        results = new
        q0 = objective.initial_state
        logger.info('Round {i} ({n} states, {t:.2f}s): {y:.1%} yes, {m:.1%} maybe'.format(
            i=i, n=len(system.states), t=time.time() - t0,
            y=volume_fraction(system, results, 'yes', q0),
            m=volume_fraction(system, results, 'maybe', q0)))
        if not results.labels('maybe', q0):
            break
        OuterAttrRefinery(system, objective, results, operator='attr').refine()
        PositiveRobustRefinery(system, objective, results, operator='AttrR',
                               settings=settings).refine()
    return system, results


if __name__ == '__main__':
    main()
