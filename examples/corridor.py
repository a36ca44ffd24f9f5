#!/usr/bin/env python
"""
Verify reachability of a goal behind an obstacle, offloading each analysis
to a worker process. The snapshot tree and the final summary are written
to a json file.
"""
import logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

import json
import multiprocessing
import sys

from stochabs.presets import make_setup
from stochabs.session import Request, SystemSession

REFINEMENT_STEPS = [
    {'method': 'NegativeAttr'},
    {'method': 'Transition', 'origin': 'q0', 'target': 'q1', 'iterations': 2,
     'layers': {'generator': 'PreR', 'scaling': 0.9, 'range': (1, 5)},
     'settings': {'post_processing': 'suppress', 'seed': 42}},
    {'method': 'SelfLoop'}
]


def run(session, rounds):
    request_id = 0
    for i in range(rounds):
        request_id += 1
        response = session.handle(Request(request_id, 'analyse'))
        if response.error is not None:
            logger.error(response.error)
            return
        summary = session.get_system_summary()['q0']
        logger.info('Round {i}: {c}, analysis took {t:.2f}s'.format(
            i=i, c=summary['count'], t=response.data['elapsed']))
        if summary['count']['maybe'] == 0:
            break
        session.take_snapshot('Round {i}'.format(i=i))
        request_id += 1
        response = session.handle(Request(request_id, 'refine', {'steps': REFINEMENT_STEPS}))
        if response.error is not None:
            logger.error(response.error)
            return
        logger.info('Refined {n} states'.format(n=len(response.data['states'])))


if __name__ == '__main__':
    rounds = int(sys.argv[1]) if len(sys.argv) > 1 else 5
    system, objective = make_setup('Corridor')
    with multiprocessing.Pool(1) as pool:
        session = SystemSession(system, objective, pool=pool, seed=0)
        run(session, rounds)
    with open('corridor.json', 'w') as f:
        json.dump({'snapshots': session.get_snapshots(),
                   'summary': session.get_system_summary()}, f, indent=2)
