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
Tree of serialized states of an abstraction and its analysis.

Each snapshot is taken as a child of the currently selected snapshot. Loading
a snapshot deserializes fresh objects, so later changes to a loaded system do
not alter the snapshot.
"""
import logging

from stochabs.abstract.abstraction import AbstractedLSS
from stochabs.transys.game import AnalysisResults

logger = logging.getLogger(__name__)


class SnapshotTree(object):
    """Snapshots identified by consecutive integers.

    @ivar current: id of the selected snapshot, None before the first one
    @type current: C{int}
    """
    def __init__(self):
        self._next_id = 0
        self._snapshots = dict()
        self._children = dict()
        self._root = None
        self.current = None

    def __len__(self):
        return len(self._snapshots)

    @property
    def root(self):
        if self._root is None:
            raise KeyError('No snapshot has been taken yet')
        return self._root

    def _get(self, sid=None):
        if sid is None:
            sid = self.current
        if sid not in self._snapshots:
            raise KeyError('A snapshot with id {i} does not exist'.format(i=sid))
        return self._snapshots[sid]

    def take(self, name, system, analysis=None, include_actions=True):
        """Store system and analysis as a child of the current snapshot.

        @return: id of the new snapshot, which becomes current
        @rtype: C{int}
        """
        sid = self._next_id
        self._next_id += 1
        self._snapshots[sid] = {
            'name': name,
            'system': system.serialize(include_actions),
            'analysis': None if analysis is None else analysis.serialize()
        }
        self._children[sid] = []
        if self.current is None:
            self._root = sid
        else:
            self._children[self.current].append(sid)
        self.current = sid
        logger.info('Took snapshot {i} ({n})'.format(i=sid, n=name))
        return sid

    def select(self, sid):
        self._get(sid)
        self.current = sid

    def rename(self, sid, name):
        self._get(sid)['name'] = name

    def get_name(self, sid=None):
        return self._get(sid)['name']

    def get_system(self, sid=None):
        """Deserialized system of a snapshot, the current one by default.

        @rtype: L{AbstractedLSS}
        """
        return AbstractedLSS.deserialize(self._get(sid)['system'])

    def get_analysis(self, sid=None):
        """Deserialized analysis of a snapshot, None if it had none.

        @rtype: L{AnalysisResults}
        """
        data = self._get(sid)['analysis']
        return None if data is None else AnalysisResults.deserialize(data)

    def get_children(self, sid=None):
        if sid is None:
            sid = self.current
        self._get(sid)
        return list(self._children[sid])

    def get_number_of_states(self, sid=None):
        """Number of states of a snapshot, excluding outer states."""
        return sum(1 for state in self._get(sid)['system']['states'] if state['kind'] != 'OUTER')

    def treeify(self, sid=None):
        """Nested summary of the tree below sid, the root by default."""
        if sid is None:
            sid = self.root
        return {
            'id': sid,
            'name': self.get_name(sid),
            'states': self.get_number_of_states(sid),
            'children': [self.treeify(child) for child in self._children[sid]],
            'is_current': sid == self.current
        }
