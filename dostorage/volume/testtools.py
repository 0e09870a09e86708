# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
In-memory implementations of the collaborators of the volume lifecycle,
for testing.
"""

from collections import defaultdict
from itertools import count

from pyrsistent import pvector

from zope.interface import implementer

from ._awaiter import ActionStatus
from ._errors import RemoteServiceError
from ._interfaces import (
    IMountExecutor, INodeIdentity, IRemoteVolumeService,
    IVolumeMetadataStore,
)
from ._model import RemoteVolume
from ._mount import MountError, UnmountError, device_for


class _ScriptedFailures(object):
    """
    Let tests make the next calls of a method raise.

    :ivar calls: ``list`` of ``(method name, arguments)`` of every call made.
    """
    def __init__(self):
        self.calls = []
        self._failures = defaultdict(list)

    def fail(self, method, *exceptions):
        """
        Make the next calls to ``method`` raise the given exceptions, one per
        call.
        """
        self._failures[method].extend(exceptions)

    def calls_to(self, method):
        """
        :return: The arguments of every call to ``method``.
        """
        return [args for (name, args) in self.calls if name == method]

    def _call(self, method, *args):
        self.calls.append((method, args))
        failures = self._failures[method]
        if failures:
            raise failures.pop(0)


@implementer(IRemoteVolumeService)
class FakeRemoteVolumeService(_ScriptedFailures):
    """
    A remote block storage service holding everything in memory.

    Actions finish on the poll which reports ``completed``.  Every action
    reports the statuses in ``statuses`` in turn, repeating the last one.
    An exception in ``statuses`` is raised by the corresponding poll.

    :ivar volumes: ``dict`` mapping volume identifiers to ``RemoteVolume``.
    :ivar statuses: ``list`` of the statuses every new action reports.
    """
    def __init__(self):
        _ScriptedFailures.__init__(self)
        self.volumes = {}
        self.statuses = [ActionStatus.COMPLETED.value]
        self._actions = {}
        self._action_ids = count(1)

    def add_volume(self, volume_id, name, region, node_ids=()):
        volume = RemoteVolume(
            volume_id=volume_id, name=name, region=region,
            node_ids=pvector(node_ids),
        )
        self.volumes[volume_id] = volume
        return volume

    def find_by_region_and_name(self, region, name):
        self._call("find_by_region_and_name", region, name)
        for volume in self.volumes.values():
            if (volume.region, volume.name) == (region, name):
                return volume
        return None

    def get_by_id(self, volume_id):
        self._call("get_by_id", volume_id)
        try:
            return self.volumes[volume_id]
        except KeyError:
            raise RemoteServiceError(
                404, u"The resource you were accessing could not be found.")

    def is_attached_to(self, volume_id, node_id):
        try:
            self._call("is_attached_to", volume_id, node_id)
        except RemoteServiceError:
            return False
        volume = self.volumes.get(volume_id)
        return volume is not None and node_id in volume.node_ids

    def start_attach(self, volume_id, node_id):
        self._call("start_attach", volume_id, node_id)
        return self._start(volume_id, lambda ids: ids.append(node_id))

    def start_detach(self, volume_id, node_id):
        self._call("start_detach", volume_id, node_id)
        return self._start(volume_id, lambda ids: ids.remove(node_id))

    def _start(self, volume_id, change):
        action_id = next(self._action_ids)
        self._actions[action_id] = (volume_id, change, list(self.statuses))
        return action_id

    def poll_action(self, volume_id, action_id):
        self._call("poll_action", volume_id, action_id)
        action_volume_id, change, statuses = self._actions[action_id]
        if action_volume_id != volume_id:
            raise RemoteServiceError(404, u"No such action for this volume.")
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        if isinstance(status, Exception):
            raise status
        if status == ActionStatus.COMPLETED.value:
            volume = self.volumes[volume_id]
            node_ids = list(volume.node_ids)
            change(node_ids)
            self.volumes[volume_id] = volume.set(node_ids=pvector(node_ids))
            # Later polls of a finished action don't repeat the change.
            self._actions[action_id] = (volume_id, lambda ids: None, [status])
        return status


@implementer(IMountExecutor)
class FakeMountExecutor(_ScriptedFailures):
    """
    Keep track of what is mounted where without mounting anything.

    :ivar mounted: ``dict`` mapping mountpoint paths to the ``FilePath`` of
        the device mounted there.
    """
    def __init__(self):
        _ScriptedFailures.__init__(self)
        self.mounted = {}

    def mount(self, device_name, mountpoint):
        self._call("mount", device_name, mountpoint)
        self.mounted[mountpoint.path] = device_for(device_name)

    def unmount(self, mountpoint):
        self._call("unmount", mountpoint)
        if mountpoint.path not in self.mounted:
            raise UnmountError(
                mountpoint=mountpoint,
                source_message=u"umount: {}: not mounted.".format(
                    mountpoint.path))
        del self.mounted[mountpoint.path]


def mount_error(device_name, mountpoint, message=u"mount failed"):
    """
    :return: A ``MountError`` like ``CommandMountExecutor`` raises.
    """
    return MountError(
        blockdevice=device_for(device_name), mountpoint=mountpoint,
        source_message=message,
    )


@implementer(IVolumeMetadataStore)
class MemoryMetadataStore(_ScriptedFailures):
    """
    Remember volume names in memory.

    :ivar set recorded: The recorded names.
    """
    def __init__(self, names=()):
        _ScriptedFailures.__init__(self)
        self.recorded = set(names)

    def names(self):
        self._call("names")
        return sorted(self.recorded)

    def add(self, name):
        self._call("add", name)
        self.recorded.add(name)

    def discard(self, name):
        self._call("discard", name)
        self.recorded.remove(name)


@implementer(INodeIdentity)
class StaticNodeIdentity(object):
    """
    A node identity fixed at construction.
    """
    def __init__(self, region, node_id):
        self._region = region
        self._node_id = node_id

    def region(self):
        return self._region

    def node_id(self):
        return self._node_id
