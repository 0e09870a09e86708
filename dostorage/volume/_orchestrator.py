# -*- test-case-name: dostorage.volume.test.test_orchestrator -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The volume lifecycle state machine.

A volume is registered (known by name, reference count zero) after it has
been created or found in the metadata store at startup.  The first mount
makes it active: the remote volume is attached to this node and mounted.
The last unmount makes it registered again: it is unmounted and detached.

A DigitalOcean volume can only be attached to one droplet at a time.  Before
attaching a volume here it is detached from every other droplet, whatever
those droplets are using it for.
"""

from threading import Lock

from eliot import ActionType, Field, MessageType

from twisted.python.reflect import safe_repr

from zope.interface import implementer

from ._awaiter import DEFAULT_POLICY, perform_with_retry
from ._errors import (
    AttachFailed, DetachFailed, MountFailed, RemoteQueryFailed,
    RemoteServiceError, UnmountFailed, VolumeNotFound,
)
from ._interfaces import ILifecycle
from ._model import VolumeStatus
from ._mount import MountError, UnmountError
from ._registry import VolumeRegistry


VOLUME_NAME = Field.forTypes(
    u"volume_name", [str], u"The name of a volume as known to Docker.")

VOLUME_ID = Field.forTypes(
    u"volume_id", [str], u"The identifier of a remote volume.")

NODE_ID = Field.forTypes(
    u"node_id", [int], u"The identifier of a node (droplet).")

REGION = Field.forTypes(
    u"region", [str], u"The region slug of a node.")

MOUNTPOINT = Field(
    u"mountpoint", lambda path: path.path,
    u"The path where a volume is mounted on this node.")

REFERENCE_COUNT = Field.forTypes(
    u"reference_count", [int],
    u"The number of outstanding mount requests for a volume.")

REASON = Field(u"reason", safe_repr, u"Why something failed.")

STARTUP = ActionType(
    u"dostorage:volume:startup",
    [REGION, NODE_ID],
    [],
    u"Volumes recorded in the metadata store are being registered.",
)

REGISTER = ActionType(
    u"dostorage:volume:register",
    [VOLUME_NAME],
    [VOLUME_ID, MOUNTPOINT],
    u"A volume is being resolved against the remote service and registered.",
)

CREATE = ActionType(
    u"dostorage:volume:create",
    [VOLUME_NAME],
    [],
    u"A volume is being created.",
)

REMOVE = ActionType(
    u"dostorage:volume:remove",
    [VOLUME_NAME],
    [],
    u"A volume is being removed.",
)

MOUNT = ActionType(
    u"dostorage:volume:mount",
    [VOLUME_NAME],
    [MOUNTPOINT, REFERENCE_COUNT],
    u"A reference on a volume is being taken.",
)

UNMOUNT = ActionType(
    u"dostorage:volume:unmount",
    [VOLUME_NAME],
    [],
    u"A reference on a volume is being released.",
)

GET = ActionType(
    u"dostorage:volume:get",
    [VOLUME_NAME],
    [],
    u"A volume is being inspected.",
)

ATTACH = ActionType(
    u"dostorage:volume:attach",
    [VOLUME_ID, NODE_ID],
    [],
    u"A remote volume is being attached to this node.",
)

DETACH = ActionType(
    u"dostorage:volume:detach",
    [VOLUME_ID, NODE_ID],
    [],
    u"A remote volume is being detached from a node.",
)

ALREADY_ATTACHED = MessageType(
    u"dostorage:volume:already_attached",
    [VOLUME_ID, NODE_ID],
    u"A remote volume is already attached to this node.",
)

SEIZE = MessageType(
    u"dostorage:volume:seize",
    [VOLUME_NAME, VOLUME_ID, NODE_ID],
    u"WARNING: A volume is being detached from another node so it can be "
    u"attached to this one.  Whatever uses it there will lose it.",
)

SEIZE_LOOKUP_FAILED = MessageType(
    u"dostorage:volume:seize_lookup_failed",
    [VOLUME_ID, REASON],
    u"The nodes a volume is attached to could not be determined, so it is "
    u"not detached from any of them before attaching it here.",
)

STALE_UNMOUNT_FAILED = MessageType(
    u"dostorage:volume:stale_unmount_failed",
    [MOUNTPOINT, REASON],
    u"Unmounting whatever a previous run left at a mountpoint failed.  "
    u"Usually there was nothing mounted.",
)

REMOVE_IN_USE = MessageType(
    u"dostorage:volume:remove_in_use",
    [VOLUME_NAME, REFERENCE_COUNT],
    u"A volume is being removed while it is still mounted.",
)

UNMOUNT_UNKNOWN = MessageType(
    u"dostorage:volume:unmount_unknown",
    [VOLUME_NAME],
    u"Unmounting a volume that is not registered was ignored.",
)

GET_FAILED = MessageType(
    u"dostorage:volume:get_failed",
    [VOLUME_ID, REASON],
    u"The remote state of a volume could not be queried.",
)


@implementer(ILifecycle)
class LifecycleOrchestrator(object):
    """
    Drive registered volumes through their lifecycle.

    ``create``, ``remove``, ``mount`` and ``unmount`` are serialized by one
    lock which is held for the whole operation, remote actions included.
    The read operations only take the registry lock.

    :ivar IRemoteVolumeService _remote: The block storage control plane.
    :ivar IMountExecutor _mounter: Mounts attached volumes.
    :ivar IVolumeMetadataStore _metadata: Remembers created volume names.
    :ivar FilePath _mount_path: The directory holding all mountpoints.
    :ivar ActionPolicy _policy: Retry and poll budgets for remote actions.
    :ivar _sleep: A replacement for ``time.sleep`` or ``None``.
    """
    def __init__(self, remote, mounter, metadata, mount_path,
                 policy=DEFAULT_POLICY, sleep=None):
        self._remote = remote
        self._mounter = mounter
        self._metadata = metadata
        self._mount_path = mount_path
        self._policy = policy
        self._sleep = sleep
        self._registry = VolumeRegistry()
        self._mutation_lock = Lock()
        self._region = None
        self._node_id = None

    def on_startup(self, region, node_id):
        """
        Remember where this node is and register every volume in the metadata
        store.

        :param str region: The region slug of this node.
        :param int node_id: The identifier of this node.

        :raise VolumeError: If a recorded volume cannot be registered.  The
            process should not serve requests in that case.
        """
        with STARTUP(region=region, node_id=node_id):
            self._region = region
            self._node_id = node_id
            with self._mutation_lock:
                for name in self._metadata.names():
                    self._register(name)

    def create(self, name):
        with CREATE(volume_name=name):
            with self._mutation_lock:
                # Fail before touching the mountpoint of a registered volume.
                self._registry.check_absent(name)
                record = self._register(name)
                try:
                    self._metadata.add(name)
                except Exception:
                    self._registry.remove(name)
                    raise
                return record

    def remove(self, name):
        with REMOVE(volume_name=name):
            with self._mutation_lock:
                record = self._registry.lookup(name)
                if record.reference_count > 0:
                    REMOVE_IN_USE.log(
                        volume_name=name,
                        reference_count=record.reference_count,
                    )
                self._metadata.discard(name)
                self._registry.remove(name)

    def mount(self, name):
        with MOUNT(volume_name=name) as action:
            with self._mutation_lock:
                record, first = (
                    self._registry.increment_and_check_first_reference(name))
                if first:
                    try:
                        self._attach(record)
                        self._mount(record)
                    except Exception:
                        # The next mount starts over from scratch.
                        self._registry.decrement_and_check_last_reference(
                            name)
                        raise
                action.add_success_fields(
                    mountpoint=record.mountpoint,
                    reference_count=record.reference_count,
                )
                return record.mountpoint

    def unmount(self, name):
        with UNMOUNT(volume_name=name):
            with self._mutation_lock:
                try:
                    record, last = (
                        self._registry.decrement_and_check_last_reference(
                            name))
                except VolumeNotFound:
                    UNMOUNT_UNKNOWN.log(volume_name=name)
                    return
                if last:
                    try:
                        self._mounter.unmount(record.mountpoint)
                    except UnmountError as e:
                        raise UnmountFailed(
                            u"failed to unmount the volume: {}".format(e))
                    self._detach(record.remote_volume_id, self._node_id)

    def path(self, name):
        return self._registry.lookup(name).mountpoint

    def get(self, name):
        with GET(volume_name=name):
            record = self._registry.lookup(name)
            volume_id = record.remote_volume_id
            try:
                remote_volume = self._remote.get_by_id(volume_id)
            except RemoteServiceError as e:
                error = RemoteQueryFailed(
                    u"failed to get the volume with ID '{}': {}".format(
                        volume_id, e))
                GET_FAILED.log(volume_id=volume_id, reason=error)
                return VolumeStatus(record=record, error=error.message)
            return VolumeStatus(record=record, node_ids=remote_volume.node_ids)

    def list(self):
        return self._registry.list()

    def capabilities(self):
        return {u"Scope": u"local"}

    def _resolve(self, name):
        """
        :raise VolumeNotFound: If the remote service has no such volume.
        :raise RemoteQueryFailed: If the remote service could not be asked.
        :return: The ``RemoteVolume`` called ``name`` in this region.
        """
        try:
            remote_volume = self._remote.find_by_region_and_name(
                self._region, name)
        except RemoteServiceError as e:
            raise RemoteQueryFailed(
                u"failed to look up the DigitalOcean volume for region '{}' "
                u"and name '{}': {}".format(self._region, name, e))
        if remote_volume is None:
            raise VolumeNotFound(
                u"DigitalOcean volume not found for region '{}' and name "
                u"'{}'".format(self._region, name))
        return remote_volume

    def _register(self, name):
        """
        Resolve ``name``, prepare its mountpoint and add it to the registry.

        :return: The new ``VolumeRecord``.
        """
        with REGISTER(volume_name=name) as action:
            remote_volume = self._resolve(name)
            mountpoint = self._mount_path.child(name)
            mountpoint.makedirs(ignoreExistingDirectory=True)
            # A crashed previous run may have left the volume mounted.
            try:
                self._mounter.unmount(mountpoint)
            except UnmountError as e:
                STALE_UNMOUNT_FAILED.log(mountpoint=mountpoint, reason=e)
            record = self._registry.create(
                name, remote_volume.volume_id, mountpoint)
            action.add_success_fields(
                volume_id=record.remote_volume_id, mountpoint=mountpoint)
            return record

    def _perform(self, start, volume_id, node_id):
        return perform_with_retry(
            start=lambda: start(volume_id, node_id),
            poll=lambda action_id: self._remote.poll_action(
                volume_id, action_id),
            policy=self._policy,
            sleep=self._sleep,
        )

    def _attach(self, record):
        """
        Make sure the volume of ``record`` is attached to this node and to no
        other.

        :raise AttachFailed: If that could not be achieved.
        """
        volume_id = record.remote_volume_id
        if self._remote.is_attached_to(volume_id, self._node_id):
            ALREADY_ATTACHED.log(
                volume_id=volume_id, node_id=self._node_id)
            return
        with ATTACH(volume_id=volume_id, node_id=self._node_id):
            try:
                self._seize(record)
            except DetachFailed as e:
                raise AttachFailed(
                    u"failed to attach the volume to this droplet: "
                    u"{}".format(e))
            result = self._perform(
                self._remote.start_attach, volume_id, self._node_id)
            if not result.succeeded:
                raise AttachFailed(
                    u"failed to attach the volume to this droplet: "
                    u"{}".format(result.message))

    def _seize(self, record):
        """
        Detach the volume of ``record`` from every other node.

        :raise DetachFailed: If one of the detaches failed.
        """
        volume_id = record.remote_volume_id
        try:
            remote_volume = self._remote.get_by_id(volume_id)
        except RemoteServiceError as e:
            SEIZE_LOOKUP_FAILED.log(volume_id=volume_id, reason=e)
            return
        for node_id in remote_volume.node_ids:
            if node_id == self._node_id:
                continue
            SEIZE.log(
                volume_name=record.name, volume_id=volume_id, node_id=node_id,
            )
            self._detach(volume_id, node_id)

    def _detach(self, volume_id, node_id):
        """
        :raise DetachFailed: If the volume could not be detached.
        """
        with DETACH(volume_id=volume_id, node_id=node_id):
            result = self._perform(
                self._remote.start_detach, volume_id, node_id)
            if not result.succeeded:
                raise DetachFailed(
                    u"failed to detach the volume from droplet {}: {}".format(
                        node_id, result.message))

    def _mount(self, record):
        try:
            self._mounter.mount(record.name, record.mountpoint)
        except MountError as e:
            raise MountFailed(u"failed to mount the volume: {}".format(e))
