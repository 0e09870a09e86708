# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Immutable records describing volumes.
"""

from pyrsistent import PClass, field, pvector_field

from twisted.python.filepath import FilePath


def _not_negative(value):
    return (value >= 0, "Must not be negative: {!r}".format(value))


class VolumeRecord(PClass):
    """
    What is known locally about one named volume.

    Instances are snapshots; the registry replaces its record whenever the
    reference count changes.

    :ivar str name: The name the volume is known by to Docker.
    :ivar str remote_volume_id: The identifier of the backing block storage
        volume.
    :ivar FilePath mountpoint: Where the volume is mounted on this node.
    :ivar int reference_count: The number of outstanding mount requests.
    """
    name = field(type=str, mandatory=True)
    remote_volume_id = field(type=str, mandatory=True)
    mountpoint = field(type=FilePath, mandatory=True)
    reference_count = field(
        type=int, mandatory=True, initial=0, invariant=_not_negative)


class RemoteVolume(PClass):
    """
    A block storage volume as reported by the remote service.

    :ivar str volume_id: The remote identifier.
    :ivar str name: The remote name, which matches the Docker volume name.
    :ivar str region: The region slug the volume lives in.
    :ivar node_ids: The identifiers of the nodes the volume is attached to.
    """
    volume_id = field(type=str, mandatory=True)
    name = field(type=str, mandatory=True)
    region = field(type=str, mandatory=True)
    node_ids = pvector_field(int)


class VolumeStatus(PClass):
    """
    The result of inspecting a volume.

    Either ``node_ids`` holds the live attachment state, or ``error``
    describes why the remote service could not be queried for it.

    :ivar VolumeRecord record: The registered state.
    :ivar node_ids: The nodes the volume is attached to.
    :ivar error: ``None`` or a description of the failed remote query.
    """
    record = field(type=VolumeRecord, mandatory=True)
    node_ids = pvector_field(int)
    error = field(type=(str, type(None)), initial=None)
