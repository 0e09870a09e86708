# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Interfaces of the collaborators of the volume lifecycle.
"""

from zope.interface import Interface


class IRemoteVolumeService(Interface):
    """
    The control plane of a remote block storage service.

    Every method is a blocking network round-trip which may fail
    transiently by raising ``RemoteServiceError``.
    """
    def find_by_region_and_name(region, name):
        """
        Look up a volume by its location and name.

        :param str region: The region slug.
        :param str name: The volume name.

        :return: The matching ``RemoteVolume`` or ``None`` if there is none.
        """

    def get_by_id(volume_id):
        """
        :param str volume_id: The remote identifier of the volume.

        :return: The ``RemoteVolume``.
        """

    def is_attached_to(volume_id, node_id):
        """
        :param str volume_id: The remote identifier of the volume.
        :param int node_id: The node to check.

        :return: ``True`` if the volume is known to be attached to the node,
            ``False`` otherwise (including when this cannot be determined).
        """

    def start_detach(volume_id, node_id):
        """
        Ask for the volume to be detached from a node.

        :return: An identifier for the started action, for ``poll_action``.
        """

    def start_attach(volume_id, node_id):
        """
        Ask for the volume to be attached to a node.

        :return: An identifier for the started action, for ``poll_action``.
        """

    def poll_action(volume_id, action_id):
        """
        :return: The status of the action; one of the ``ActionStatus``
            values.
        """


class INodeIdentity(Interface):
    """
    Where this process runs.
    """
    def region():
        """
        :return: The region slug of this node as ``str``.
        """

    def node_id():
        """
        :return: The ``int`` identifier of this node.
        """


class IMountExecutor(Interface):
    """
    Mounts and unmounts attached volumes on this node.
    """
    def mount(device_name, mountpoint):
        """
        Mount the attached volume named ``device_name``.

        :param str device_name: The volume name.
        :param FilePath mountpoint: The existing directory to mount on.

        :raise MountError: If the mount failed.
        """

    def unmount(mountpoint):
        """
        :param FilePath mountpoint: The directory to unmount.

        :raise UnmountError: If the unmount failed.
        """


class IVolumeMetadataStore(Interface):
    """
    A durable record of which volume names have been created, so that they
    survive a restart.
    """
    def names():
        """
        :return: An iterable of the recorded names.
        """

    def add(name):
        """
        Record ``name``.
        """

    def discard(name):
        """
        Forget ``name``.  Forgetting an unknown name is an error.
        """


class ILifecycle(Interface):
    """
    The operations Docker performs on the volumes of a plugin.

    Failures are reported by raising ``VolumeError``.
    """
    def create(name):
        """
        Register the remote volume called ``name``.

        :return: The new ``VolumeRecord``.
        """

    def remove(name):
        """
        Forget the volume called ``name``.  The remote volume is left alone.
        """

    def mount(name):
        """
        Take a reference on the volume, attaching and mounting it when it is
        the first one.

        :return: The mountpoint ``FilePath``.
        """

    def unmount(name):
        """
        Release a reference on the volume, unmounting and detaching it when it
        was the last one.
        """

    def path(name):
        """
        :return: The mountpoint ``FilePath`` of the volume.
        """

    def get(name):
        """
        :return: A ``VolumeStatus`` describing the volume.
        """

    def list():
        """
        :return: A ``list`` of every ``VolumeRecord``, sorted by name.
        """

    def capabilities():
        """
        :return: A ``dict`` describing the capabilities of the driver.
        """
