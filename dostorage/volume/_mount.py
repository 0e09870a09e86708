# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Mounting attached volumes with the system ``mount`` and ``umount`` commands.
"""

from subprocess import CalledProcessError

from zope.interface import implementer

from twisted.python.filepath import FilePath

from ..common.process import run_process
from ._interfaces import IMountExecutor

# Where udev exposes an attached DigitalOcean volume, by volume name.
DEVICE_PREFIX = u"/dev/disk/by-id/scsi-0DO_Volume_"


class MountError(Exception):
    """
    Raised from errors while mounting a volume.

    :ivar FilePath blockdevice: The path to the device that was being mounted.
    :ivar FilePath mountpoint: The path the device was going to be mounted at.
    :ivar str source_message: The output of the failed command.
    """
    def __init__(self, blockdevice, mountpoint, source_message):
        Exception.__init__(self, blockdevice, mountpoint, source_message)
        self.blockdevice = blockdevice
        self.mountpoint = mountpoint
        self.source_message = source_message

    def __str__(self):
        return u"mounting {} at {} failed: {}".format(
            self.blockdevice.path, self.mountpoint.path, self.source_message)


class UnmountError(Exception):
    """
    Raised from errors while unmounting a volume.

    :ivar FilePath mountpoint: The path that was being unmounted.
    :ivar str source_message: The output of the failed command.
    """
    def __init__(self, mountpoint, source_message):
        Exception.__init__(self, mountpoint, source_message)
        self.mountpoint = mountpoint
        self.source_message = source_message

    def __str__(self):
        return u"unmounting {} failed: {}".format(
            self.mountpoint.path, self.source_message)


def device_for(device_name):
    """
    :param str device_name: The name of an attached volume.

    :return: The ``FilePath`` of the device file of the volume.
    """
    return FilePath(DEVICE_PREFIX + device_name)


def _output(error):
    return error.output.decode("utf-8", "replace").strip()


@implementer(IMountExecutor)
class CommandMountExecutor(object):
    """
    Mount and unmount by running the system commands.

    :ivar _run_process: ``run_process`` or a replacement for testing.
    """
    def __init__(self, run_process=run_process):
        self._run_process = run_process

    def mount(self, device_name, mountpoint):
        blockdevice = device_for(device_name)
        try:
            self._run_process([u"mount", blockdevice.path, mountpoint.path])
        except CalledProcessError as e:
            raise MountError(blockdevice=blockdevice, mountpoint=mountpoint,
                             source_message=_output(e))

    def unmount(self, mountpoint):
        try:
            self._run_process([u"umount", mountpoint.path])
        except CalledProcessError as e:
            raise UnmountError(mountpoint=mountpoint,
                               source_message=_output(e))
