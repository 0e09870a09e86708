# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Errors raised by the volume lifecycle.
"""

from constantly import Names, NamedConstant

from eliot import register_exception_extractor


class VolumeErrorKind(Names):
    """
    The kinds of failure a volume lifecycle operation can report.
    """
    # The name is not registered, or cannot be resolved against the remote
    # service.
    VOLUME_NOT_FOUND = NamedConstant()
    ALREADY_EXISTS = NamedConstant()
    # Attach and detach failures: the retry or poll budget was exhausted or
    # the remote service reported the action as errored.
    ATTACH_FAILED = NamedConstant()
    DETACH_FAILED = NamedConstant()
    MOUNT_FAILED = NamedConstant()
    UNMOUNT_FAILED = NamedConstant()
    REMOTE_QUERY_FAILED = NamedConstant()


class VolumeError(Exception):
    """
    Base class for failures of a volume lifecycle operation.

    :ivar VolumeErrorKind kind: What went wrong, for programmatic use.
    :ivar str message: What went wrong, for humans.
    """
    kind = None

    def __init__(self, message):
        Exception.__init__(self, message)
        self.message = message

    def __str__(self):
        return self.message


register_exception_extractor(
    VolumeError, lambda e: {u"kind": e.kind.name})


class VolumeNotFound(VolumeError):
    kind = VolumeErrorKind.VOLUME_NOT_FOUND


class AlreadyExists(VolumeError):
    kind = VolumeErrorKind.ALREADY_EXISTS


class AttachFailed(VolumeError):
    kind = VolumeErrorKind.ATTACH_FAILED


class DetachFailed(VolumeError):
    kind = VolumeErrorKind.DETACH_FAILED


class MountFailed(VolumeError):
    kind = VolumeErrorKind.MOUNT_FAILED


class UnmountFailed(VolumeError):
    kind = VolumeErrorKind.UNMOUNT_FAILED


class RemoteQueryFailed(VolumeError):
    kind = VolumeErrorKind.REMOTE_QUERY_FAILED


class RemoteServiceError(Exception):
    """
    A request to the remote block storage service failed.

    :ivar code: The HTTP response code, or ``None`` if no response was
        received at all.
    :ivar str message: A description of the failure.
    """
    def __init__(self, code, message):
        Exception.__init__(self, code, message)
        self.code = code
        self.message = message

    def __str__(self):
        if self.code is None:
            return self.message
        return u"{} (HTTP {})".format(self.message, self.code)


register_exception_extractor(
    RemoteServiceError, lambda e: {u"code": e.code})
