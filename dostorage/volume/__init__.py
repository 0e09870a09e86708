# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The lifecycle of volumes: registering them, attaching and mounting them on
first use and unmounting and detaching them after last use.
"""

from ._awaiter import (
    ActionPolicy, ActionResult, ActionStatus, DEFAULT_POLICY, NO_STATUS,
    perform_with_retry,
)
from ._errors import (
    AlreadyExists, AttachFailed, DetachFailed, MountFailed,
    RemoteQueryFailed, RemoteServiceError, UnmountFailed, VolumeError,
    VolumeErrorKind, VolumeNotFound,
)
from ._interfaces import (
    ILifecycle, IMountExecutor, INodeIdentity, IRemoteVolumeService,
    IVolumeMetadataStore,
)
from ._metadata import MetadataDirectory
from ._model import RemoteVolume, VolumeRecord, VolumeStatus
from ._mount import CommandMountExecutor, MountError, UnmountError
from ._orchestrator import LifecycleOrchestrator
from ._registry import VolumeRegistry

__all__ = [
    "ActionPolicy", "ActionResult", "ActionStatus", "DEFAULT_POLICY",
    "NO_STATUS", "perform_with_retry",

    "AlreadyExists", "AttachFailed", "DetachFailed", "MountFailed",
    "RemoteQueryFailed", "RemoteServiceError", "UnmountFailed",
    "VolumeError", "VolumeErrorKind", "VolumeNotFound",

    "ILifecycle", "IMountExecutor", "INodeIdentity", "IRemoteVolumeService",
    "IVolumeMetadataStore",

    "MetadataDirectory", "CommandMountExecutor", "MountError", "UnmountError",
    "LifecycleOrchestrator", "VolumeRegistry",
    "RemoteVolume", "VolumeRecord", "VolumeStatus",
]
