# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Remember created volume names across restarts.
"""

from os import umask
from stat import S_IRUSR, S_IWUSR, S_IXUSR

from zope.interface import implementer

from ._interfaces import IVolumeMetadataStore

DIRECTORY_MODE = S_IRUSR | S_IWUSR | S_IXUSR
FILE_MODE = S_IRUSR | S_IWUSR


@implementer(IVolumeMetadataStore)
class MetadataDirectory(object):
    """
    One empty marker file per created volume name.

    :ivar FilePath path: The directory holding the marker files.
    """
    def __init__(self, path):
        self.path = path

    def create(self):
        """
        Create the directory, readable by its owner only, if it doesn't exist.
        """
        original_umask = umask(0)
        try:
            if not self.path.exists():
                self.path.makedirs()
            self.path.chmod(DIRECTORY_MODE)
        finally:
            umask(original_umask)

    def names(self):
        return sorted(
            child.basename() for child in self.path.children()
            if child.isfile()
        )

    def add(self, name):
        marker = self.path.child(name)
        marker.touch()
        marker.chmod(FILE_MODE)

    def discard(self, name):
        self.path.child(name).remove()
