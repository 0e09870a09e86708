# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The in-memory table of known volumes.
"""

from threading import Lock

from ._errors import AlreadyExists, VolumeNotFound
from ._model import VolumeRecord


def _not_found(name):
    return VolumeNotFound(u"volume named '{}' not found".format(name))


def _already_exists(name):
    return AlreadyExists(u"volume named '{}' already exists".format(name))


class VolumeRegistry(object):
    """
    The authoritative record of every known volume, its mountpoint and its
    reference count.

    Every operation holds the registry lock for its whole duration and only
    immutable ``VolumeRecord`` snapshots are handed out.
    """
    def __init__(self):
        self._lock = Lock()
        self._records = {}

    def create(self, name, remote_volume_id, mountpoint):
        """
        Register a new volume with a reference count of zero.

        :raise AlreadyExists: If ``name`` is already registered.
        :return: The new ``VolumeRecord``.
        """
        with self._lock:
            if name in self._records:
                raise _already_exists(name)
            record = VolumeRecord(
                name=name,
                remote_volume_id=remote_volume_id,
                mountpoint=mountpoint,
            )
            self._records[name] = record
            return record

    def check_absent(self, name):
        """
        :raise AlreadyExists: If ``name`` is registered.
        """
        with self._lock:
            if name in self._records:
                raise _already_exists(name)

    def lookup(self, name):
        """
        :raise VolumeNotFound: If ``name`` is not registered.
        :return: The ``VolumeRecord`` for ``name``.
        """
        with self._lock:
            return self._get(name)

    def list(self):
        """
        :return: A ``list`` of all ``VolumeRecord``, sorted by name.
        """
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.name)

    def remove(self, name):
        """
        :raise VolumeNotFound: If ``name`` is not registered.
        :return: The removed ``VolumeRecord``.
        """
        with self._lock:
            try:
                return self._records.pop(name)
            except KeyError:
                raise _not_found(name)

    def increment_and_check_first_reference(self, name):
        """
        Take a reference on a volume.

        :raise VolumeNotFound: If ``name`` is not registered.
        :return: A two-tuple of the updated ``VolumeRecord`` and whether this
            was the first reference.
        """
        with self._lock:
            record = self._get(name)
            record = self._set_count(record, record.reference_count + 1)
            return record, record.reference_count == 1

    def decrement_and_check_last_reference(self, name):
        """
        Release a reference on a volume.  Releasing a volume without any
        references leaves the count at zero.

        :raise VolumeNotFound: If ``name`` is not registered.
        :return: A two-tuple of the updated ``VolumeRecord`` and whether this
            released the last reference.
        """
        with self._lock:
            record = self._get(name)
            if record.reference_count == 0:
                return record, False
            record = self._set_count(record, record.reference_count - 1)
            return record, record.reference_count == 0

    def _get(self, name):
        try:
            return self._records[name]
        except KeyError:
            raise _not_found(name)

    def _set_count(self, record, reference_count):
        record = record.set(reference_count=reference_count)
        self._records[record.name] = record
        return record
