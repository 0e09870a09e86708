# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Tests for the Volumes Plugin API provided by the plugin.
"""

from json import loads

from eliot.testing import capture_logging

from twisted.web.http import OK

from .._api import VolumePlugin
from ...restapi.testtools import APIAssertionsMixin
from ...testtools import CustomException, NonReactor, NonThreadPool, TestCase
from ...volume import ActionStatus, LifecycleOrchestrator, RemoteServiceError
from ...volume.testtools import (
    FakeMountExecutor, FakeRemoteVolumeService, MemoryMetadataStore,
)

REGION = u"nyc1"
NODE_ID = 1001


class APITestsMixin(APIAssertionsMixin):
    """
    Helpers for testing the Docker plugin API against an orchestrator with
    in-memory collaborators.
    """
    def initialize(self):
        """
        Create the orchestrator and the plugin.  The remote service knows
        ``db01`` as ``vol-123``.
        """
        self.mount_path = self.make_temporary_directory()
        self.remote = FakeRemoteVolumeService()
        self.remote.add_volume(u"vol-123", u"db01", REGION)
        self.mounter = FakeMountExecutor()
        self.metadata = MemoryMetadataStore()
        self.lifecycle = LifecycleOrchestrator(
            remote=self.remote,
            mounter=self.mounter,
            metadata=self.metadata,
            mount_path=self.mount_path,
            sleep=lambda seconds: None,
        )
        self.lifecycle.on_startup(REGION, NODE_ID)
        self.threadpool = NonThreadPool()
        self.app = VolumePlugin(
            NonReactor(), self.threadpool, self.lifecycle).app

    def call(self, endpoint, body, expected):
        """
        POST ``body`` to ``endpoint`` and assert the response is a 200 with
        ``expected`` as its body.
        """
        return self.assertResult(
            b"POST", b"/" + endpoint, body, OK, expected)

    def mountpoint(self, name=u"db01"):
        return self.mount_path.child(name).path


class APITests(APITestsMixin, TestCase):
    """
    Tests for the Volumes Plugin API endpoints.
    """
    def setUp(self):
        super(APITests, self).setUp()
        self.initialize()

    def test_plugin_activation(self):
        """
        ``/Plugins.Activate`` indicates the plugin is a volume driver.
        """
        self.call(b"Plugin.Activate", None, {u"Implements": [u"VolumeDriver"]})

    def test_capabilities(self):
        """
        ``/VolumeDriver.Capabilities`` reports local scope.
        """
        self.call(
            b"VolumeDriver.Capabilities", {},
            {u"Capabilities": {u"Scope": u"local"}})

    def test_create(self):
        """
        ``/VolumeDriver.Create`` registers the volume.
        """
        self.call(b"VolumeDriver.Create",
                  {u"Name": u"db01", u"Opts": {u"size": u"10G"}},
                  {u"Err": u""})
        self.assertEqual(
            [u"db01"], [record.name for record in self.lifecycle.list()])

    def test_create_without_opts(self):
        """
        ``/VolumeDriver.Create`` accepts a request without ``Opts``.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})

    def test_create_unknown(self):
        """
        Creating a volume the remote service doesn't know reports the error.
        """
        self.call(
            b"VolumeDriver.Create", {u"Name": u"db02"},
            {u"Err": u"DigitalOcean volume not found for region 'nyc1' and "
                     u"name 'db02'"})

    def test_create_twice(self):
        """
        Creating a registered volume again reports the error.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Create", {u"Name": u"db01"},
            {u"Err": u"volume named 'db01' already exists"})

    def test_mount(self):
        """
        ``/VolumeDriver.Mount`` attaches and mounts the volume and returns
        its mountpoint.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Mount", {u"Name": u"db01", u"ID": u"abc"},
            {u"Err": u"", u"Mountpoint": self.mountpoint()})
        self.assertEqual(
            [self.mountpoint()], list(self.mounter.mounted))

    def test_mount_unknown(self):
        """
        Mounting an unregistered volume reports the error.
        """
        self.call(
            b"VolumeDriver.Mount", {u"Name": u"db02"},
            {u"Err": u"volume named 'db02' not found"})

    def test_mount_attach_failure(self):
        """
        A failed attach is reported.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.remote.statuses = [ActionStatus.ERRORED.value]
        self.call(
            b"VolumeDriver.Mount", {u"Name": u"db01"},
            {u"Err": u"failed to attach the volume to this droplet: the "
                     u"action did not complete but ended with status "
                     u"'errored'"})

    def test_unmount(self):
        """
        ``/VolumeDriver.Unmount`` unmounts the volume after its last use.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Mount", {u"Name": u"db01"},
            {u"Err": u"", u"Mountpoint": self.mountpoint()})
        self.call(
            b"VolumeDriver.Unmount", {u"Name": u"db01", u"ID": u"abc"},
            {u"Err": u""})
        self.assertEqual({}, self.mounter.mounted)

    def test_unmount_unknown(self):
        """
        Unmounting an unregistered volume succeeds.
        """
        self.call(b"VolumeDriver.Unmount", {u"Name": u"db02"}, {u"Err": u""})

    def test_path(self):
        """
        ``/VolumeDriver.Path`` returns the mountpoint of the volume.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Path", {u"Name": u"db01"},
            {u"Err": u"", u"Mountpoint": self.mountpoint()})

    def test_path_unknown(self):
        """
        The path of an unregistered volume is an error.
        """
        self.call(
            b"VolumeDriver.Path", {u"Name": u"db02"},
            {u"Err": u"volume named 'db02' not found"})

    def test_get(self):
        """
        ``/VolumeDriver.Get`` describes the volume including where it is
        attached.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Mount", {u"Name": u"db01"},
            {u"Err": u"", u"Mountpoint": self.mountpoint()})
        self.call(
            b"VolumeDriver.Get", {u"Name": u"db01"},
            {u"Err": u"",
             u"Volume": {
                 u"Name": u"db01",
                 u"Mountpoint": self.mountpoint(),
                 u"Status": {
                     u"VolumeID": u"vol-123",
                     u"ReferenceCount": 1,
                     u"AttachedDropletIDs": [NODE_ID],
                 }}})

    def test_get_remote_failure(self):
        """
        If the remote service cannot be queried ``/VolumeDriver.Get`` still
        describes the volume, along with the error.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.remote.fail(
            "get_by_id", RemoteServiceError(500, u"Server Error"))
        self.call(
            b"VolumeDriver.Get", {u"Name": u"db01"},
            {u"Err": u"",
             u"Volume": {
                 u"Name": u"db01",
                 u"Mountpoint": self.mountpoint(),
                 u"Status": {
                     u"VolumeID": u"vol-123",
                     u"ReferenceCount": 0,
                     u"Err": u"failed to get the volume with ID 'vol-123': "
                             u"Server Error (HTTP 500)",
                 }}})

    def test_get_unknown(self):
        """
        Getting an unregistered volume is an error.
        """
        self.call(
            b"VolumeDriver.Get", {u"Name": u"db02"},
            {u"Err": u"volume named 'db02' not found"})

    def test_list(self):
        """
        ``/VolumeDriver.List`` returns every registered volume by name.
        """
        self.remote.add_volume(u"vol-456", u"web", REGION)
        for name in [u"web", u"db01"]:
            self.call(b"VolumeDriver.Create", {u"Name": name}, {u"Err": u""})
        self.call(
            b"VolumeDriver.List", {},
            {u"Err": u"",
             u"Volumes": [
                 {u"Name": u"db01", u"Mountpoint": self.mountpoint()},
                 {u"Name": u"web", u"Mountpoint": self.mountpoint(u"web")},
             ]})

    def test_list_empty(self):
        """
        Without registered volumes ``/VolumeDriver.List`` returns none.
        """
        self.call(b"VolumeDriver.List", None, {u"Err": u"", u"Volumes": []})

    def test_remove(self):
        """
        ``/VolumeDriver.Remove`` forgets the volume.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(b"VolumeDriver.Remove", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Path", {u"Name": u"db01"},
            {u"Err": u"volume named 'db01' not found"})

    def test_remove_unknown(self):
        """
        Removing an unregistered volume is an error.
        """
        self.call(
            b"VolumeDriver.Remove", {u"Name": u"db02"},
            {u"Err": u"volume named 'db02' not found"})

    def test_runs_in_threadpool(self):
        """
        Lifecycle operations are dispatched to the thread pool.
        """
        self.call(b"VolumeDriver.List", {}, {u"Err": u"", u"Volumes": []})
        self.assertEqual(1, self.threadpool.calls)

    @capture_logging(None)
    def test_unexpected_error(self, logger):
        """
        An unexpected exception is logged and reported with its type.
        """
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.metadata.fail("discard", CustomException(u"disk on fire"))
        self.call(
            b"VolumeDriver.Remove", {u"Name": u"db01"},
            {u"Err": u"CustomException: disk on fire"})
        self.assertEqual(1, len(logger.flushTracebacks(CustomException)))

    @capture_logging(None)
    def test_missing_name(self, logger):
        """
        A request without the required ``Name`` is reported as an error.
        """
        response, body = self.request(b"POST", b"/VolumeDriver.Path", {})
        error = loads(body.decode("utf-8"))[u"Err"]
        self.assertEqual(
            (OK, True, 1),
            (response.code, error.startswith(u"TypeError: "),
             len(logger.flushTracebacks(TypeError))),
        )


class LifecycleTests(APITestsMixin, TestCase):
    """
    Docker driving a volume through its whole lifecycle.
    """
    def setUp(self):
        super(LifecycleTests, self).setUp()
        self.initialize()

    def test_db01(self):
        """
        Two containers use ``db01`` one after another overlapping: it is
        attached and mounted once and unmounted after the second container
        is gone.
        """
        mounted = {u"Err": u"", u"Mountpoint": self.mountpoint()}
        self.call(b"VolumeDriver.Create", {u"Name": u"db01"}, {u"Err": u""})
        self.call(b"VolumeDriver.Mount", {u"Name": u"db01"}, mounted)
        self.call(b"VolumeDriver.Mount", {u"Name": u"db01"}, mounted)
        self.call(b"VolumeDriver.Unmount", {u"Name": u"db01"}, {u"Err": u""})
        still_mounted = dict(self.mounter.mounted)
        self.call(b"VolumeDriver.Unmount", {u"Name": u"db01"}, {u"Err": u""})
        self.call(b"VolumeDriver.Remove", {u"Name": u"db01"}, {u"Err": u""})
        self.call(
            b"VolumeDriver.Get", {u"Name": u"db01"},
            {u"Err": u"volume named 'db01' not found"})
        self.assertEqual(
            ([self.mountpoint()], {}, 1, 1),
            (list(still_mounted), self.mounter.mounted,
             len(self.remote.calls_to("start_attach")),
             len(self.mounter.calls_to("mount"))),
        )
