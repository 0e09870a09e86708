# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Tests for ``dostorage.dockerplugin._script``.
"""

from os import getgid
from grp import getgrgid

from twisted.python.filepath import FilePath
from twisted.python.usage import UsageError

from ... import DRIVER_NAME
from .._api import VolumePlugin
from .._script import (
    ACCESS_TOKEN_VARIABLE, DEFAULT_METADATA_PATH, DEFAULT_MOUNT_PATH,
    DEFAULT_SOCKET_PATH, DockerPluginOptions,
    DockerPluginScript, plugin_service,
)
from ...testtools import (
    CustomException, MemoryCoreReactor, NonReactor, NonThreadPool,
    ScriptTestsMixin, StandardOptionsTestsMixin, TestCase,
)
from ...volume import LifecycleOrchestrator, VolumeNotFound
from ...volume.testtools import (
    FakeMountExecutor, FakeRemoteVolumeService, StaticNodeIdentity,
)


class DockerPluginScriptTests(ScriptTestsMixin, TestCase):
    """
    General tests for ``DockerPluginScript``.
    """
    script = DockerPluginScript
    options = DockerPluginOptions
    command_name = u'dostorage-docker-plugin'


class StandardOptionsTests(StandardOptionsTestsMixin, TestCase):
    """
    The standard options are supported by ``DockerPluginOptions``.
    """
    options = DockerPluginOptions
    required_arguments = [u'--access-token', u'secret']


class DockerPluginOptionsTests(TestCase):
    """
    Tests for ``DockerPluginOptions``.
    """
    def parse(self, arguments, environ=None):
        options = DockerPluginOptions(
            environ={} if environ is None else environ)
        options.parseOptions(arguments)
        return options

    def test_defaults(self):
        """
        Only the access token has to be given.
        """
        options = self.parse([u'--access-token', u'secret'])
        self.assertEqual(
            (u'secret', FilePath(u'/mnt/dostorage'),
             FilePath(u'/etc/docker/plugins/dostorage/volumes'),
             u'root', 0,
             FilePath(u'/run/docker/plugins/dostorage.sock')),
            (options['access-token'], options['mount-path'],
             options['metadata-path'], options['unix-socket-group'],
             options['unix-socket-gid'], options['socket-path']),
        )

    def test_default_mountpoint(self):
        """
        Volumes are mounted in ``/mnt/dostorage`` by default.
        """
        self.assertEqual(
            u"/mnt/dostorage/db01", DEFAULT_MOUNT_PATH.child(u"db01").path)

    def test_default_paths_named_after_driver(self):
        """
        The default mount directory, metadata directory and socket are all
        named after the driver Docker knows the plugin by.
        """
        self.assertEqual(
            (DRIVER_NAME, DRIVER_NAME, DRIVER_NAME + u".sock"),
            (DEFAULT_MOUNT_PATH.basename(),
             DEFAULT_METADATA_PATH.parent().basename(),
             DEFAULT_SOCKET_PATH.basename()),
        )

    def test_short_options(self):
        """
        The access token, mount path and socket group have short options.
        """
        group = getgrgid(getgid()).gr_name
        options = self.parse(
            [u'-t', u'secret', u'-m', u'/srv/volumes', u'-g', group])
        self.assertEqual(
            (u'secret', FilePath(u'/srv/volumes'), getgid()),
            (options['access-token'], options['mount-path'],
             options['unix-socket-gid']),
        )

    def test_paths(self):
        """
        The metadata and socket paths can be changed.
        """
        options = self.parse([
            u'-t', u'secret', u'--metadata-path', u'/var/lib/dostorage',
            u'--socket-path', u'/tmp/dostorage.sock',
        ])
        self.assertEqual(
            (FilePath(u'/var/lib/dostorage'),
             FilePath(u'/tmp/dostorage.sock')),
            (options['metadata-path'], options['socket-path']),
        )

    def test_token_from_environment(self):
        """
        Without ``--access-token`` the token is read from the environment.
        """
        options = self.parse([], {ACCESS_TOKEN_VARIABLE: u'from-env'})
        self.assertEqual(u'from-env', options['access-token'])

    def test_token_option_wins(self):
        """
        ``--access-token`` is preferred over the environment.
        """
        options = self.parse(
            [u'-t', u'secret'], {ACCESS_TOKEN_VARIABLE: u'from-env'})
        self.assertEqual(u'secret', options['access-token'])

    def test_token_required(self):
        """
        Without any access token the options are rejected.
        """
        error = self.assertRaises(UsageError, self.parse, [])
        self.assertIn(ACCESS_TOKEN_VARIABLE, str(error))

    def test_unknown_group(self):
        """
        A socket group that doesn't exist is rejected.
        """
        self.assertRaises(
            UsageError, self.parse,
            [u'-t', u'secret', u'-g', u'no-such-group-dostorage'])


class FailingIdentity(object):
    def region(self):
        raise CustomException()

    def node_id(self):
        raise CustomException()


class BuildLifecycleTests(TestCase):
    """
    Tests for ``DockerPluginScript.build_lifecycle``.
    """
    def setUp(self):
        super(BuildLifecycleTests, self).setUp()
        root = self.make_temporary_directory()
        self.mount_path = root.child(u'mnt')
        self.metadata_path = root.child(u'volumes')
        self.remote = FakeRemoteVolumeService()
        self.remote.add_volume(u'vol-123', u'db01', u'nyc1')
        self.tokens = []
        self.identity = StaticNodeIdentity(u'nyc1', 1001)

    def build(self):
        options = DockerPluginOptions(environ={})
        options.parseOptions([
            u'-t', u'secret', u'-m', self.mount_path.path,
            u'--metadata-path', self.metadata_path.path,
        ])

        def remote_factory(token):
            self.tokens.append(token)
            return self.remote

        script = DockerPluginScript(
            identity_factory=lambda: self.identity,
            remote_factory=remote_factory,
            mounter_factory=FakeMountExecutor,
        )
        return script.build_lifecycle(options)

    def test_lifecycle(self):
        """
        An orchestrator using the access token is returned and the mount and
        metadata directories are created.
        """
        lifecycle = self.build()
        self.assertEqual(
            (True, [u'secret'], True, u'rwx------'),
            (isinstance(lifecycle, LifecycleOrchestrator), self.tokens,
             self.mount_path.isdir(),
             self.metadata_path.getPermissions().shorthand()),
        )

    def test_registers_recorded(self):
        """
        Volumes recorded by a previous run are registered again.
        """
        self.metadata_path.makedirs()
        self.metadata_path.child(u'db01').touch()
        lifecycle = self.build()
        self.assertEqual(
            [u'vol-123'],
            [record.remote_volume_id for record in lifecycle.list()])

    def test_identity_failure(self):
        """
        If the identity of this droplet cannot be determined startup fails.
        """
        self.identity = FailingIdentity()
        self.assertRaises(CustomException, self.build)

    def test_unknown_recorded(self):
        """
        If a recorded volume cannot be registered startup fails.
        """
        self.metadata_path.makedirs()
        self.metadata_path.child(u'gone').touch()
        self.assertRaises(VolumeNotFound, self.build)


class PluginServiceTests(TestCase):
    """
    Tests for ``plugin_service``.
    """
    def setUp(self):
        super(PluginServiceTests, self).setUp()
        self.reactor = MemoryCoreReactor()
        self.socket_path = self.make_temporary_directory().child(
            u'plugins').child(u'dostorage.sock')
        self.plugin = VolumePlugin(NonReactor(), NonThreadPool(), None)

    def start(self):
        service = plugin_service(
            self.reactor, self.plugin, self.socket_path, getgid())
        # The memory reactor doesn't create the socket file.
        self.socket_path.touch()
        service.startService()
        self.addCleanup(service.stopService)
        return service

    def test_listens(self):
        """
        The service listens on the socket path, creating its directory.
        """
        self.start()
        [(address, factory, backlog, mode, want_pid)] = (
            self.reactor.unixServers)
        self.assertEqual(
            (self.socket_path.path, 0o660, True),
            (address, mode, bool(want_pid)),
        )

    def test_socket_permissions(self):
        """
        Once listening the socket belongs to the group and is readable and
        writable by it.
        """
        self.start()
        self.assertEqual(
            (u'rw-rw----', getgid()),
            (self.socket_path.getPermissions().shorthand(),
             self.socket_path.getGroupID()),
        )
