# -*- test-case-name: dostorage.dockerplugin.test.test_script -*-
# Copyright ClusterHQ Inc. See LICENSE file for details.

"""
Command to start up the Docker plugin.
"""

from grp import getgrnam
from os import chown, environ

from eliot import ActionType, Field

from zope.interface import implementer

from twisted.application.internet import StreamServerEndpointService
from twisted.internet.endpoints import serverFromString
from twisted.python.filepath import FilePath
from twisted.python.usage import Options, UsageError
from twisted.web.server import Site

from .. import DRIVER_NAME
from ..common.script import (
    ICommandLineScript, ScriptRunner, main_for_service, standard_options,
)
from ..digitalocean import DigitalOceanVolumeService, DropletMetadata
from ..volume import (
    CommandMountExecutor, LifecycleOrchestrator, MetadataDirectory,
)
from ._api import VolumePlugin

DEFAULT_MOUNT_PATH = FilePath(u"/mnt").child(DRIVER_NAME)
DEFAULT_METADATA_PATH = FilePath(
    u"/etc/docker/plugins").child(DRIVER_NAME).child(u"volumes")
DEFAULT_SOCKET_PATH = FilePath(
    u"/run/docker/plugins").child(DRIVER_NAME + u".sock")

ACCESS_TOKEN_VARIABLE = u"DIGITALOCEAN_ACCESS_TOKEN"

# Docker runs as root; the socket group lets others talk to the plugin too.
SOCKET_MODE = 0o660

STARTUP = ActionType(
    u"dostorage:docker_plugin:startup",
    [Field.forTypes(u"mount_path", [str], u"The mountpoint directory."),
     Field.forTypes(u"metadata_path", [str], u"The metadata directory.")],
    [],
    u"The Docker plugin is preparing to serve requests.",
)


@standard_options
class DockerPluginOptions(Options):
    """
    Command-line options for the Docker plugin.
    """
    synopsis = u"Usage: dostorage-docker-plugin [options]"

    optParameters = [
        ["access-token", "t", None,
         "A DigitalOcean API access token with write scope.  Defaults to "
         "the value of the {} environment variable.".format(
             ACCESS_TOKEN_VARIABLE)],
        ["mount-path", "m", DEFAULT_MOUNT_PATH.path,
         "The directory below which volumes are mounted."],
        ["metadata-path", None, DEFAULT_METADATA_PATH.path,
         "The directory remembering which volumes were created."],
        ["unix-socket-group", "g", "root",
         "The group owning the plugin socket."],
        ["socket-path", None, DEFAULT_SOCKET_PATH.path,
         "The Unix socket Docker connects to."],
    ]

    def __init__(self, environ=environ):
        """
        :param environ: The environment to fall back to for the access
            token.
        """
        Options.__init__(self)
        self._environ = environ

    def postOptions(self):
        if not self['access-token']:
            self['access-token'] = self._environ.get(ACCESS_TOKEN_VARIABLE)
        if not self['access-token']:
            raise UsageError(
                "An access token is required: use --access-token or set "
                "{}.".format(ACCESS_TOKEN_VARIABLE))
        try:
            self['unix-socket-gid'] = getgrnam(
                self['unix-socket-group']).gr_gid
        except KeyError:
            raise UsageError(
                "Unknown group: {}".format(self['unix-socket-group']))
        for name in ('mount-path', 'metadata-path', 'socket-path'):
            self[name] = FilePath(self[name])


class _SocketService(StreamServerEndpointService):
    """
    Listen on a Unix socket and hand it to a group once it exists.

    :ivar FilePath socket_path: The path of the socket.
    :ivar int gid: The group to own the socket.
    """
    def __init__(self, endpoint, factory, socket_path, gid):
        StreamServerEndpointService.__init__(self, endpoint, factory)
        self.socket_path = socket_path
        self.gid = gid

    def startService(self):
        StreamServerEndpointService.startService(self)
        self._waitingForPort.addCallback(self._set_ownership)

    def _set_ownership(self, port):
        # ``None`` when listening failed, which has been logged already.
        if port is not None:
            chown(self.socket_path.path, -1, self.gid)
            self.socket_path.chmod(SOCKET_MODE)
        return port


def plugin_service(reactor, plugin, socket_path, gid):
    """
    :param VolumePlugin plugin: The plugin to serve.
    :param FilePath socket_path: Where to listen.
    :param int gid: The group to own the socket.

    :return: An ``IService`` serving ``plugin`` on ``socket_path``.
    """
    parent = socket_path.parent()
    if not parent.exists():
        parent.makedirs()
    # This is how to run a REST API on a Unix socket.
    endpoint = serverFromString(
        reactor, "unix:{}:mode={:o}:lockfile=1".format(
            socket_path.path, SOCKET_MODE))
    return _SocketService(
        endpoint, Site(plugin.app.resource()), socket_path, gid)


@implementer(ICommandLineScript)
class DockerPluginScript(object):
    """
    Start the Docker plugin.

    The collaborators are created by factories which tests replace.
    """
    def __init__(self, identity_factory=DropletMetadata,
                 remote_factory=DigitalOceanVolumeService,
                 mounter_factory=CommandMountExecutor):
        self._identity_factory = identity_factory
        self._remote_factory = remote_factory
        self._mounter_factory = mounter_factory

    def build_lifecycle(self, options):
        """
        Prepare the directories and register the volumes created by previous
        runs.  Any failure is fatal.

        :param DockerPluginOptions options: The parsed options.

        :return: The started ``LifecycleOrchestrator``.
        """
        mount_path = options['mount-path']
        metadata_path = options['metadata-path']
        with STARTUP(mount_path=mount_path.path,
                     metadata_path=metadata_path.path):
            identity = self._identity_factory()
            region = identity.region()
            node_id = identity.node_id()

            mount_path.makedirs(ignoreExistingDirectory=True)
            metadata = MetadataDirectory(metadata_path)
            metadata.create()

            orchestrator = LifecycleOrchestrator(
                remote=self._remote_factory(options['access-token']),
                mounter=self._mounter_factory(),
                metadata=metadata,
                mount_path=mount_path,
            )
            orchestrator.on_startup(region, node_id)
            return orchestrator

    def main(self, reactor, options):
        lifecycle = self.build_lifecycle(options)
        plugin = VolumePlugin(reactor, reactor.getThreadPool(), lifecycle)
        service = plugin_service(
            reactor, plugin, options['socket-path'],
            options['unix-socket-gid'])
        return main_for_service(reactor, service)


def docker_plugin_main():
    """
    Script entry point that runs the Docker plugin.
    """
    return ScriptRunner(script=DockerPluginScript(),
                        options=DockerPluginOptions()).main()
