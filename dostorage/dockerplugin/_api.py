# -*- test-case-name: dostorage.dockerplugin.test.test_api -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
An HTTP API implementing the Docker Volumes Plugin API.

See https://docs.docker.com/engine/extend/plugins_volume/ for details.
"""

from functools import wraps

import yaml

from eliot import writeFailure

from twisted.internet.defer import maybeDeferred
from twisted.python.filepath import FilePath
from twisted.web.http import OK

from klein import Klein

from ..common import auto_threaded
from ..restapi import structured, EndpointResponse
from ..volume import ILifecycle, VolumeError


SCHEMA_BASE = FilePath(__file__).sibling(u'schema')
SCHEMAS = yaml.safe_load(
    SCHEMA_BASE.child(u'endpoints.yml').getContent())[u'endpoints']


def _endpoint(name, ignore_body=False):
    """
    Decorator factory for API endpoints, adding appropriate JSON in/out
    encoding.

    This also converts errors to JSON that can be read by Docker and
    therefore shown to the user.  Docker only looks at ``Err`` in a response
    with code 200, so that is what every failure becomes.

    :param str name: The name of the endpoint in the schema.
    :param ignore_body: If true, ignore the contents of the body.

    :return: Decorator for a method.
    """
    def decorator(f):
        @wraps(f)
        @structured(
            inputSchema={},
            outputSchema=SCHEMAS[name],
            ignore_body=ignore_body)
        def wrapped(*args, **kwargs):
            d = maybeDeferred(f, *args, **kwargs)

            def handle_error(failure):
                if failure.check(VolumeError):
                    # Already logged by the action that failed.
                    message = failure.value.message
                else:
                    writeFailure(failure)
                    message = u"{}: {}".format(
                        failure.type.__name__, failure.value)
                return EndpointResponse(OK, {u"Err": message})
            d.addErrback(handle_error)
            return d
        return wrapped
    return decorator


@auto_threaded(ILifecycle, "_reactor", "_lifecycle", "_threadpool")
class _ThreadedLifecycle(object):
    """
    Run the blocking operations of an ``ILifecycle`` in a thread pool.
    """
    def __init__(self, reactor, lifecycle, threadpool):
        self._reactor = reactor
        self._lifecycle = lifecycle
        self._threadpool = threadpool


def _status(status):
    """
    :param VolumeStatus status: The inspected state of a volume.

    :return: The driver specific ``Status`` of a ``VolumeDriver.Get``
        response.
    """
    result = {
        u"VolumeID": status.record.remote_volume_id,
        u"ReferenceCount": status.record.reference_count,
    }
    if status.error is None:
        result[u"AttachedDropletIDs"] = list(status.node_ids)
    else:
        result[u"Err"] = status.error
    return result


class VolumePlugin(object):
    """
    An implementation of the Docker Volumes Plugin API.

    We don't validate inputs with a schema since the protocol is maintained
    by Docker, which doesn't publish one and occasionally adds fields.  We
    do validate outputs to ensure we output the documented requirements.
    """
    app = Klein()

    def __init__(self, reactor, threadpool, lifecycle):
        """
        :param reactor: The reactor to deliver results in.
        :param threadpool: A ``twisted.python.threadpool.ThreadPool`` in which
            the blocking lifecycle operations run.
        :param ILifecycle lifecycle: The volume lifecycle to drive.
        """
        self._lifecycle = _ThreadedLifecycle(reactor, lifecycle, threadpool)

    @app.route("/Plugin.Activate", methods=["POST"])
    @_endpoint(u"PluginActivate", ignore_body=True)
    def plugin_activate(self):
        """
        Return which Docker plugin APIs this object supports.
        """
        return {u"Implements": [u"VolumeDriver"]}

    @app.route("/VolumeDriver.Create", methods=["POST"])
    @_endpoint(u"Create")
    def volumedriver_create(self, Name, Opts=None):
        """
        Register the DigitalOcean volume with the given name in the region of
        this droplet.  The volume has to exist already.

        :param str Name: The name of the volume.
        :param dict Opts: Options passed from Docker for the volume at
            creation; ignored.

        :return: Result indicating success.
        """
        d = self._lifecycle.create(Name)
        d.addCallback(lambda _: {u"Err": u""})
        return d

    @app.route("/VolumeDriver.Remove", methods=["POST"])
    @_endpoint(u"Remove")
    def volumedriver_remove(self, Name):
        """
        Forget a volume.  The DigitalOcean volume itself is kept.

        :param str Name: The name of the volume.

        :return: Result indicating success.
        """
        d = self._lifecycle.remove(Name)
        d.addCallback(lambda _: {u"Err": u""})
        return d

    @app.route("/VolumeDriver.Mount", methods=["POST"])
    @_endpoint(u"Mount")
    def volumedriver_mount(self, Name, ID=None):
        """
        A container is going to use the volume.  The first user gets it
        attached to this droplet and mounted.

        :param str Name: The name of the volume.
        :param str ID: The identifier of the mount request; ignored.

        :return: Result that includes the mountpoint.
        """
        d = self._lifecycle.mount(Name)
        d.addCallback(lambda path: {u"Err": u"", u"Mountpoint": path.path})
        return d

    @app.route("/VolumeDriver.Unmount", methods=["POST"])
    @_endpoint(u"Unmount")
    def volumedriver_unmount(self, Name, ID=None):
        """
        A container no longer uses the volume.  After the last user it is
        unmounted and detached.

        :param str Name: The name of the volume.
        :param str ID: The identifier of the mount request; ignored.

        :return: Result indicating success.
        """
        d = self._lifecycle.unmount(Name)
        d.addCallback(lambda _: {u"Err": u""})
        return d

    @app.route("/VolumeDriver.Path", methods=["POST"])
    @_endpoint(u"Path")
    def volumedriver_path(self, Name):
        """
        :param str Name: The name of the volume.

        :return: Result that includes the mountpoint.
        """
        d = self._lifecycle.path(Name)
        d.addCallback(lambda path: {u"Err": u"", u"Mountpoint": path.path})
        return d

    @app.route("/VolumeDriver.Get", methods=["POST"])
    @_endpoint(u"Get")
    def volumedriver_get(self, Name):
        """
        Return information about the current state of a particular volume.

        :param str Name: The name of the volume.

        :return: Result describing the volume.
        """
        d = self._lifecycle.get(Name)
        d.addCallback(lambda status: {
            u"Err": u"",
            u"Volume": {
                u"Name": status.record.name,
                u"Mountpoint": status.record.mountpoint.path,
                u"Status": _status(status),
            },
        })
        return d

    @app.route("/VolumeDriver.List", methods=["POST"])
    @_endpoint(u"List", ignore_body=True)
    def volumedriver_list(self):
        """
        Return every registered volume.

        :return: Result listing the volumes.
        """
        d = self._lifecycle.list()
        d.addCallback(lambda records: {
            u"Err": u"",
            u"Volumes": [
                {u"Name": record.name, u"Mountpoint": record.mountpoint.path}
                for record in records
            ],
        })
        return d

    @app.route("/VolumeDriver.Capabilities", methods=["POST"])
    @_endpoint(u"Capabilities", ignore_body=True)
    def volumedriver_capabilities(self):
        """
        :return: The capabilities of the driver.
        """
        d = self._lifecycle.capabilities()
        d.addCallback(lambda capabilities: {u"Capabilities": capabilities})
        return d
