# -*- test-case-name: dostorage.common.test.test_script -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Running dostorage as a command line program: the options every command
shares, eliot logging to stdout or a rotated file, and tying a long-running
service to the reactor.
"""

import sys

from bitmath import MiB

from eliot import FileDestination, Logger, MessageType, fields
from eliot.logwriter import ThreadedWriter

from twisted.application.service import MultiService, Service
from twisted.internet import reactor as global_reactor, task
from twisted.internet.defer import Deferred, maybeDeferred
from twisted.python import log as twisted_log, usage
from twisted.python.filepath import FilePath
from twisted.python.log import err, startLoggingWithObserver
from twisted.python.log import textFromEventDict
from twisted.python.logfile import LogFile

from zope.interface import Interface

from .. import __version__


__all__ = [
    'standard_options',
    'ICommandLineScript',
    'ScriptRunner',
    'main_for_service',
]


# The plugin runs for the lifetime of the droplet, so --logfile output is
# rotated rather than left to grow.
LOGFILE_LENGTH = int(MiB(100).to_Byte().value)
LOGFILE_COUNT = 5


def open_logfile(path):
    """
    Open a size-rotated log file, creating its directory first if needed.

    :param FilePath path: Where the current log file lives.

    :return: A ``LogFile``.
    """
    if not path.parent().exists():
        path.parent().makedirs()
    return LogFile.fromFullPath(
        path.path, rotateLength=LOGFILE_LENGTH,
        maxRotatedFiles=LOGFILE_COUNT,
    )


def _opt_version(self):
    """Print the program's version and exit."""
    self._sys_module.stdout.write(__version__ + u'\n')
    raise SystemExit(0)


def _opt_verbose(self):
    """Turn on verbose logging."""
    self['verbosity'] += 1


def _opt_logfile(self, logfile_path):
    """
    Log to a file instead of stdout, rotating it as it grows.  Its directory
    is created if missing.
    """
    self['logfile'] = open_logfile(FilePath(logfile_path))


def standard_options(cls):
    """
    Give a ``usage.Options`` subclass the ``--version``, ``--verbose``/``-v``
    and ``--logfile`` options.

    The decorated initialiser also accepts a ``sys_module`` keyword argument,
    a ``sys``-like object used for output in tests.

    :param type cls: The class to decorate.
    :return: ``cls``.
    """
    wrapped_init = cls.__init__

    def __init__(self, *args, **kwargs):
        self._sys_module = kwargs.pop('sys_module', sys)
        self['verbosity'] = 0
        self['logfile'] = self._sys_module.stdout
        wrapped_init(self, *args, **kwargs)

    cls.__init__ = __init__
    cls.opt_version = _opt_version
    cls.opt_verbose = cls.opt_v = _opt_verbose
    cls.opt_logfile = _opt_logfile
    return cls


class ICommandLineScript(Interface):
    """A script which can be run by ``ScriptRunner``."""
    def main(reactor, options):
        """
        :param reactor: A Twisted reactor.
        :param dict options: The parsed command line options.
        :return: A ``Deferred`` which fires when the script has completed.
        """


TWISTED_LOG_MESSAGE = MessageType(u"twisted:log",
                                  fields(error=bool, message=str),
                                  u"A log message from Twisted.")


class EliotObserver(Service):
    """
    Forward Twisted's log events to eliot as ``twisted:log`` messages.

    :ivar publisher: The ``LogPublisher`` observed.
    :ivar bool capture_stdout: Whether stdout and stderr are redirected into
        the Twisted log, and so into eliot, once started.
    """
    def __init__(self, publisher=twisted_log, capture_stdout=True):
        self.logger = Logger()
        self.publisher = publisher
        self.capture_stdout = capture_stdout

    def __call__(self, event):
        TWISTED_LOG_MESSAGE(
            error=bool(event.get("isError")),
            message=textFromEventDict(event) or u"",
        ).write(self.logger)

    def startService(self):
        # Never removed; the observer lives as long as the process.
        startLoggingWithObserver(self, setStdout=self.capture_stdout)


def eliot_logging_service(log_file, reactor, capture_stdout):
    """
    :return: A service which, while running, writes eliot messages to
        ``log_file`` from a thread and routes Twisted logging into eliot.
    """
    service = MultiService()
    ThreadedWriter(FileDestination(file=log_file), reactor).setServiceParent(
        service)
    EliotObserver(capture_stdout=capture_stdout).setServiceParent(service)
    return service


class ScriptRunner(object):
    """
    Parse the command line and run an ``ICommandLineScript`` under
    ``task.react``.

    :ivar script: The ``ICommandLineScript`` to run.
    :ivar options: The ``usage.Options`` to parse ``sys.argv`` with.
    :ivar bool logging: Whether eliot output goes to the ``logfile`` option.
    :ivar sys_module: ``sys`` or a replacement for testing.
    :ivar _react: ``task.react`` or a replacement for testing.
    """
    _react = staticmethod(task.react)

    def __init__(self, script, options, logging=True,
                 reactor=None, sys_module=None):
        self.script = script
        self.options = options
        self.logging = logging
        self._reactor = global_reactor if reactor is None else reactor
        self.sys_module = sys if sys_module is None else sys_module

    def _parse_options(self, arguments):
        """
        Parse ``arguments`` into ``self.options``.  On a ``UsageError`` the
        help text and the error go to stderr and the process exits with
        status 1.

        :return: The populated options.
        """
        try:
            self.options.parseOptions(arguments)
        except usage.UsageError as e:
            stderr = self.sys_module.stderr
            stderr.write(str(self.options))
            stderr.write(u'ERROR: {}\n'.format(e))
            raise SystemExit(1)
        return self.options

    def _log_writer(self, options):
        if self.logging:
            return eliot_logging_service(
                options['logfile'], self._reactor, True)
        return Service()

    def main(self):
        # Options are parsed before anything else happens so --version and
        # usage errors exit without side effects.
        options = self._parse_options(self.sys_module.argv[1:])
        log_writer = self._log_writer(options)
        log_writer.startService()

        def report(failure):
            if not failure.check(SystemExit):
                err(failure)
            return failure

        def run(reactor):
            return maybeDeferred(
                self.script.main, reactor, options).addErrback(report)

        try:
            self._react(run, [], _reactor=self._reactor)
        finally:
            log_writer.stopService()


def main_for_service(reactor, service):
    """
    Start ``service`` and stop it when ``reactor`` shuts down.

    :param IReactorCore reactor: The reactor whose shutdown stops the
        service.
    :param IService service: The service, started immediately.

    :return: A ``Deferred`` firing once the service has finished stopping.
    """
    service.startService()
    stopped = Deferred()

    def stop():
        maybeDeferred(service.stopService).chainDeferred(stopped)

    reactor.addSystemEventTrigger("before", "shutdown", stop)
    return stopped
