# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Test helpers shared by the dostorage test suites.
"""

import io
import sys
from random import randrange

from bitmath import MiB

from twisted.internet.base import _ThreePhaseEvent
from twisted.internet.task import Clock
from twisted.internet.testing import MemoryReactor
from twisted.python.failure import Failure
from twisted.python.filepath import FilePath
from twisted.python.logfile import LogFile

from zope.interface.verify import verifyObject

from .. import __version__
from ..common.script import ICommandLineScript, ScriptRunner
from ._base import TestCase


__all__ = [
    'CustomException',
    'FakeSysModule',
    'MemoryCoreReactor',
    'NonReactor',
    'NonThreadPool',
    'ScriptTestsMixin',
    'StandardOptionsTestsMixin',
    'TestCase',
    'help_problems',
    'random_name',
]


class CustomException(Exception):
    """
    An exception no production code raises.
    """


def random_name(case):
    """
    :param TestCase case: The running test, whose id is mixed into the name.

    :return: A random ``str`` unlikely to collide with other tests.
    """
    return u"{}-{}".format(case.id().replace(u".", u"_"), randrange(10 ** 6))


class NonThreadPool(object):
    """
    A ``ThreadPool`` stand-in that runs each call synchronously in the
    calling thread, so ``deferToThreadPool`` results are available at once.

    :ivar int calls: How many calls were dispatched.
    """
    calls = 0

    def callInThreadWithCallback(self, onResult, func, *args, **kw):
        self.calls += 1
        try:
            result = func(*args, **kw)
        except Exception:
            onResult(False, Failure())
        else:
            onResult(True, result)


class NonReactor(object):
    """
    The part of a reactor ``NonThreadPool`` results are delivered through.
    """
    def callFromThread(self, f, *args, **kwargs):
        f(*args, **kwargs)


def help_problems(command_name, help_text):
    """
    :return: A ``list`` of complaints about ``help_text``, empty if it starts
        with the usage line for ``command_name``.
    """
    expected_start = u'Usage: {}'.format(command_name)
    if help_text.startswith(expected_start):
        return []
    return [
        u'Does not begin with {!r}. Found {!r} instead'.format(
            expected_start, help_text[:len(expected_start)])
    ]


class FakeSysModule(object):
    """
    A ``sys`` substitute with settable ``argv`` and in-memory ``stdout`` and
    ``stderr``.
    """
    def __init__(self, argv=None):
        self.argv = [] if argv is None else argv
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()


class ScriptTestsMixin(object):
    """
    Tests for an ``ICommandLineScript`` run through ``ScriptRunner``.

    :ivar script: A no-argument callable returning the script under test.
    :ivar options: The ``usage.Options`` class the script is run with.
    :ivar str command_name: The name the command is installed as.
    """
    script = None
    options = None
    command_name = None

    def test_interface(self):
        """
        The script provides ``ICommandLineScript``.
        """
        self.assertTrue(verifyObject(ICommandLineScript, self.script()))

    def test_incorrect_arguments(self):
        """
        Unknown arguments make ``ScriptRunner.main`` print the help to stderr
        and exit with status 1.
        """
        sys_module = FakeSysModule(
            argv=[self.command_name, u'--unexpected_argument'])
        runner = ScriptRunner(
            reactor=None, script=self.script(), options=self.options(),
            sys_module=sys_module)
        error = self.assertRaises(SystemExit, runner.main)
        self.assertEqual(
            (1, []),
            (error.code,
             help_problems(self.command_name, sys_module.stderr.getvalue()))
        )


class StandardOptionsTestsMixin(object):
    """Tests for classes decorated with ``standard_options``.

    :ivar usage.Options options: The ``usage.Options`` class under test.
    :ivar list required_arguments: Arguments which have to be supplied for
        parsing to succeed at all.
    """
    options = None
    required_arguments = []

    def _parse(self, options, arguments):
        options.parseOptions(self.required_arguments + arguments)
        return options

    def test_sys_module_default(self):
        """
        ``standard_options`` adds a ``_sys_module`` attribute which is
        ``sys`` by default.
        """
        self.assertIs(sys, self.options()._sys_module)

    def test_sys_module_override(self):
        """
        ``standard_options`` adds a ``sys_module`` argument to the
        initialiser which is assigned to ``_sys_module``.
        """
        fake_sys_module = FakeSysModule()
        self.assertIs(
            fake_sys_module,
            self.options(sys_module=fake_sys_module)._sys_module
        )

    def test_version(self):
        """
        The `--version` option prints the current version string to stdout
        and causes the command to exit with status `0`.
        """
        sys = FakeSysModule()
        error = self.assertRaises(
            SystemExit,
            self.options(sys_module=sys).parseOptions,
            ['--version']
        )
        self.assertEqual(
            (__version__ + '\n', 0),
            (sys.stdout.getvalue(), error.code)
        )

    def test_verbosity_default(self):
        """
        `verbosity` is `0` by default.
        """
        options = self.options()
        self.assertEqual(0, options['verbosity'])

    def test_verbosity_option(self):
        """
        The `--verbose` option increments the configured verbosity by `1`.
        """
        options = self._parse(self.options(), ['--verbose'])
        self.assertEqual(1, options['verbosity'])

    def test_verbosity_option_short(self):
        """
        The `-v` option increments the configured verbosity by 1.
        """
        options = self._parse(self.options(), ['-v'])
        self.assertEqual(1, options['verbosity'])

    def test_verbosity_multiple(self):
        """
        `--verbose` can be supplied multiple times to increase the verbosity.
        """
        options = self._parse(self.options(), ['-v', '--verbose'])
        self.assertEqual(2, options['verbosity'])

    def test_logfile_default(self):
        """
        `--logfile` is optional and if omitted, the default value will be
        ``stdout``.
        """
        sys = FakeSysModule()
        options = self._parse(self.options(sys_module=sys), [])
        self.assertIs(sys.stdout, options['logfile'])

    def test_logfile_override(self):
        """
        If `--logfile` is supplied, its value is stored as a
        ``twisted.python.logfile.LogFile``.
        """
        expected_path = FilePath(self.mktemp()).path
        options = self._parse(
            self.options(), ['--logfile={}'.format(expected_path)])
        logfile = options['logfile']
        self.addCleanup(logfile.close)
        self.assertEqual(
            (LogFile, expected_path, int(MiB(100).to_Byte().value), 5),
            (logfile.__class__, logfile.path,
             logfile.rotateLength, logfile.maxRotatedFiles)
        )


class MemoryCoreReactor(MemoryReactor, Clock):
    """
    Fake reactor with listenUNIX, IReactorTime and just enough of an
    implementation of IReactorCore.
    """
    def __init__(self):
        MemoryReactor.__init__(self)
        Clock.__init__(self)
        self._triggers = {}

    def addSystemEventTrigger(self, phase, eventType, callable, *args, **kw):
        event = self._triggers.setdefault(eventType, _ThreePhaseEvent())
        return eventType, event.addTrigger(phase, callable, *args, **kw)

    def removeSystemEventTrigger(self, triggerID):
        eventType, handle = triggerID
        event = self._triggers.setdefault(eventType, _ThreePhaseEvent())
        event.removeTrigger(handle)

    def fireSystemEvent(self, eventType):
        event = self._triggers.get(eventType)
        if event is not None:
            event.fireEvent()
