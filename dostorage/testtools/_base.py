# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Base classes for unit tests.
"""

import json
import tempfile
from unittest import SkipTest

from eliot.prettyprint import pretty_format
from fixtures import Fixture
import testtools
from testtools.content import Content
from testtools.content_type import UTF8_TEXT
from testtools.twistedsupport import CaptureTwistedLogs

from twisted.python import log
from twisted.python.filepath import FilePath
from twisted.trial import unittest


class _MktempMixin(object):
    """
    ``mktemp`` support for testtools TestCases.
    """

    def mktemp(self):
        """
        Create a temporary path for use in tests.

        Provided for compatibility with Twisted's ``TestCase``.

        :return: Path to non-existent file or directory.
        """
        return self.make_temporary_path().path

    def make_temporary_path(self):
        """
        :return: Path to non-existent file or directory.
        :rtype: FilePath
        """
        return self.make_temporary_directory().child('temp')

    def make_temporary_directory(self):
        """
        Create a temporary directory for use in tests.  It is removed again
        when the test finishes.

        :return: Path to directory.
        :rtype: FilePath
        """
        path = FilePath(tempfile.mkdtemp(prefix=u"dostorage-test-"))
        self.addCleanup(_remove_tree, path)
        return path


def _remove_tree(path):
    # Tests may leave read-only directories behind.
    if path.exists():
        for child in path.walk():
            if child.isdir():
                child.chmod(0o700)
        path.remove()


class _DeferredAssertionMixin(object):
    """
    Synchronous Deferred-related assertions support for testtools TestCase.

    This is provided for compatibility with Twisted's TestCase.
    """
    successResultOf = unittest.SynchronousTestCase.successResultOf
    failureResultOf = unittest.SynchronousTestCase.failureResultOf
    assertNoResult = unittest.SynchronousTestCase.assertNoResult

    # Not related to Deferreds but required by the implementation of the above.
    assertIdentical = unittest.SynchronousTestCase.assertIdentical


class TestCase(testtools.TestCase, _MktempMixin, _DeferredAssertionMixin):
    """
    Base class for synchronous test cases.
    """

    # Eliot's validateLogging hard-codes a check for SkipTest when deciding
    # whether to check for valid logging. Setting skipException tells
    # testtools to treat unittest.SkipTest as the exception that signals
    # skipping.
    skipException = SkipTest

    def setUp(self):
        log.msg("--> Begin: %s <--" % (self.id()))
        super(TestCase, self).setUp()
        self.useFixture(_SplitEliotLogs())


class _SplitEliotLogs(Fixture):
    """
    Attach the Eliot messages redirected to the Twisted log
    (see ``dostorage._redirect_eliot_logs_for_trial``) as a separate, pretty
    printed, test detail.
    """

    _ELIOT_LOG_DETAIL_NAME = 'twisted-eliot-log'

    def _setUp(self):
        twisted_logs = self.useFixture(CaptureTwistedLogs())
        twisted_log = twisted_logs.getDetails()[twisted_logs.LOG_DETAIL_NAME]

        # The detail is only populated once details are evaluated, so the
        # split has to be deferred until then.
        def eliot_lines():
            for line in twisted_log.as_text().splitlines():
                message = extract_eliot_from_twisted_log(line)
                if message is not None:
                    yield (pretty_format(json.loads(message)) + u'\n').encode(
                        'utf-8')

        twisted_logs.addDetail(
            self._ELIOT_LOG_DETAIL_NAME, Content(UTF8_TEXT, eliot_lines))


def extract_eliot_from_twisted_log(twisted_log_line):
    """
    Given a line from a Twisted log message, return the text of the Eliot log
    message that is on that line.

    If there is no Eliot message on that line, return ``None``.

    :param str twisted_log_line: A line from a Twisted test.log.
    :return: A logged eliot message without Twisted logging preamble, or
        ``None``.
    """
    open_brace = twisted_log_line.find('{')
    close_brace = twisted_log_line.rfind('}')
    if open_brace == -1 or close_brace == -1:
        return None
    candidate = twisted_log_line[open_brace:close_brace + 1]
    try:
        fields = json.loads(candidate)
    except (ValueError, TypeError):
        return None
    # Eliot lines always have these two keys.
    if {"task_uuid", "timestamp"}.difference(fields):
        return None
    return candidate
