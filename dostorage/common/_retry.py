# -*- test-case-name: dostorage.common.test.test_retry -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Retrying and polling for the blocking calls made against DigitalOcean.
"""

import time

from eliot import ActionType, Field, MessageType

from twisted.python.reflect import fullyQualifiedName, safe_repr


class LoopExceeded(Exception):
    """
    ``poll_until`` ran out of steps before the predicate became true.

    :ivar last_result: What the predicate returned the final time.
    """
    def __init__(self, predicate, last_result):
        super(LoopExceeded, self).__init__(
            '%r never True in poll_until, last result: %r'
            % (predicate, last_result))
        self.last_result = last_result


def poll_until(predicate, steps, sleep=None):
    """
    Call ``predicate`` until it returns something true.

    :param predicate: A no-argument callable.
    :param steps: An iterable of delays in seconds.  ``predicate`` is called
        once more than there are steps.
    :param sleep: A replacement for ``time.sleep``.

    :raise LoopExceeded: If ``steps`` runs out first.

    :return: The first true result.
    """
    if sleep is None:
        sleep = time.sleep
    result = predicate()
    for step in steps:
        if result:
            return result
        sleep(step)
        result = predicate()
    if result:
        return result
    raise LoopExceeded(predicate, result)


def fixed_retry_steps(attempts, interval):
    """
    Build the steps for trying something ``attempts`` times in total with a
    fixed ``interval`` between consecutive tries.

    :param int attempts: The total number of tries, at least one.
    :param timedelta interval: The pause between two tries.

    :return: A ``list`` of ``attempts - 1`` ``timedelta`` instances.
    """
    if attempts < 1:
        raise ValueError(
            "Invalid ``attempts`` ({!r}). Must be >= 1.".format(attempts)
        )
    return [interval] * (attempts - 1)


def _retry_always(exc_type, value, traceback):
    pass


def retry_if(predicate):
    """
    Create a ``should_retry`` for ``with_retry`` that only retries exceptions
    for which ``predicate`` is true.

    :param predicate: A one-argument callable called with the exception.
    """
    def should_retry(exc_type, value, traceback):
        if not predicate(value):
            raise value.with_traceback(traceback)
    return should_retry


def _callable_repr(method):
    try:
        return fullyQualifiedName(method)
    except AttributeError:
        return safe_repr(method)


FUNCTION = Field(u"function", _callable_repr, u"The callable being retried.")

EXCEPTION = Field(u"exception", str, u"The exception a try raised.")

RESULT = Field(u"result", safe_repr, u"What the successful try returned.")

FAILURE_RETRY = ActionType(
    u"dostorage:failure-retry",
    [FUNCTION],
    [],
    u"A callable is tried until it succeeds or the tries run out.",
)

TRY_FAILED = MessageType(
    u"dostorage:failure-retry:failure",
    [EXCEPTION],
    u"A try raised an exception.",
)

TRY_SUCCEEDED = MessageType(
    u"dostorage:failure-retry:success",
    [RESULT],
    u"A try returned a result.",
)


def with_retry(method, steps, should_retry=None, sleep=None):
    """
    Wrap ``method`` so that calls which raise are tried again.

    :param callable method: The callable to retry.
    :param steps: An iterable of ``timedelta`` pauses between tries.  There
        is one more try than there are steps.
    :param callable should_retry: Called with the exception state of each
        failed try.  Returning allows another try, raising ends the retries
        with that exception.  By default every exception is retried.
    :param callable sleep: A replacement for ``time.sleep``.

    :return: The retrying callable.  Once the steps run out it raises the
        exception of the final try.
    """
    if should_retry is None:
        should_retry = _retry_always
    if sleep is None:
        sleep = time.sleep

    def method_with_retry(*args, **kwargs):
        with FAILURE_RETRY(function=method):
            pauses = iter(steps)
            while True:
                try:
                    result = method(*args, **kwargs)
                except Exception as e:
                    should_retry(type(e), e, e.__traceback__)
                    TRY_FAILED.log(exception=e)
                    pause = next(pauses, None)
                    if pause is None:
                        raise
                    sleep(pause.total_seconds())
                else:
                    TRY_SUCCEEDED.log(result=result)
                    return result
    return method_with_retry
