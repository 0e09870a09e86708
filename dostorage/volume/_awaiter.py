# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Turn an asynchronous remote action (attach, detach) into a blocking call
which either succeeds or fails.
"""

from datetime import timedelta
import time

from constantly import Values, ValueConstant

from eliot import Field, MessageType

from pyrsistent import PClass, field

from twisted.python.reflect import safe_repr

from ..common import (
    LoopExceeded, fixed_retry_steps, poll_until, with_retry,
)


class ActionStatus(Values):
    """
    The statuses a remote action reports.
    """
    IN_PROGRESS = ValueConstant(u"in-progress")
    COMPLETED = ValueConstant(u"completed")
    ERRORED = ValueConstant(u"errored")


# The status reported when no poll of an action succeeded.
NO_STATUS = u"n/a"

_FINAL_STATUSES = {
    ActionStatus.COMPLETED.value,
    ActionStatus.ERRORED.value,
}


def _positive(value):
    return (value > 0, "Must be positive: {!r}".format(value))


class ActionPolicy(PClass):
    """
    How persistently to start and to wait for a remote action.

    :ivar int start_attempts: How many times to try starting the action.
    :ivar timedelta start_interval: The pause after a failed start.
    :ivar int poll_attempts: How many times to poll for the action status.
    :ivar timedelta poll_interval: The pause between two polls.
    """
    start_attempts = field(type=int, initial=3, invariant=_positive)
    start_interval = field(type=timedelta, initial=timedelta(seconds=1))
    poll_attempts = field(type=int, initial=60, invariant=_positive)
    poll_interval = field(
        type=timedelta, initial=timedelta(milliseconds=500))


DEFAULT_POLICY = ActionPolicy()


class ActionResult(PClass):
    """
    The outcome of ``perform_with_retry``.

    :ivar bool succeeded: Whether the action completed.
    :ivar str status: The last status observed, ``NO_STATUS`` if there was
        none.
    :ivar reason: The exception raised by the last attempt to start the
        action if it could not be started, otherwise ``None``.
    """
    succeeded = field(type=bool, mandatory=True)
    status = field(type=str, mandatory=True)
    reason = field(initial=None)

    @property
    def message(self):
        """
        A description of a failure.
        """
        if self.reason is not None:
            return u"the action could not be started: {}".format(self.reason)
        return (
            u"the action did not complete but ended with status "
            u"'{}'".format(self.status)
        )


ACTION_ID = Field(
    u"action_id", safe_repr, u"The identifier of a remote action.")

ACTION_STATUS = Field.forTypes(
    u"status", [str], u"The status of a remote action.")

REASON = Field(
    u"reason", safe_repr, u"Why something failed.")

START_FAILED = MessageType(
    u"dostorage:action:start_failed",
    [REASON],
    u"A remote action could not be started in any of the attempts.",
)

POLL_FAILED = MessageType(
    u"dostorage:action:poll_failed",
    [ACTION_ID, REASON],
    u"The status of a remote action could not be retrieved.",
)

POLLED = MessageType(
    u"dostorage:action:polled",
    [ACTION_ID, ACTION_STATUS],
    u"The status of a remote action was retrieved.",
)

FINISHED = MessageType(
    u"dostorage:action:finished",
    [ACTION_ID, ACTION_STATUS,
     Field.forTypes(u"succeeded", [bool], u"Whether the action completed.")],
    u"Waiting for a remote action is over.",
)


def perform_with_retry(start, poll, policy=DEFAULT_POLICY, sleep=None):
    """
    Start a remote action and wait for it to finish.

    ``start`` is retried a fixed number of times at a fixed interval.  Once
    it succeeds the action is polled until it reports ``completed`` or
    ``errored`` or the poll budget runs out.  A poll which raises is logged
    and counts against the budget.

    :param start: A no-argument callable which starts the action and returns
        its identifier, or raises.
    :param poll: A one-argument callable which returns the status of the
        action with the given identifier, or raises.
    :param ActionPolicy policy: The retry and poll budgets.
    :param sleep: A replacement for ``time.sleep``.

    :return: An ``ActionResult``.
    """
    if sleep is None:
        sleep = time.sleep

    try:
        action_id = with_retry(
            start,
            steps=fixed_retry_steps(
                policy.start_attempts, policy.start_interval),
            sleep=sleep,
        )()
    except Exception as e:
        START_FAILED.log(reason=e)
        return ActionResult(succeeded=False, status=NO_STATUS, reason=e)

    last_status = [NO_STATUS]

    def finished():
        try:
            status = poll(action_id)
        except Exception as e:
            POLL_FAILED.log(action_id=action_id, reason=e)
            return None
        POLLED.log(action_id=action_id, status=status)
        last_status[0] = status
        if status in _FINAL_STATUSES:
            return status
        return None

    steps = [policy.poll_interval.total_seconds()] * (policy.poll_attempts - 1)
    try:
        status = poll_until(finished, steps, sleep)
    except LoopExceeded:
        status = last_status[0]
    succeeded = status == ActionStatus.COMPLETED.value
    FINISHED.log(action_id=action_id, status=status, succeeded=succeeded)
    return ActionResult(succeeded=succeeded, status=status)
