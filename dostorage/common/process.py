# -*- test-case-name: dostorage.common.test.test_process -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Running the system commands the plugin depends on, such as ``mount(8)``.
"""

from subprocess import CalledProcessError, PIPE, STDOUT, run

from eliot import ActionType, Field

from pyrsistent import PClass, field


def _decode(output):
    return output.decode("utf-8", "replace")


COMMAND = Field(u"command", list, u"The argument list of a child process.")

STATUS = Field.forTypes(u"status", [int], u"The exit status of a process.")

OUTPUT = Field(
    u"output", _decode, u"The combined stdout and stderr of a process.")

RUN_PROCESS = ActionType(
    u"dostorage:common:run_process",
    [COMMAND],
    [STATUS, OUTPUT],
    u"A child process is run to completion.",
)


class _CalledProcessError(CalledProcessError):
    """
    A ``CalledProcessError`` whose string form carries the process output,
    which is where ``mount`` and ``umount`` explain themselves.
    """
    def __str__(self):
        quoted = u"\n".join(
            u"    |" + line for line in _decode(self.output).splitlines())
        return u"{} and output:\n{}".format(
            super(_CalledProcessError, self).__str__(), quoted)


class _ProcessResult(PClass):
    """
    The outcome of a successful ``run_process`` call.

    :ivar list command: The argument list that was run.
    :ivar bytes output: Everything the process wrote to stdout and stderr.
    :ivar int status: The exit status, always 0.
    """
    command = field(type=list, mandatory=True)
    output = field(type=bytes, mandatory=True)
    status = field(type=int, mandatory=True)


def run_process(command):
    """
    Run ``command`` and wait for it to exit, capturing stdout and stderr
    together.

    :param list command: The argument list of the child process.

    :raise CalledProcessError: If the exit status is not zero.

    :return: A ``_ProcessResult``.
    """
    with RUN_PROCESS(command=command) as action:
        completed = run(command, stdout=PIPE, stderr=STDOUT)
        action.addSuccessFields(
            status=completed.returncode, output=completed.stdout)
        if completed.returncode:
            raise _CalledProcessError(
                returncode=completed.returncode, cmd=command,
                output=completed.stdout,
            )
    return _ProcessResult(
        command=command, output=completed.stdout, status=0)
