# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

from contextlib import contextmanager
import logging
import subprocess

from iscsiclient.common import cmdutils

log = logging.getLogger("common.commands")


def start(args, stdin=None, stdout=None, stderr=None, cwd=None, env=None):
    """
    Starts a command and return it. The caller is responsible for communicating
    with the commmand, waiting for it, and if needed, terminating it.

    args are always logged when command starts.

    Arguments:
        args (list): Command arguments
        stdin (file or int): file object or descriptor for sending data to the
            child process stdin.
        stdout (file or int): file object or descriptor for receiving data from
            the child process stdout.
        stderr (file or int): file object or descriptor for receiving data from
            the child process stderr.
        cwd (str): working directory for the child process
        env (dict): environment of the new child process

    Returns:
        subprocess.Popen instance.

    Raises:
        OSError if the command could not start.
    """
    log.debug(cmdutils.command_log_line(args, cwd=cwd))

    return subprocess.Popen(
        [str(a) for a in args],
        cwd=cwd,
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        env=env)


def communicate(proc, input=None, timeout=None):
    """
    A wrapper for subprocess.communicate() which waits for process to be
    finished and logs the returned code (and error output if any).

    The process is always terminated and reaped when this returns or raises,
    so a timed out command never leaves a zombie behind.

    Arguments:
        proc: subprocess.Popen instance.
        input (bytes): input data to be sent to the child process, or None, if
            no data should be sent to the process.
        timeout (float): seconds to wait for the process, None to wait
            forever.

    Returns:
        Tuple of process standard output and error output.

    Raises:
        cmdutils.TimeoutExpired if the process did not terminate in time.
    """
    with terminating(proc):
        try:
            out, err = proc.communicate(input, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise cmdutils.TimeoutExpired(proc.args, timeout)

    log.debug(cmdutils.retcode_log_line(proc.returncode, err=err))

    return out, err


class TerminatingFailure(Exception):

    msg = "Failed to terminate process {self.pid}: {self.error}"

    def __init__(self, pid, error):
        self.pid = pid
        self.error = error

    def __str__(self):
        return self.msg.format(self=self)


def terminate(proc):
    try:
        if proc.poll() is None:
            log.debug('Terminating process pid=%d', proc.pid)
            proc.kill()
            proc.wait()
    except Exception as e:
        raise TerminatingFailure(proc.pid, e)


@contextmanager
def terminating(proc):
    try:
        yield proc
    finally:
        terminate(proc)
