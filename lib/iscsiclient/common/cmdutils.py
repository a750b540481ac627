# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import os
import re

from iscsiclient.common import errors

_SUDO_NON_INTERACTIVE_FLAG = "-n"


def command_log_line(args, cwd=None):
    return "{0} (cwd {1})".format(_list2cmdline(args), cwd)


def retcode_log_line(code, err=None):
    result = "SUCCESS" if code == 0 else "FAILED"
    return "{0}: <err> = {1!r}; <rc> = {2!r}".format(result, err, code)


def _list2cmdline(args):
    """
    Convert argument list to string for logging. The purpose of this log is
    make it easy to run iscsiadm commands in the shell for debugging.
    """
    parts = []
    for arg in args:
        arg = str(arg)
        if _needs_quoting(arg) or arg == '':
            arg = "'" + arg.replace("'", r"'\''") + "'"
        parts.append(arg)
    return ' '.join(parts)


# This function returns truthy value if its argument contains unsafe characters
# for including in a command passed to the shell. The safe characters were
# stolen from pipes._safechars.
_needs_quoting = re.compile(r'[^A-Za-z0-9_%+,\-./:=@\[\]]').search


class Error(errors.Base):
    msg = ("Command {self.cmd} failed with rc={self.rc} out={self.out!r} "
           "err={self.err!r}")

    # A command that timed out may have completed its work; callers must
    # treat it as unknown outcome.
    timed_out = False

    def __init__(self, cmd, rc, out, err):
        self.cmd = cmd
        self.rc = rc
        self.out = out
        self.err = err


class TimeoutExpired(Error):
    msg = ("Command {self.cmd} timed out after {self.timeout} seconds "
           "out={self.out!r} err={self.err!r}")

    timed_out = True

    def __init__(self, cmd, timeout, out="", err=""):
        super().__init__(cmd, None, out, err)
        self.timeout = timeout


def sudo(cmd, sudo_path):
    if os.geteuid() == 0:
        return cmd
    command = [sudo_path, _SUDO_NON_INTERACTIVE_FLAG]
    command.extend(cmd)
    return command
