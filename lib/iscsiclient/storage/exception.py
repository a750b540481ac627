# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Errors raised by the iscsiadm client.

Process failures are not wrapped; they are raised as
iscsiclient.common.cmdutils.Error, keeping the command, exit code, and
output.
"""


class IscsiError(RuntimeError):
    pass


class MalformedOutput(IscsiError):
    msg = "Malformed iscsiadm output: {self.reason}: {self.line!r}"

    def __init__(self, line, reason):
        self.line = line
        self.reason = reason

    def __str__(self):
        return self.msg.format(self=self)


class InvalidSessionId(IscsiError):
    msg = "Invalid iSCSI session id: {self.session_id!r}"

    def __init__(self, session_id):
        self.session_id = session_id

    def __str__(self):
        return self.msg.format(self=self)
