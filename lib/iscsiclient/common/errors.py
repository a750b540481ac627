# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
errors - iscsiclient internal errors

This module provides the base class for iscsiclient errors. Errors define a
msg template formatted with the error instance when converted to string.
"""


class Base(Exception):
    msg = "Base class for iscsiclient errors"

    def __str__(self):
        return self.msg.format(self=self)
