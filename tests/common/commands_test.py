# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import logging
import subprocess

from unittest import mock

import pytest

from iscsiclient.common import cmdutils
from iscsiclient.common import commands


class TestStart:

    def test_true(self):
        p = commands.start(["true"])
        out, err = p.communicate()
        assert p.returncode == 0
        assert out is None
        assert err is None

    def test_out_err(self):
        p = commands.start(
            ["sh", "-c", "printf out; printf err >&2"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)
        out, err = p.communicate()
        assert out == b"out"
        assert err == b"err"

    def test_start_nonexisting(self):
        with pytest.raises(OSError):
            commands.start(["doesn't exist"])

    def test_start_should_log_args(self, caplog):
        caplog.set_level(logging.DEBUG, logger="common.commands")
        p = commands.start(["true"], cwd="/")
        p.wait()
        assert "true (cwd /)" in caplog.messages


class TestCommunicate:

    def test_out(self):
        p = commands.start(
            ["sh", "-c", "printf out; printf err >&2; exit 3"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)
        out, err = commands.communicate(p)
        assert p.returncode == 3
        assert out == b"out"
        assert err == b"err"

    def test_input(self):
        p = commands.start(
            ["cat"],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE)
        out, _ = commands.communicate(p, input=b"data")
        assert out == b"data"

    def test_timeout(self):
        p = commands.start(
            ["sleep", "10"],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)

        with pytest.raises(cmdutils.TimeoutExpired) as e:
            commands.communicate(p, timeout=0.2)

        assert e.value.timed_out
        assert e.value.timeout == 0.2
        assert e.value.cmd == ["sleep", "10"]
        # Killed and reaped.
        assert p.returncode is not None

    def test_log_retcode(self, caplog):
        caplog.set_level(logging.DEBUG, logger="common.commands")
        p = commands.start(
            ["false"], stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        commands.communicate(p)
        assert "FAILED: <err> = b''; <rc> = 1" in caplog.messages


class TestTerminating:

    def test_terminate_running(self):
        p = commands.start(["sleep", "10"])
        with commands.terminating(p):
            pass
        assert p.returncode is not None

    def test_terminate_exited(self):
        p = commands.start(["true"])
        p.wait()
        with commands.terminating(p):
            pass
        assert p.returncode == 0

    def test_terminate_failure(self):
        p = mock.Mock(pid=42)
        p.poll.return_value = None
        p.kill.side_effect = OSError("no permission")
        with pytest.raises(commands.TerminatingFailure) as e:
            commands.terminate(p)
        assert e.value.pid == 42
