# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Common fixtures that can be used without importing anything.
"""

import pytest


@pytest.fixture
def fake_executable(tmp_path):
    """
    Prepares shell script which can be used to fake iscsiadm in tests.
    Typical usage is to write the fake output and exit code to the script.
    """
    path = tmp_path / "fake-executable"
    path.touch()
    path.chmod(0o755)

    return path
