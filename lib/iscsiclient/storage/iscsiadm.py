# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
iscsiadm client. Runs iscsiadm management commands and parses their output.
"""

import functools
import logging
import re
import subprocess

from iscsiclient.common import cmdutils
from iscsiclient.common import commands
from iscsiclient.common import function
from iscsiclient.common.config import config
from iscsiclient.common.network import address
from iscsiclient.storage import iscsi
from iscsiclient.storage import sessiondump
from iscsiclient.storage.exception import (
    InvalidSessionId,
    IscsiError,  # NOQA: F401 (re-exported)
    MalformedOutput,
)

log = logging.getLogger("storage.iscsiadm")

# iscsiadm exit statuses
ISCSI_ERR_SESS_EXISTS = 15
ISCSI_ERR_OBJECT_NOT_FOUND = 21

# Reported when another iscsiadm process modifies the node database at the
# same time. https://bugzilla.redhat.com/884427
ISCSI_ERR_DATABASE_FAILURE = (
    "Could not execute operation on all records: encountered iSCSI database "
    "failure")

# iscsiadm placeholder for unset values.
EMPTY = "<empty>"

_SESSION_ID = re.compile(r"[0-9]+")


class IscsiadmRunner(object):
    """
    Run iscsiadm, decode the output, and raise cmdutils.Error on failures.

    Subclasses may override _run_command to replace process execution.
    """

    def __init__(self, iscsiadm=None, sudo=None, use_sudo=None, timeout=None):
        if iscsiadm is None:
            iscsiadm = config.get("iscsi", "iscsiadm")
        if sudo is None:
            sudo = config.get("iscsi", "sudo")
        if use_sudo is None:
            use_sudo = config.getboolean("iscsi", "use_sudo")
        if timeout is None:
            timeout = config.getfloat("iscsi", "timeout")
        self.iscsiadm = iscsiadm
        self.sudo = sudo
        self.use_sudo = use_sudo
        self.timeout = timeout

    def run(self, args, timeout=None):
        """
        Run iscsiadm with args.

        Returns:
            Command output (str).

        Raises:
            cmdutils.Error if iscsiadm failed. The error keeps the command,
                exit code, and decoded output.
            cmdutils.TimeoutExpired if iscsiadm did not terminate in time.
                The outcome of the operation is unknown in this case.
        """
        cmd = [self.iscsiadm] + list(args)
        if self.use_sudo:
            cmd = cmdutils.sudo(cmd, self.sudo)

        if timeout is None:
            timeout = self.timeout

        rc, out, err = self._run_command(cmd, timeout)

        out = out.decode("utf-8")
        err = err.decode("utf-8")

        if rc != 0:
            raise cmdutils.Error(cmd, rc, out, err)

        if err:
            log.warning("Command %s succeeded with warnings: %s", cmd, err)

        return out

    def _run_command(self, cmd, timeout):
        p = commands.start(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)
        out, err = commands.communicate(p, timeout=timeout)
        return p.returncode, out, err


class Iscsiadm(object):
    """
    iscsiadm operations.

    Arguments:
        runner (IscsiadmRunner): runs iscsiadm commands. If not specified, a
            runner using the configured defaults is created.
        resolve (callable): resolve a hostname to an IP address string,
            returning None on failure. Used when matching session portals
            and building device paths.
        update_retries (int): attempts for node record updates.
        update_retry_delay (float): seconds to wait between update attempts.
    """

    def __init__(self, runner=None, resolve=address.resolve_hostname,
                 update_retries=None, update_retry_delay=None):
        if runner is None:
            runner = IscsiadmRunner()
        if update_retries is None:
            update_retries = config.getint("iscsi", "update_retries")
        if update_retry_delay is None:
            update_retry_delay = config.getfloat(
                "iscsi", "update_retry_delay")
        self._runner = runner
        self._resolve = resolve
        self._update_retries = update_retries
        self._update_retry_delay = update_retry_delay

    # Interfaces

    def iface_list(self):
        """
        iscsiadm -m iface -o show
        """
        out = self._runner.run(["-m", "iface", "-o", "show"])
        return parse_iface_list(out)

    def iface_info(self, name):
        """
        iscsiadm -m iface -o show -I <name>
        """
        out = self._runner.run(["-m", "iface", "-o", "show", "-I", name])
        return parse_iface_info(out)

    def iface_exists(self, name):
        for iface in self.iface_list():
            if name == iface.iface_name:
                return True

        return False

    # Node database

    def node_new(self, iqn, portal, attributes=None):
        """
        Create a node record and set its attributes one by one.

        iscsiadm -m node -T <iqn> -p <portal> -o new
        """
        self._runner.run(
            ["-m", "node", "-T", iqn, "-p", portal, "-o", "new"])

        if attributes:
            for name, value in attributes.items():
                self.node_update(iqn, portal, name, value)

    def node_update(self, iqn, portal, name, value):
        """
        Update a node record attribute, retrying on transient database
        failures. Boolean values are sent as "true" or "false".

        iscsiadm -m node -T <iqn> -p <portal> -o update --name <n> --value <v>
        """
        args = ["-m", "node", "-T", iqn, "-p", portal, "-o", "update",
                "--name", name, "--value", _node_value(value)]

        function.retry(
            functools.partial(self._runner.run, args),
            expectedException=cmdutils.Error,
            tries=self._update_retries,
            sleep=self._update_retry_delay,
            predicate=is_database_failure)

    def node_delete(self, iqn, portal):
        """
        iscsiadm -m node -T <iqn> -p <portal> -o delete
        """
        self._runner.run(
            ["-m", "node", "-T", iqn, "-p", portal, "-o", "delete"])

    # Sessions

    def session_list(self):
        """
        iscsiadm -m session

        Returns empty list if there are no active sessions.
        """
        out = self._run_session_query(["-m", "session"])
        return parse_session_list(out)

    def session_details(self):
        """
        iscsiadm -m session -P 3

        Returns empty list if there are no active sessions.
        """
        out = self._run_session_query(["-m", "session", "-P", "3"])
        if not out.strip():
            return []
        return sessiondump.parse(out)

    def find_session(self, iqn, portal):
        """
        Return the active session logged in to target iqn via portal, or None.
        """
        return iscsi.find_session(
            self.session_list(), iqn, portal, resolve=self._resolve)

    def _run_session_query(self, args):
        try:
            return self._runner.run(args)
        except cmdutils.Error as e:
            if e.rc != ISCSI_ERR_OBJECT_NOT_FOUND:
                raise
            log.debug("No active iSCSI sessions")
            return e.out or ""

    # Discovery

    def discover(self, portal):
        """
        iscsiadm -m discovery -t sendtargets -p <portal>
        """
        out = self._runner.run(
            ["-m", "discovery", "-t", "sendtargets", "-p", portal])
        return parse_discovery(out)

    # Login and logout

    def node_login(self, iqn, portal):
        """
        iscsiadm -m node -T <iqn> -p <portal> -l

        Logging in to a target with an active session succeeds.
        """
        try:
            self._runner.run(["-m", "node", "-T", iqn, "-p", portal, "-l"])
        except cmdutils.Error as e:
            if e.rc != ISCSI_ERR_SESS_EXISTS:
                raise
            log.warning("Session exists for target %s portal %s: %s",
                        iqn, portal, e)
        return True

    def node_logout(self, iqn, portals):
        """
        iscsiadm -m node -T <iqn> -p <portal> -u

        portals may be a single portal or a list of portals. Portals without
        an active session are skipped. Any other error stops the logout and is
        raised to the caller.
        """
        if isinstance(portals, str):
            portals = [portals]

        for portal in portals:
            try:
                self._runner.run(
                    ["-m", "node", "-T", iqn, "-p", portal, "-u"])
            except cmdutils.Error as e:
                if e.rc != ISCSI_ERR_OBJECT_NOT_FOUND:
                    raise
                log.debug("No session for target %s portal %s", iqn, portal)

        return True

    def session_rescan(self, session):
        """
        iscsiadm -m session -r <sid> --rescan

        session may be a session id, an IscsiSessionSummary, or a
        SessionDetail.
        """
        sid = session_id(session)
        self._runner.run(["-m", "session", "-r", str(sid), "--rescan"])
        return True

    # Devices

    def device_path(self, portal, iqn, lun, resolve_host=False):
        resolve = self._resolve if resolve_host else None
        return iscsi.device_path(portal, iqn, lun, resolve=resolve)


def is_database_failure(e):
    return ISCSI_ERR_DATABASE_FAILURE in (e.err or "")


def session_id(session):
    """
    Return the id of session, which may be an id or a session record
    (IscsiSessionSummary or sessiondump.SessionDetail). The id must be a
    non-negative integer.
    """
    sid = getattr(session, "id", session)

    if isinstance(sid, str) and _SESSION_ID.fullmatch(sid):
        sid = int(sid)

    if isinstance(sid, bool) or not isinstance(sid, int) or sid < 0:
        raise InvalidSessionId(sid)

    return sid


def parse_iface_list(out):
    """
    Parse "iscsiadm -m iface" output:

        <iface_name> <transport_name>,<hwaddress>,<ipaddress>,\
<net_ifacename>,<initiatorname>
    """
    res = []
    for line in out.strip().splitlines():
        if not line.strip():
            continue

        fields = line.split(" ")
        if len(fields) < 2:
            raise MalformedOutput(line, "expecting 2 fields")

        values = fields[1].split(",")
        if len(values) < 5:
            raise MalformedOutput(line, "expecting 5 interface values")

        res.append(iscsi.Iface._make(
            [fields[0], values[0]] +
            [_iscsi_value(v) for v in values[1:5]]))

    return res


def parse_iface_info(out):
    """
    Parse "iscsiadm -m iface -I <name>" output:

        # BEGIN RECORD 2.1.8
        iface.iscsi_ifacename = default
        iface.net_ifacename = <empty>
        ...
    """
    res = {}
    for line in out.strip().splitlines():
        if not line.strip() or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        if not sep:
            raise MalformedOutput(line, "expecting 'key = value'")

        res[key.strip()] = _iscsi_value(value.strip())

    return res


def parse_discovery(out):
    """
    Parse "iscsiadm -m discovery -t sendtargets" output:

        <portal>,<tpgt> <iqn>:<target_name>
    """
    res = []
    for line in out.strip().splitlines():
        if not line.strip():
            continue

        fields = line.split()
        if len(fields) < 2:
            raise MalformedOutput(line, "expecting 2 fields")

        portal, sep, tpgt = fields[0].rpartition(",")
        if not sep:
            raise MalformedOutput(line, "expecting 'portal,tpgt'")

        iqn, _, target = fields[1].partition(":")

        res.append(iscsi.IscsiTarget(
            portal=portal,
            target_portal_group_tag=tpgt,
            iqn=iqn,
            target=target or None))

    return res


def parse_session_list(out):
    """
    Parse "iscsiadm -m session" output:

        <protocol>: [<id>] <portal>,<tpgt> <iqn> [(non-flash)]

    For example:

        tcp: [111] [2001:123:456::1]:3260,1 iqn.2005-10.org.freenas.ctl:x
    """
    res = []
    seen = set()
    for line in out.strip().splitlines():
        if not line.strip():
            continue

        fields = line.split(" ")
        if len(fields) < 4:
            raise MalformedOutput(line, "expecting 4 fields")

        protocol = line.split(":", 1)[0]

        sid = fields[1].replace("[", "").replace("]", "")
        if not _SESSION_ID.fullmatch(sid):
            raise MalformedOutput(line, "invalid session id")
        sid = int(sid)
        if sid in seen:
            raise MalformedOutput(line, "duplicate session id")
        seen.add(sid)

        portal, sep, tpgt = fields[2].rpartition(",")
        if not sep:
            raise MalformedOutput(line, "expecting 'portal,tpgt'")

        res.append(iscsi.IscsiSessionSummary(
            protocol=protocol,
            id=sid,
            portal=portal,
            target_portal_group_tag=tpgt,
            iqn=fields[3].strip()))

    return res


def _iscsi_value(value):
    return None if value == EMPTY else value


def _node_value(value):
    # iscsiadm boolean settings are lower case.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)

