# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Parser for "iscsiadm -m session -P 3" output.

The output groups sessions by target. Every session starts with a
"Current Portal:" line and contains sections introduced by a header made of
a star line, the section name, and another star line:

    iSCSI Transport Class version 2.0-870
    version 2.1.8
    Target: iqn.2003-01.org.example:target1 (non-flash)
            Current Portal: 10.0.0.5:3260,1
            Persistent Portal: 10.0.0.5:3260,1
                    **********
                    Interface:
                    **********
                    Iface Name: default
                    ...
                    ************************
                    Attached SCSI devices:
                    ************************
                    Host Number: 3  State: running
                    scsi3 Channel 00 Id 0 Lun: 0
                            Attached scsi disk sdb          State: running
"""

import logging
import re

from collections import namedtuple

from iscsiclient.storage.exception import MalformedOutput

# Parser states.
TOP_LEVEL = "top-level"
IN_SECTION = "in-section"
IN_DEVICE_SUBBLOCK = "in-device-subblock"

# Well known section names, after normalization.
INTERFACE = "interface"
TIMEOUTS = "timeouts"
CHAP = "chap"
NEGOTIATED_ISCSI_PARAMS = "negotiated_iscsi_params"
ATTACHED_SCSI_DEVICES = "attached_scsi_devices"

_BANNER_LINES = 2

_STATE = re.compile(r"State:\s*(.*)$")

log = logging.getLogger("storage.sessiondump")

ScsiHost = namedtuple("ScsiHost", "number, state, devices")

ScsiDevice = namedtuple(
    "ScsiDevice", "channel, id, lun, attached_scsi_disk, state")


class SessionDetail(object):
    """
    Details of a single iSCSI session.

    Top level fields are kept in the fields dict, keyed by normalized name
    (e.g. "current_portal"). Sections are kept in the sections dict, keyed by
    normalized section name. Well known sections are available as properties,
    returning None if the tool did not report them.
    """

    def __init__(self, fields=None, sections=None):
        self.fields = fields if fields is not None else {}
        self.sections = sections if sections is not None else {}

    @property
    def target(self):
        return self.fields.get("target")

    @property
    def id(self):
        """
        The session id reported in the interface section, or None.
        """
        interface = self.interface
        if interface is None:
            return None
        return interface.get("sid")

    @property
    def current_portal(self):
        return self.fields.get("current_portal")

    @property
    def persistent_portal(self):
        return self.fields.get("persistent_portal")

    @property
    def interface(self):
        return self.sections.get(INTERFACE)

    @property
    def timeouts(self):
        return self.sections.get(TIMEOUTS)

    @property
    def chap(self):
        return self.sections.get(CHAP)

    @property
    def negotiated_iscsi_params(self):
        return self.sections.get(NEGOTIATED_ISCSI_PARAMS)

    @property
    def attached_scsi_devices(self):
        return self.sections.get(ATTACHED_SCSI_DEVICES)

    @property
    def host(self):
        devices = self.attached_scsi_devices
        if devices is None:
            return None
        return devices.get("host")

    @property
    def devices(self):
        host = self.host
        if host is None:
            return []
        return host.devices

    def __getitem__(self, key):
        if key in self.fields:
            return self.fields[key]
        return self.sections[key]

    def __contains__(self, key):
        return key in self.fields or key in self.sections

    def to_dict(self):
        """
        Return the session as plain nested dicts and lists.
        """
        res = dict(self.fields)
        for name, section in self.sections.items():
            section = dict(section)
            host = section.get("host")
            if isinstance(host, ScsiHost):
                section["host"] = {
                    "number": host.number,
                    "state": host.state,
                    "devices": [d._asdict() for d in host.devices],
                }
            res[name] = section
        return res

    def __repr__(self):
        return "<SessionDetail target=%r current_portal=%r>" % (
            self.target, self.current_portal)


class LineCursor(object):
    """
    Cursor over a list of lines.
    """

    def __init__(self, lines):
        self._lines = lines
        self._pos = 0

    def done(self):
        return self._pos >= len(self._lines)

    def peek(self, offset=0):
        """
        Return the line offset lines ahead without consuming it, or None at
        the end of input.
        """
        pos = self._pos + offset
        if pos < len(self._lines):
            return self._lines[pos]
        return None

    def advance(self):
        """
        Consume and return the current line, or None at the end of input.
        """
        line = self.peek()
        if line is not None:
            self._pos += 1
        return line

    def consume_while(self, predicate):
        lines = []
        while not self.done() and predicate(self.peek()):
            lines.append(self.advance())
        return lines


def parse(out):
    """
    Parse iscsiadm detailed session output.

    Returns:
        list of SessionDetail, in the order reported by iscsiadm.

    Raises:
        MalformedOutput if a line cannot be parsed.
    """
    lines = out.strip().splitlines()[_BANNER_LINES:]
    return [_parse_session(group) for group in _group_sessions(lines)]


def _group_sessions(lines):
    """
    Split lines into groups, one per session. Every group starts with the
    "Target:" line of the session target, followed by the session
    "Current Portal:" line.
    """
    target = None
    group = []

    for line in lines:
        if line.startswith("Target:"):
            target = line
        elif line.strip().startswith("Current Portal:"):
            if group:
                yield group
            group = [target, line]
        elif group:
            group.append(line)
        elif line.strip():
            log.debug("Ignoring line outside of session: %r", line)

    if group:
        yield group


def _parse_session(lines):
    if lines[0] is None:
        raise MalformedOutput(lines[1], "session without target")

    session = SessionDetail()
    cursor = LineCursor(lines)
    state = TOP_LEVEL
    section = None

    while True:
        cursor.consume_while(_is_blank)
        if cursor.done():
            break

        line = cursor.peek().strip()

        if _is_section_header(line):
            section = _read_section_header(cursor)
            session.sections.setdefault(section, {})
            state = IN_SECTION
            continue

        if state == IN_DEVICE_SUBBLOCK:
            if line.startswith("scsi"):
                host = session.sections[section]["host"]
                host.devices.append(_read_device(cursor))
                continue
            state = IN_SECTION

        cursor.advance()
        name, value = _split_field(line)

        if state == TOP_LEVEL:
            key = _normalize(name)
            if key == "target":
                # Drop the annotation, e.g. "iqn... (non-flash)".
                value = value.split(" ")[0]
            session.fields[key] = value
        elif section == ATTACHED_SCSI_DEVICES and \
                _normalize(name) == "host_number":
            session.sections[section]["host"] = _parse_host(value)
            state = IN_DEVICE_SUBBLOCK
        elif section == NEGOTIATED_ISCSI_PARAMS:
            session.sections[section][_snake_case(name)] = value
        else:
            session.sections[section][_normalize(name)] = value

    return session


def _is_blank(line):
    return not line.strip()


def _is_section_header(line):
    return set(line) == {"*"}


def _read_section_header(cursor):
    cursor.advance()
    name = cursor.advance()
    if name is None or not name.strip():
        raise MalformedOutput(name, "missing section name")
    if cursor.peek() is not None and _is_section_header(cursor.peek().strip()):
        cursor.advance()
    return _normalize(name.strip().rstrip(":"))


def _read_device(cursor):
    """
    Read a device sub block:

        scsi3 Channel 00 Id 0 Lun: 0
                Attached scsi disk sdb          State: running

    The second line may be missing; in this case the disk and state are
    empty.
    """
    line = cursor.advance().strip()
    fields = line.split()
    if len(fields) < 7:
        raise MalformedOutput(line, "expecting 7 device fields")

    disk = ""
    state = ""
    next_line = cursor.peek()
    if next_line is not None and \
            next_line.strip().startswith("Attached scsi disk"):
        cursor.advance()
        disk_fields = next_line.split()
        if len(disk_fields) > 3:
            disk = disk_fields[3]
        state = _parse_state(next_line)
    else:
        log.debug("Device %r has no attached disk line", line)

    return ScsiDevice(
        channel=fields[2],
        id=fields[4],
        lun=fields[6],
        attached_scsi_disk=disk,
        state=state)


def _parse_host(value):
    # "3\tState: running"
    fields = value.split()
    if not fields:
        raise MalformedOutput(value, "missing host number")
    return ScsiHost(number=fields[0], state=_parse_state(value), devices=[])


def _parse_state(text):
    match = _STATE.search(text)
    if match is None:
        return ""
    return match.group(1).strip()


def _split_field(line):
    name, sep, value = line.partition(":")
    if not sep:
        raise MalformedOutput(line, "expecting 'key: value'")
    return name.strip(), value.strip()


def _normalize(name):
    """
    Convert a name printed by iscsiadm to a key:

        "iSCSI Connection State" -> "iscsi_connection_state"
    """
    return re.sub(r"\W", "", name.strip().replace(" ", "_")).lower()


def _snake_case(name):
    """
    Convert a camel case name to snake case:

        "MaxRecvDataSegmentLength" -> "max_recv_data_segment_length"
    """
    key = re.sub(r"\W", "", name.strip().replace(" ", "_"))
    key = key[:1].lower() + key[1:]
    return re.sub(r"[A-Z]", lambda m: "_" + m.group(0).lower(), key).lower()
