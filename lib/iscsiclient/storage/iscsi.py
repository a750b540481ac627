# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
iSCSI records reported by iscsiadm, and helpers for addressing portals and
sessions.
"""

import logging
import re

from collections import namedtuple

from iscsiclient.common.network import address

DEFAULT_PORT = 3260

DEVICE_PATH_FORMAT = "/dev/disk/by-path/ip-{host}:{port}-iscsi-{iqn}-lun-{lun}"

# Never equal to a portal printed by iscsiadm, used when a hostname cannot be
# resolved so empty values do not match sessions with an empty portal.
_UNRESOLVED = "--------------------------------------"

log = logging.getLogger("storage.iscsi")


Iface = namedtuple(
    "Iface",
    "iface_name, transport_name, hwaddress, ipaddress, net_ifacename, "
    "initiatorname")


class IscsiPortal(namedtuple("IscsiPortal", "host, port")):
    """
    Represents transport (TCP) address like defined in rfc 3721 or
    Network Portal of rfc 3720.

    The host of an IPv6 portal parsed from "[addr]:port" keeps its brackets.
    """
    def __str__(self):
        return address.hosttail_join(self.host, str(self.port))

    @property
    def address(self):
        """
        The host without IPv6 brackets.
        """
        return address.strip_brackets(self.host)

    def is_ipv6(self):
        return ":" in self.host


class IscsiTarget(namedtuple(
        "IscsiTarget", "portal, target_portal_group_tag, iqn, target")):
    """
    A target record reported by sendtargets discovery.
    """
    def __str__(self):
        return "%s,%s %s:%s" % (
            self.portal, self.target_portal_group_tag, self.iqn, self.target)


# portal is the raw string printed by iscsiadm, including IPv6 brackets.
IscsiSessionSummary = namedtuple(
    "IscsiSessionSummary",
    "protocol, id, portal, target_portal_group_tag, iqn")


def parse_portal(portal):
    """
    Parse a portal string in the format "host:port", "[ipv6]:port" or "host"
    into an IscsiPortal. The port defaults to 3260.

    No validation is done; malformed input degrades to a best-effort split.
    """
    portal = portal.strip()
    port = None

    if portal.startswith("["):
        end = portal.find("]")
        if end == -1:
            host = portal
        else:
            host = portal[:end + 1]
            # Skip the ":" separator following the closing bracket.
            port = portal[end + 2:]
    else:
        host, sep, tail = portal.rpartition(":")
        if sep:
            port = tail
        else:
            host = portal

    return IscsiPortal(host, _parse_port(port))


def _parse_port(port):
    if not port:
        return DEFAULT_PORT
    match = re.match(r"\s*(\d+)", port)
    if match is None:
        return DEFAULT_PORT
    return int(match.group(1))


def device_path(portal, iqn, lun, resolve=None):
    """
    Return the /dev/disk/by-path path of the device exposed by lun of target
    iqn, logged in via portal.

    If resolve is specified and the portal host is not an IP address, the
    host is replaced by the address returned by resolve(host). If the host
    cannot be resolved, the host is used as is.
    """
    parsed = parse_portal(portal)
    host = parsed.address
    if resolve is not None and not address.is_ip_address(host):
        host = resolve(host) or host
    return DEVICE_PATH_FORMAT.format(
        host=host, port=parsed.port, iqn=iqn, lun=lun)


def find_session(sessions, iqn, portal, resolve=None):
    """
    Find the session logged in to target iqn via portal.

    A session matches if its printed portal is the portal argument itself,
    or any of "host:port", "ip:port", "[host]:port", "[ip]:port", where ip is
    the address returned by resolve(host) when host is not an IP address.

    Arguments:
        sessions (iterable): IscsiSessionSummary records, in listing order.
        iqn (str): target name.
        portal (str): portal as given by the caller.
        resolve (callable): resolve a hostname to an IP address string,
            returning None if the name cannot be resolved.

    Returns:
        The first matching IscsiSessionSummary, or None.
    """
    parsed = parse_portal(portal)

    ip = None
    if parsed.host and resolve is not None:
        if not address.is_ip_address(parsed.address):
            ip = resolve(parsed.address)
            if not ip:
                log.debug("Cannot resolve portal host %r", parsed.host)

    if not ip:
        ip = _UNRESOLVED

    candidates = {
        portal,
        "%s:%s" % (parsed.host, parsed.port),
        "%s:%s" % (ip, parsed.port),
        "[%s]:%s" % (parsed.host, parsed.port),
        "[%s]:%s" % (ip, parsed.port),
    }

    for session in sessions:
        if session.iqn == iqn and session.portal in candidates:
            return session

    return None
