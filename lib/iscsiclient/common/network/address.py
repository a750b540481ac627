# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import ipaddress
import logging
import socket

log = logging.getLogger("common.network")


def hosttail_join(host, tail):
    """
    Given a host and a tail, this method returns:
    - "[host]:tail" if the host contains at least one colon,
                    for example when the host is an IPv6 address.
    - "host:tail"   otherwise

    The tail part may be a port or a path (for mount points).
    """
    if ':' in host and not host.startswith('['):
        host = '[' + host + ']'
    return host + ':' + tail


def strip_brackets(host):
    return host.replace('[', '').replace(']', '')


def is_ip_address(addr):
    """
    Return True if addr is a literal IPv4 or IPv6 address. IPv6 addresses
    must not be surrounded by brackets.
    """
    try:
        ipaddress.ip_address(addr)
    except ValueError:
        return False
    return True


def resolve_hostname(hostname):
    """
    Resolve hostname to an IP address string, preferring the first address
    returned by the system resolver. IPv6 addresses are returned without
    brackets.

    Returns None if the name cannot be resolved.
    """
    try:
        infos = socket.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        log.debug("Cannot resolve %r: %s", hostname, e)
        return None

    for family, _, _, _, sockaddr in infos:
        if family in (socket.AF_INET, socket.AF_INET6):
            return sockaddr[0]

    return None
