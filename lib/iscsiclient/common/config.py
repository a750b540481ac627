# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
iscsiclient configuration

Defaults are declared in the parameters table below. They are overridden by
the main configuration file, and then by drop-in files:

    /etc/iscsiclient/iscsiclient.conf
    /etc/iscsiclient/iscsiclient.conf.d/*.conf
    /usr/lib/iscsiclient/iscsiclient.conf.d/*.conf
    /run/iscsiclient/iscsiclient.conf.d/*.conf

Drop-in files are read in this directory order, sorted by name within each
directory, so later files win.
"""

import configparser
import glob
import os

_SYSCONFDIR = '/etc'

_DROPPIN_BASES = ('/etc', '/usr/lib', '/run')

parameters = [
    # Section: [iscsi]
    ('iscsi', [

        ('iscsiadm', 'iscsiadm',
            'Path to the iscsiadm executable. A bare name is looked up in '
            'PATH.'),

        ('sudo', '/usr/bin/sudo',
            'Path to the sudo executable, used when use_sudo is enabled.'),

        ('use_sudo', 'false',
            'Run iscsiadm via sudo. Not needed when running as root.'),

        ('timeout', '30',
            'Default timeout in seconds for a single iscsiadm invocation. '
            'A command that times out has an unknown outcome.'),

        ('update_retries', '5',
            'Number of attempts for updating a node record when iscsiadm '
            'reports a transient database failure.'),

        ('update_retry_delay', '1.0',
            'Seconds to wait between node record update attempts.'),
    ]),
]


def set_defaults(cfg):
    for section, keylist in parameters:
        cfg.add_section(section)
        for key, value, _ in keylist:
            cfg.set(section, key, value)


def load(name):
    cfg = configparser.ConfigParser()
    set_defaults(cfg)
    cfg.read(_getConfigFiles(name))
    return cfg


def _getConfigFiles(name):
    conf = '{}.conf'.format(name)
    files = [os.path.join(_SYSCONFDIR, name, conf)]
    for base in _DROPPIN_BASES:
        pattern = os.path.join(base, name, conf + '.d', '*.conf')
        files.extend(sorted(glob.glob(pattern)))
    return files


config = load('iscsiclient')
