# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import logging
import time

log = logging.getLogger("common.function")


def retry(func, expectedException=Exception, tries=None, sleep=1,
          predicate=None):
    """
    Retry a function. Wraps the retry logic so you don't have to
    implement it each time you need it.

    :param func: The callable to run.
    :param expectedException: The exception you expect to receive when the
                              function fails.
    :param tries: The number of times to try. None, 0 or -1 means infinite.
    :param sleep: Time to sleep between calls in seconds.
    :param predicate: A function receiving the raised exception, returning
                      True if the failure is transient and the call should be
                      retried. If None, every expected exception is retried.

    The last exception is raised unchanged when the failure is not transient
    or when all tries were used.
    """
    if tries in [0, None]:
        tries = -1

    attempt = 0

    while True:
        tries -= 1
        attempt += 1
        try:
            return func()
        except expectedException as e:
            if tries == 0:
                raise

            if predicate is not None and not predicate(e):
                raise

            log.warning("Attempt %d failed with transient error, retrying "
                        "in %s seconds: %s", attempt, sleep, e)
            time.sleep(sleep)
