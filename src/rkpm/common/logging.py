"""Logging initialisation code for the rkpm tools."""

import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path

__author__ = "ft"

LOG_FORMAT = "%(asctime)s: %(name)s: %(levelname)s %(message)s"
SYSLOG_FORMAT = "rkpm[%(process)d]: %(name)s: %(levelname)s %(message)s"

# Libraries that log every HTTP connection at DEBUG level
NOISY_LOGGERS = ["urllib3", "requests"]


def get_logger(
    progname: str,
    debug: bool = False,
    syslog: bool = False,
    logdir: Path | None = None,
) -> logging.Logger:
    """
    Initialize logging for a command line tool and return the logger for `progname'.

    :param debug: Log at DEBUG level, including HTTP connection details
    :param syslog: Also send log records to the local syslog daemon
    :param logdir: If set, also write a log file for this run in this directory
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, stream=sys.stderr, format=LOG_FORMAT)
    root = logging.getLogger()
    # Keep stderr quiet when running from cron or a service manager
    if not sys.stderr.isatty() and not debug:
        for this_h in root.handlers:
            this_h.setLevel(logging.WARNING)
    if not debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    if syslog:
        syslog_h = logging.handlers.SysLogHandler(address="/dev/log")
        syslog_h.setFormatter(logging.Formatter(SYSLOG_FORMAT))
        root.addHandler(syslog_h)
    if logdir is not None:
        filename = logdir / f"{progname}-{time.strftime('%Y%m%d-%H%M%S')}-{os.getpid()}.log"
        file_h = logging.FileHandler(filename)
        file_h.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_h)
    return logging.getLogger(progname)
