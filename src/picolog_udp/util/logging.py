# -*- coding: utf-8 -*-
"""
Loguru sink management for picolog_udp.

The receive and keepalive loops log from background threads, so every sink is
added with `enqueue=True`.
"""

import os
import sys
import traceback

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG, USER_DIR


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def start_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if log_path is None or log_path == "":
        log_path = log_default_path()
    else:
        log_path = os.path.abspath(log_path)

    if clear_prev:
        clear_log(log_path)

    # first remove (default) stderr output
    logger.remove()

    if log_to_file:
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
        logger.our_naughty_log_path_attr = log_path
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
    if log_to_file:
        logger.info("Session log started at {}", log_path)
    else:
        logger.info("Session log started.")


def log_default_path() -> str:
    return str(USER_DIR.joinpath("session.log"))


def clear_log(log_path: str):
    """
    Clear the log file at the given path. Missing files are ignored.

    Arguments
    ---------
    log_path : str
        The path to the log file. Can get the default path with
        log_default_path().
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                f"Could not clear log file {log_path}. Permission denied. Continuing."
            )


def shutdown_log():
    try:
        logger.info("Closing down session log.")
        logger.remove()
    except Exception:
        logger.exception("Error shutting down session log - skipping.")
    if hasattr(logger, "our_naughty_log_path_attr"):
        del logger.our_naughty_log_path_attr


def get_log_filename() -> str:
    """Finds the log filename."""
    if hasattr(logger, "our_naughty_log_path_attr"):
        return logger.our_naughty_log_path_attr
    else:
        return ""
