# -*- coding: utf-8 -*-
"""
Loguru sink management for the client (GUI/scripts) and the mock host process.
"""

import os
import pathlib
import sys
import traceback

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG, TEMP_DIR


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def _start_log(
    name: str,
    log_path: str,
    log_to_file=True,
    log_to_stdout=False,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if clear_prev:
        clear_log(log_path)

    # first remove (default) stderr output
    logger.remove()

    if log_to_file:
        pathlib.Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
        logger.our_naughty_log_path_attr = log_path
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
    if log_to_file:
        logger.info("{} log started at {}", name, log_path)
    else:
        logger.info("{} log started.", name)


def start_client_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if log_path is None or log_path == "":
        log_path = log_default_path_client()
    else:
        log_path = os.path.abspath(log_path)
    _start_log("Client", log_path, log_to_file, log_to_stdout, clear_prev, log_level)


def start_host_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    if log_path is None or log_path == "":
        log_path = log_default_path_host()
    else:
        log_path = os.path.abspath(log_path)
    _start_log("Host", log_path, log_to_file, log_to_stdout, clear_prev, log_level)


def log_default_path_client() -> str:
    return str(pathlib.Path.home().joinpath(".hallscope/client.log"))


def log_default_path_host() -> str:
    return str(pathlib.Path.home().joinpath(".hallscope/host.log"))


def log_default_dir():
    return TEMP_DIR


def clear_log(log_path: str):
    """
    Clear the logger file at the given path.

    Arguments
    ---------
    log_path : str
        The path to the logger file. Can get logger default path with
        log_default_path_client() or log_default_path_host().
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                f"Could not clear log file {log_path}. Permission denied. Continuing."
            )


def shutdown_client_log():
    try:
        logger.info("Closing down client log.")
        logger.remove()
    except ValueError:
        logger.exception("Error shutting down client log - skipping.")


def get_log_filename() -> str:
    """Finds the logger filename."""
    if hasattr(logger, "our_naughty_log_path_attr"):
        return logger.our_naughty_log_path_attr
    else:
        return ""
