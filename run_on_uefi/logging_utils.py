#!/usr/bin/env python3
"""
Shared logging utilities for run-on-uefi.

Provides timestamped debug logging to file for tracing a run: the resolved
environment, the emulator command line, watcher activity and log handling.
"""

import time


def open_debug_file(path):
    """
    Open the debug file for appending, or return None when no path is given.

    Args:
        path: Filesystem path of the debug log, or None.

    Returns:
        An open text file handle, or None.
    """
    if not path:
        return None
    return open(path, "a", encoding="utf-8")


def debug_log(debug_file, message):
    """
    Write a timestamped debug message to the debug file if enabled.

    Args:
        debug_file: An open file handle for writing debug messages,
                    or None if debug logging is disabled.
        message: The debug message string to write.

    Returns:
        None
    """
    if debug_file:
        try:
            timestamp = time.time()
            debug_file.write(f"[{timestamp:.6f}] {message}\n")
            debug_file.flush()
        except (ValueError, OSError):
            # A watcher thread may log after the file was closed.
            pass
