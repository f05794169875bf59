#!/usr/bin/env python3
"""
Terminal rendering of serial captures for display.

Firmware consoles talk VT100: they clear the screen, move the cursor and set
colours. Printing a capture verbatim replays all of that on the user's
terminal, so summaries show what a terminal would end up displaying instead.
The capture itself is never modified; rendering is for humans only.
"""

import re

import pyte

from . import config as app_config

DEFAULT_COLUMNS = 120

# CSI sequences with intermediate bytes (0x20-0x2F), e.g. ESC[!p (DECSTR).
# pyte's parser prints their final byte as literal text.
_CSI_WITH_INTERMEDIATE = re.compile(r"\x1b\[[\x30-\x3f]*[\x20-\x2f]+[\x40-\x7e]")


def filter_unsupported_sequences(text):
    """Removes escape sequences pyte cannot handle."""
    return _CSI_WITH_INTERMEDIATE.sub("", text)


def _screen_lines(text, columns):
    """Enough screen lines to hold the text, counting wrapped lines."""
    return sum(max(1, -(-len(line) // columns)) for line in text.split("\n")) + 1


def render_console(text, columns=DEFAULT_COLUMNS):
    """
    Renders console text through a pyte screen.

    Args:
        text: Raw console text, possibly with escape sequences.
        columns: Screen width used for wrapping.

    Returns:
        The visible lines joined by '\\n', right-stripped, trailing blank lines
        removed.
    """
    if not text:
        return ""
    # Undecodable capture bytes show as replacement characters.
    text = text.encode(app_config.LOG_ENCODING, app_config.LOG_ERRORS).decode(app_config.LOG_ENCODING, "replace")
    text = filter_unsupported_sequences(text)

    screen = pyte.Screen(columns, _screen_lines(text, columns))
    # Bare line feeds also return the carriage, as they do on a cooked tty.
    screen.set_mode(pyte.modes.LNM)
    stream = pyte.Stream(screen)
    stream.feed(text)

    lines = [line.rstrip() for line in screen.display]
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)
