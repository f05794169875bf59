import os
from dataclasses import dataclass

from . import config as app_config
from .errors import MissingLogError
from .tags import find_tag

# The shell's echo always ends the line that carries the opening <cmd> tag.
_FRAMING_BREAKS = ("\r\n", "\n")


def strip_line_terminators(text):
    """Display form of a value: carriage returns and line feeds removed."""
    return text.replace("\r", "").replace("\n", "")


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    expected: str
    actual: str

    @property
    def expected_display(self):
        return strip_line_terminators(self.expected)

    @property
    def actual_display(self):
        return strip_line_terminators(self.actual)


def command_output(text):
    """Returns the <cmd> section of a log verbatim, or None when there is none."""
    return find_tag("cmd", text)


def strip_framing(section):
    """
    Drops the line break the boot shell emits right after the opening <cmd>
    tag. Only one break is removed; nothing else is touched.
    """
    for brk in _FRAMING_BREAKS:
        if section.startswith(brk):
            return section[len(brk):]
    return section


def compare(reference, text):
    """
    Matches the reference against the <cmd> section byte for byte, first as
    captured, then with the shell's framing break removed.
    """
    section = command_output(text)
    if section is None:
        return ValidationResult(False, reference, "")
    if section == reference:
        return ValidationResult(True, reference, section)
    actual = strip_framing(section)
    return ValidationResult(actual == reference, reference, actual)


def validate_log(reference, log_path):
    """
    Compares a run's <cmd> section with a reference string.

    Raises:
        MissingLogError: the log does not exist.
    """
    if not os.path.exists(log_path):
        raise MissingLogError(log_path)
    with open(log_path, "r", encoding=app_config.LOG_ENCODING,
              errors=app_config.LOG_ERRORS, newline="") as f:
        text = f.read()
    return compare(reference, text)
