import sys

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.shortcuts import confirm

from .process import describe_termination
from .render import render_console


def _print(text):
    # Resolve stdout per call so redirected streams are honoured.
    print_formatted_text(text, file=sys.stdout)


def _field(label, value):
    _print(HTML("<b>{}</b> {}").format(f"{label + ':':<16}", value))


def print_run_summary(fields, termination_code):
    """Prints the fields extracted from a wrapped log."""
    _print(HTML("<b>--- Run summary ---</b>"))
    _field("UEFI version", fields.uefi_version)
    _field("Shell version", fields.shell_version)
    _field("Firmware build", fields.firmware_info)
    _field("QEMU", describe_termination(termination_code))
    _field("Target status", fields.command_result)
    _print(HTML("<b>Target output:</b>"))
    print(render_console(fields.command_output), flush=True)
    _print(HTML("<b>{}</b>").format("-" * 19))


def print_validation(result):
    """Prints PASS, or FAIL with both values, line terminators stripped."""
    if result.passed:
        _print(HTML("<ansigreen><b>PASS</b></ansigreen>: output matches the reference"))
        return
    _print(HTML("<ansired><b>FAIL</b></ansired>: output does not match the reference"))
    _print(HTML("  expected: '{}'").format(result.expected_display))
    _print(HTML("  actual:   '{}'").format(result.actual_display))


def confirm_commands(commands):
    """Shows the commands about to run and asks whether to go ahead."""
    _print(HTML("<b>The following commands will be run:</b>"))
    for command in commands:
        _print(HTML("  {}").format(" ".join(command)))
    return confirm("Proceed?")
