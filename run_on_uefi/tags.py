"""
The flat tag protocol carried by a run's log.

The boot script frames its output with <uefiver>, <shellver>, <ver>, <cmd> and
<cres>. After the emulator exits the raw capture is wrapped as

    <run><log>RAW</log><lres>N</lres></run>

where N is the launcher's termination code. Tags never nest with themselves
and their bodies are raw, unescaped console text, so extraction is a plain
delimiter slice rather than markup parsing: the first opening delimiter wins
and the body ends at the first closing delimiter after it.
"""

from dataclasses import dataclass
from typing import Optional

from . import config as app_config
from .errors import FailedToBootError, FailedToStartError, ProtocolError

NOT_FOUND = "not found"


def find_tag(name, body) -> Optional[str]:
    """
    Returns the text between the first <name> and the following </name>.

    Without a closing delimiter the rest of the body is returned. Returns None
    when the opening delimiter is absent.
    """
    opening = f"<{name}>"
    start = body.find(opening)
    if start < 0:
        return None
    rest = body[start + len(opening):]
    end = rest.find(f"</{name}>")
    return rest if end < 0 else rest[:end]


def tag(name, text):
    return f"<{name}>{text}</{name}>"


# --- Log Wrapper ---

def wrap_text(raw_text, termination_code):
    return tag("run", tag("log", raw_text) + tag("lres", termination_code)) + "\n"


def wrap_log(log_path, outcome):
    """
    Wraps a run's raw capture in <run> and writes it back over the log.

    Args:
        log_path: Serial capture written by the emulator.
        outcome: RunOutcome of the launcher for this capture.

    Returns:
        The wrapped text.

    Raises:
        FailedToStartError: no log file was produced.
        FailedToBootError: the log file is empty.
    """
    if not outcome.log_exists:
        raise FailedToStartError(log_path)
    if not outcome.raw_text:
        raise FailedToBootError(log_path)
    wrapped = wrap_text(outcome.raw_text, outcome.termination_code)
    with open(log_path, "w", encoding=app_config.LOG_ENCODING,
              errors=app_config.LOG_ERRORS, newline="") as f:
        f.write(wrapped)
    return wrapped


# --- Field Extraction ---

@dataclass(frozen=True)
class ExtractedFields:
    uefi_version: str
    shell_version: str
    version_info: str
    firmware_info: str
    command_output: str
    command_result: str
    launcher_result: str


def _required(name, body, stage):
    value = find_tag(name, body)
    if value is None:
        raise ProtocolError(stage, name)
    return value


def firmware_build_info(version_info, uefi_version):
    """
    Picks the build description out of the shell's 'ver' output.

    'ver' prints a line such as "UEFI v2.70 (EDK II, 0x00010000)"; for firmware
    version "2.70" this returns "EDK II, 0x00010000".
    """
    marker = f"UEFI v{uefi_version}"
    start = version_info.find(marker)
    if start < 0:
        return NOT_FOUND
    rest = version_info[start + len(marker):]
    end = rest.find(")")
    if end < 0:
        return NOT_FOUND
    return rest[:end].strip().lstrip("(").strip()


def extract_fields(text):
    """
    Extracts the typed fields of a wrapped (or raw) log.

    Raises:
        ProtocolError: <uefiver> or <shellver> is missing (the script never
            started) or <cmd>/<cres> is missing (the script never finished).
    """
    uefi_version = _required("uefiver", text, "start").strip()
    shell_version = _required("shellver", text, "start").strip()
    version_info = find_tag("ver", text)
    if version_info is None:
        version_info = NOT_FOUND
        firmware_info = NOT_FOUND
    else:
        firmware_info = firmware_build_info(version_info, uefi_version)
    command_output = _required("cmd", text, "finish")
    command_result = _required("cres", text, "finish").strip()
    launcher_result = find_tag("lres", text)
    return ExtractedFields(
        uefi_version=uefi_version,
        shell_version=shell_version,
        version_info=version_info,
        firmware_info=firmware_info,
        command_output=command_output,
        command_result=command_result,
        launcher_result=NOT_FOUND if launcher_result is None else launcher_result,
    )
