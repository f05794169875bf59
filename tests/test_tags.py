#!/usr/bin/env python3
"""
Unit tests for the log tag protocol.

Covers:
- First-match, non-nesting extraction
- Wrapping a raw capture and reading <lres> back
- Failed-to-start / failed-to-boot detection
- Required and optional field extraction
"""

import pytest

from run_on_uefi import tags
from run_on_uefi.errors import FailedToBootError, FailedToStartError, ProtocolError
from run_on_uefi.process import RunOutcome

BOOT_LOG = (
    "\x1b[2J\x1b[01;01HBdsDxe: starting Boot0001\r\n"
    "<uefiver>2.70</uefiver>\r\n"
    "<shellver>2.2</shellver>\r\n"
    "<ver>\r\n"
    "UEFI Interactive Shell v2.2\r\n"
    "EDK II\r\n"
    "UEFI v2.70 (EDK II, 0x00010000)\r\n"
    "</ver>\r\n"
    "<cmd>\r\n"
    "Hello, world!\r\n"
    "</cmd><cres>0x0</cres>\r\n"
)


# --- Extraction Tests ---


@pytest.mark.parametrize("text", ["", "plain", "multi\r\nline\n", "<other>x</other>", "a < b > c"])
def test_wrapped_text_extracts_unchanged(text):
    assert tags.find_tag("x", tags.tag("x", text)) == text


def test_missing_opening_delimiter_is_not_found():
    assert tags.find_tag("cmd", "no tags here </cmd>") is None


def test_first_occurrence_wins():
    assert tags.find_tag("a", "<a>1</a><a>2</a>") == "1"


def test_missing_closing_delimiter_takes_the_rest():
    assert tags.find_tag("a", "x<a>tail") == "tail"


def test_bodies_are_not_parsed_as_markup():
    """Test that raw console text inside a tag is returned as-is."""
    body = "<ver>UEFI v2.70 (EDK II) <b>&amp;</ver>"
    assert tags.find_tag("ver", body) == "UEFI v2.70 (EDK II) <b>&amp;"


# --- Log Wrapper Tests ---


@pytest.mark.parametrize("code", [0, 1, 124, 137, 255])
def test_lres_carries_termination_code(tmp_path, code):
    log = tmp_path / "run.log"
    log.write_text("raw")
    wrapped = tags.wrap_log(str(log), RunOutcome("raw", code, True))
    assert tags.find_tag("lres", wrapped) == str(code)
    assert tags.find_tag("log", wrapped) == "raw"


def test_wrap_replaces_raw_log(tmp_path):
    log = tmp_path / "run.log"
    log.write_bytes(b"line\r\n")
    tags.wrap_log(str(log), RunOutcome("line\r\n", 0, True))
    assert log.read_bytes() == b"<run><log>line\r\n</log><lres>0</lres></run>\n"


def test_wrap_preserves_undecodable_bytes(tmp_path):
    log = tmp_path / "run.log"
    raw = b"\xff\xfeboot\r\n".decode("utf-8", "surrogateescape")
    tags.wrap_log(str(log), RunOutcome(raw, 0, True))
    assert b"<log>\xff\xfeboot\r\n</log>" in log.read_bytes()


def test_missing_log_is_failed_to_start(tmp_path):
    log = tmp_path / "run.log"
    with pytest.raises(FailedToStartError):
        tags.wrap_log(str(log), RunOutcome("", 127, False))
    assert not log.exists()


def test_empty_log_is_failed_to_boot(tmp_path):
    log = tmp_path / "run.log"
    log.write_text("")
    with pytest.raises(FailedToBootError):
        tags.wrap_log(str(log), RunOutcome("", 0, True))
    assert log.read_text() == ""


# --- Field Extraction Tests ---


def test_extract_fields_from_boot_log():
    fields = tags.extract_fields(tags.wrap_text(BOOT_LOG, 0))
    assert fields.uefi_version == "2.70"
    assert fields.shell_version == "2.2"
    assert fields.firmware_info == "EDK II, 0x00010000"
    assert fields.command_output == "\r\nHello, world!\r\n"
    assert fields.command_result == "0x0"
    assert fields.launcher_result == "0"


def test_missing_version_info_is_not_fatal():
    log = BOOT_LOG.replace("<ver>", "").replace("</ver>", "")
    fields = tags.extract_fields(log)
    assert fields.version_info == tags.NOT_FOUND
    assert fields.firmware_info == tags.NOT_FOUND
    assert fields.launcher_result == tags.NOT_FOUND


@pytest.mark.parametrize("version_info", [
    "UEFI Interactive Shell v2.2",
    "UEFI v2.70 without parenthesis",
])
def test_firmware_info_not_found(version_info):
    assert tags.firmware_build_info(version_info, "2.70") == tags.NOT_FOUND


@pytest.mark.parametrize("removed, stage", [
    ("<uefiver>", "start"),
    ("<shellver>", "start"),
    ("<cmd>", "finish"),
    ("<cres>", "finish"),
])
def test_missing_required_tag_is_protocol_error(removed, stage):
    with pytest.raises(ProtocolError) as excinfo:
        tags.extract_fields(BOOT_LOG.replace(removed, ""))
    assert excinfo.value.stage == stage
    assert excinfo.value.tag == removed.strip("<>")
