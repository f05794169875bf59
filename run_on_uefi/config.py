import os
import shlex
from dataclasses import dataclass, field, replace
from typing import Optional

from .errors import ConfigError

# --- Architecture Tables ---

# CPU spellings reported by hosts and toolchains, mapped to QEMU's naming.
ARCH_ALIASES = {
    "amd64": "x86_64",
    "x86": "i386", "i486": "i386", "i586": "i386", "i686": "i386",
    "arm64": "aarch64",
    "armv6l": "arm", "armv7": "arm", "armv7l": "arm", "armhf": "arm",
}

# UEFI firmware-architecture codes; anything missing here passes through.
UEFI_ARCH_CODES = {
    "x86_64": "x64",
    "i386": "ia32",
    "arm": "arm",
    "aarch64": "aa64",
}

# --- Emulator Configuration ---

# The QEMU system emulator is named after the target architecture.
QEMU_EXECUTABLE_PATTERN = "qemu-system-{arch}"
# 'virt' is the generic board for every non-PC target.
MACHINE_TYPE = "virt"
# x86_64 boots on QEMU's default PC board, so it needs no flags at all.
PLATFORM_FLAGS = {
    "x86_64": [],
    "i386": ["-machine", "q35"],
    # The default CPU of aarch64 'virt' is a 32-bit core.
    "aarch64": ["-machine", MACHINE_TYPE, "-cpu", "cortex-a57"],
}
DEFAULT_PLATFORM_FLAGS = ["-machine", MACHINE_TYPE]

# --- Firmware Configuration ---

# Distributions ship OVMF under one directory with differing filename suffixes.
OVMF_DIRECTORY = "/usr/share/OVMF"
OVMF_CODE_PATTERN = "OVMF_CODE{suffix}"
OVMF_VARS_PATTERN = "OVMF_VARS{suffix}"
OVMF_SUFFIXES = ["_4M.fd", ".4m.fd", ".fd"]

# Every other architecture uses the EDK2 images bundled with QEMU.
EDK2_DIRECTORY = "/usr/share/qemu"
EDK2_CODE_PATTERN = "edk2-{name}-code.fd"
EDK2_VARS_PATTERN = "edk2-{name}-vars.fd"
# (code image name, vars image name) where they differ from the architecture.
EDK2_IMAGE_NAMES = {
    "aarch64": ("aarch64", "arm"),
    "riscv64": ("riscv", "riscv"),
}

# The UEFI shell as packaged by Debian's efi-shell-<code> packages.
SHELL_PATTERN = "/usr/share/efi-shell-{code}/shell{code}.efi"

# --- Drive Layout ---

# Removable-media boot path; the firmware starts this file on its own.
BOOT_DIRECTORY = "EFI/BOOT"
BOOT_FILE_PATTERN = "BOOT{code}.EFI"
STARTUP_SCRIPT_NAME = "startup.nsh"
ARTIFACT_EXTENSION = ".efi"

# --- Run Defaults ---

WORK_DIR = "build"
DRIVE_PATTERN = "drive-{code}"
VARS_COPY_PATTERN = "vars-{code}.fd"
LOG_EXTENSION = ".log"
# Serial captures are not guaranteed to be valid UTF-8; undecodable bytes
# survive a read/write cycle unchanged.
LOG_ENCODING = "utf-8"
LOG_ERRORS = "surrogateescape"
# Seconds before QEMU is asked to quit, and before it is killed outright.
SOFT_TIMEOUT = 60.0
HARD_TIMEOUT = 90.0

# --- Exit Codes ---

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130
# Termination codes reported by the launcher, following coreutils 'timeout'.
SOFT_TIMEOUT_CODE = 124
HARD_TIMEOUT_CODE = 137
NOT_EXECUTABLE_CODE = 127

# Fields where an empty variable means "not set".
PATH_FIELDS = (
    "arch", "uefi_arch", "qemu", "output", "monitor", "fw_code", "fw_vars",
    "shell_efi", "work_dir", "drive", "log", "script", "debug_file",
)

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")
DISABLED_TIMEOUT_VALUES = ("", "0", "none", "off")


# --- Environment Lookup ---

# Maps RunConfig fields to the environment variables that override them.
ENVIRONMENT_VARIABLES = {
    "arch": "ARCH",
    "uefi_arch": "UEFI_ARCH",
    "qemu": "QEMU",
    "qemu_flags": "QEMU_FLAGS",
    "output": "OUTPUT",
    "monitor": "MONITOR",
    "soft_timeout": "TIMEOUT",
    "hard_timeout": "KILL_TIMEOUT",
    "fw_code": "FW_CODE",
    "fw_vars": "FW_VARS",
    "shell_efi": "SHELL_EFI",
    "work_dir": "WORK_DIR",
    "drive": "DRIVE",
    "log": "LOG",
    "rm_log": "RM_LOG",
    "rm_drive": "RM_DRIVE",
    "script": "SCRIPT",
    "copy_target": "COPY_TARGET",
    "copy_shell": "COPY_SHELL",
    "no_confirm": "NOCONFIRM",
    "debug_file": "DEBUG_FILE",
}


def parse_bool(name, value):
    """Parses a boolean configuration value, raising ConfigError when it is neither."""
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be one of {', '.join(TRUE_VALUES + FALSE_VALUES)}, got '{value}'")


def parse_timeout(name, value):
    """Parses a timeout in seconds; disabled spellings yield None."""
    if value.strip().lower() in DISABLED_TIMEOUT_VALUES:
        return None
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got '{value}'") from None
    if seconds < 0:
        raise ConfigError(f"{name} must not be negative, got '{value}'")
    return seconds


@dataclass(frozen=True)
class RunConfig:
    """Every tunable of one harness invocation, resolved once up front."""

    arch: Optional[str] = None
    uefi_arch: Optional[str] = None
    qemu: Optional[str] = None
    qemu_flags: Optional[list] = None
    output: Optional[str] = None
    monitor: Optional[str] = None
    soft_timeout: Optional[float] = SOFT_TIMEOUT
    hard_timeout: Optional[float] = HARD_TIMEOUT
    fw_code: Optional[str] = None
    fw_vars: Optional[str] = None
    shell_efi: Optional[str] = None
    work_dir: str = WORK_DIR
    drive: Optional[str] = None
    log: Optional[str] = None
    rm_log: bool = True
    rm_drive: bool = False
    script: Optional[str] = None
    copy_target: bool = True
    copy_shell: bool = True
    no_confirm: bool = False
    debug_file: Optional[str] = None

    @classmethod
    def from_sources(cls, environ=None, overrides=None):
        """
        Builds a RunConfig from environment variables, then CLI overrides.

        Args:
            environ: Mapping of environment variables, os.environ by default.
            overrides: Mapping of field name to an already-typed value for the
                       options that were given; each one wins, None included
                       (a disabled timeout).

        Returns:
            A frozen RunConfig.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name, variable in ENVIRONMENT_VARIABLES.items():
            raw = environ.get(variable)
            if raw is None or (raw == "" and name in PATH_FIELDS):
                continue
            values[name] = _parse_field(name, variable, raw)
        values.update(overrides or {})
        return cls(**values)

    def with_overrides(self, **changes):
        return replace(self, **changes)


def _parse_field(name, variable, raw):
    if name in ("rm_log", "rm_drive", "copy_target", "copy_shell", "no_confirm"):
        return parse_bool(variable, raw)
    if name in ("soft_timeout", "hard_timeout"):
        return parse_timeout(variable, raw)
    if name == "qemu_flags":
        return shlex.split(raw)
    return raw


@dataclass(frozen=True)
class RunRequest:
    """What to run: caller-owned and read-only to the harness."""

    artifact: str
    work_dir: str = WORK_DIR
    arch: Optional[str] = None
    extra_args: list = field(default_factory=list)
