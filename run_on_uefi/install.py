import os
import shutil
import subprocess
import sys

from .errors import InstallError, UnsupportedPackageManagerError
from .logging_utils import debug_log
from .report import confirm_commands

# --- Package Manager Configuration ---

# Probed in this order; the first one on PATH is used.
PACKAGE_MANAGERS = ["apk", "apt-get", "dnf", "pacman", "brew"]

# Commands that run before installing and the install command prefix.
PACKAGE_MANAGER_COMMANDS = {
    "apk": ([], ["apk", "add"]),
    "apt-get": ([["apt-get", "update"]], ["apt-get", "install", "-y"]),
    "dnf": ([], ["dnf", "install", "-y"]),
    "pacman": ([], ["pacman", "-S", "--needed", "--noconfirm"]),
    "brew": ([], ["brew", "install"]),
}

# Per manager: emulator packages by architecture, firmware packages by
# architecture and shell packages by firmware-architecture code. '*' is the
# fallback; None means the manager has no such package.
PACKAGES = {
    "apk": {
        "emulator": {"*": "qemu-system-{arch}"},
        "firmware": {"x86_64": "ovmf", "aarch64": "aavmf", "*": None},
        "shell": {"*": None},
    },
    "apt-get": {
        "emulator": {"x86_64": "qemu-system-x86", "i386": "qemu-system-x86",
                     "aarch64": "qemu-system-arm", "arm": "qemu-system-arm", "*": "qemu-system-misc"},
        "firmware": {"x86_64": "ovmf", "i386": "ovmf-ia32", "aarch64": "qemu-efi-aarch64",
                     "arm": "qemu-efi-arm", "*": "qemu-efi-{arch}"},
        "shell": {"x64": "efi-shell-x64", "ia32": "efi-shell-ia32", "aa64": "efi-shell-aa64",
                  "arm": "efi-shell-arm", "*": None},
    },
    "dnf": {
        "emulator": {"*": "qemu-system-{arch}"},
        "firmware": {"x86_64": "edk2-ovmf", "i386": "edk2-ovmf-ia32", "aarch64": "edk2-aarch64",
                     "arm": "edk2-arm", "*": "edk2-{arch}"},
        "shell": {"*": None},
    },
    "pacman": {
        "emulator": {"x86_64": "qemu-system-x86", "i386": "qemu-system-x86", "*": "qemu-system-{arch}"},
        "firmware": {"x86_64": "edk2-ovmf", "i386": "edk2-ovmf", "aarch64": "edk2-aarch64",
                     "arm": "edk2-arm", "riscv64": "edk2-riscv", "*": None},
        "shell": {"*": "edk2-shell"},
    },
    "brew": {
        "emulator": {"*": "qemu"},
        "firmware": {"*": None},
        "shell": {"*": None},
    },
}


def detect_package_manager():
    """Returns the first supported package manager found on PATH."""
    for manager in PACKAGE_MANAGERS:
        if shutil.which(manager):
            return manager
    raise UnsupportedPackageManagerError(PACKAGE_MANAGERS)


def _lookup(table, key, **names):
    package = table.get(key, table.get("*"))
    return package.format(**names) if package else None


def packages_for(manager, arch, code, with_shell=True):
    """Lists the packages providing emulator, firmware and (optionally) shell."""
    table = PACKAGES[manager]
    packages = [
        _lookup(table["emulator"], arch, arch=arch),
        _lookup(table["firmware"], arch, arch=arch),
    ]
    if with_shell:
        packages.append(_lookup(table["shell"], code, code=code))
    # Emulator and shell may come from the same package.
    unique = []
    for package in packages:
        if package and package not in unique:
            unique.append(package)
    return unique


def _privilege_prefix(manager):
    if manager == "brew" or not hasattr(os, "geteuid") or os.geteuid() == 0:
        return []
    return ["sudo"] if shutil.which("sudo") else []


def install_commands(manager, arch, code, with_shell=True):
    """Builds the full list of commands for installing the run's dependencies."""
    prefix = _privilege_prefix(manager)
    setup, install = PACKAGE_MANAGER_COMMANDS[manager]
    commands = [prefix + command for command in setup]
    commands.append(prefix + install + packages_for(manager, arch, code, with_shell))
    return commands


def install(arch, code, with_shell=True, no_confirm=False, debug_file=None):
    """
    Installs QEMU, UEFI firmware and the UEFI shell with the host package manager.

    Returns:
        True when the commands ran, False when the user declined.

    Raises:
        UnsupportedPackageManagerError: no known package manager is available.
        InstallError: a command exited with a non-zero status.
    """
    manager = detect_package_manager()
    print(f"Info: Using package manager '{manager}' for {arch} ({code}).")
    commands = install_commands(manager, arch, code, with_shell)
    if not no_confirm and not confirm_commands(commands):
        print("Info: Installation cancelled.")
        return False
    for command in commands:
        debug_log(debug_file, f"INSTALL: Running {command}")
        print(f"Info: Running: {' '.join(command)}", flush=True)
        result = subprocess.run(command)
        if result.returncode != 0:
            raise InstallError(command, result.returncode)
    if with_shell and not _lookup(PACKAGES[manager]["shell"], code, code=code):
        print(f"Warning: '{manager}' has no UEFI shell package for '{code}'; "
              "provide one with SHELL_EFI or disable COPY_SHELL.", file=sys.stderr)
    return True
