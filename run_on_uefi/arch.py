import platform

from . import config as app_config


def normalize_arch(name):
    """Maps a CPU name to QEMU's spelling; unknown names pass through unchanged."""
    return app_config.ARCH_ALIASES.get(name, name)


def host_arch():
    """Returns the host CPU architecture in QEMU's spelling."""
    return normalize_arch(platform.machine())


def uefi_arch(arch):
    """
    Returns the UEFI firmware-architecture code for an architecture.

    The code names firmware images, boot files and built artifacts
    (e.g. 'x64' for x86_64, 'aa64' for aarch64). Architectures without a
    table entry, such as riscv64, are their own code.
    """
    return app_config.UEFI_ARCH_CODES.get(arch, arch)


def resolve(arch=None, uefi_arch_override=None):
    """Resolves (arch, code), defaulting to the host and honouring an explicit code."""
    resolved = normalize_arch(arch) if arch else host_arch()
    return resolved, uefi_arch_override or uefi_arch(resolved)
