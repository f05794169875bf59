import os
import shutil
from dataclasses import dataclass

from . import config as app_config
from .errors import MissingDependencyError


@dataclass(frozen=True)
class ResolvedEnvironment:
    """Where the emulator, firmware and shell for one architecture live."""

    arch: str
    uefi_arch: str
    qemu: str
    platform_flags: tuple
    fw_code: str
    fw_vars: str
    shell_efi: str


# --- Default Lookups ---

def _default_platform_flags(arch):
    return list(app_config.PLATFORM_FLAGS.get(arch, app_config.DEFAULT_PLATFORM_FLAGS))


def _default_ovmf_images():
    """Probes the OVMF suffixes in order and picks the first with a code image."""
    candidates = []
    for suffix in app_config.OVMF_SUFFIXES:
        code = os.path.join(app_config.OVMF_DIRECTORY, app_config.OVMF_CODE_PATTERN.format(suffix=suffix))
        vars_path = os.path.join(app_config.OVMF_DIRECTORY, app_config.OVMF_VARS_PATTERN.format(suffix=suffix))
        if os.path.exists(code):
            return code, vars_path
        candidates.append((code, vars_path))
    # Nothing installed; report the plainest name when the check fails.
    return candidates[-1]


def _default_firmware_images(arch):
    if arch == "x86_64":
        return _default_ovmf_images()
    code_name, vars_name = app_config.EDK2_IMAGE_NAMES.get(arch, (arch, arch))
    return (
        os.path.join(app_config.EDK2_DIRECTORY, app_config.EDK2_CODE_PATTERN.format(name=code_name)),
        os.path.join(app_config.EDK2_DIRECTORY, app_config.EDK2_VARS_PATTERN.format(name=vars_name)),
    )


def resolve_environment(arch, code, cfg):
    """
    Resolves the emulator environment for an architecture.

    Args:
        arch: Architecture in QEMU's spelling (e.g. 'x86_64', 'riscv64').
        code: UEFI firmware-architecture code for that architecture.
        cfg: RunConfig whose explicit overrides replace computed defaults.

    Returns:
        A ResolvedEnvironment. Nothing is checked for existence here; that is
        the job of check_dependencies().
    """
    fw_code, fw_vars = _default_firmware_images(arch)
    flags = cfg.qemu_flags if cfg.qemu_flags is not None else _default_platform_flags(arch)
    return ResolvedEnvironment(
        arch=arch,
        uefi_arch=code,
        qemu=cfg.qemu or app_config.QEMU_EXECUTABLE_PATTERN.format(arch=arch),
        platform_flags=tuple(flags),
        fw_code=cfg.fw_code or fw_code,
        fw_vars=cfg.fw_vars or fw_vars,
        shell_efi=cfg.shell_efi or app_config.SHELL_PATTERN.format(code=code),
    )


# --- Artifact Lookup ---

def artifact_candidates(artifact, code, work_dir):
    """Lists the paths an artifact name may refer to, in lookup order."""
    suffixed = f"{artifact}{code}{app_config.ARTIFACT_EXTENSION}"
    return [
        artifact,
        os.path.join(work_dir, artifact),
        suffixed,
        os.path.join(work_dir, suffixed),
    ]


def resolve_artifact(artifact, code, work_dir):
    """
    Finds the artifact file for a target name.

    'example' resolves to 'example' itself when such a file exists, otherwise
    to 'examplex64.efi' (for code 'x64'), looked up in the current directory
    and then in the work directory.

    Returns:
        The first existing candidate, or the last candidate when none exists so
        that the dependency check can report a concrete path.
    """
    candidates = artifact_candidates(artifact, code, work_dir)
    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return candidates[-1]


def artifact_stem(artifact, code):
    """Base name used for the run's log: 'example' -> 'examplex64'."""
    name = os.path.basename(artifact)
    if name.lower().endswith(app_config.ARTIFACT_EXTENSION):
        return name[:-len(app_config.ARTIFACT_EXTENSION)]
    return f"{name}{code}"


# --- Dependency Check ---

def check_dependencies(env, cfg, artifact_path):
    """
    Verifies every dependency of a run before anything is touched on disk.

    Raises:
        MissingDependencyError: for the first missing dependency, naming its path.
    """
    if not shutil.which(env.qemu):
        raise MissingDependencyError("Emulator executable", env.qemu)
    if not os.path.isfile(env.fw_code):
        raise MissingDependencyError("UEFI firmware code image", env.fw_code)
    if not os.path.isfile(env.fw_vars):
        raise MissingDependencyError("UEFI firmware vars image", env.fw_vars)
    if cfg.copy_shell and not os.path.isfile(env.shell_efi):
        raise MissingDependencyError("UEFI shell", env.shell_efi)
    if cfg.copy_target and not os.path.isfile(artifact_path):
        raise MissingDependencyError("Target", artifact_path)
    if cfg.script and not os.path.isfile(cfg.script):
        raise MissingDependencyError("Startup script", cfg.script)
