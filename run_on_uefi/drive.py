import os
import shutil
from pathlib import Path

from . import config as app_config
from .logging_utils import debug_log


def boot_file_path(drive_dir, code):
    """Path of the removable-media boot file inside the drive, e.g. EFI/BOOT/BOOTX64.EFI."""
    name = app_config.BOOT_FILE_PATTERN.format(code=code.upper())
    return Path(drive_dir) / app_config.BOOT_DIRECTORY / name


def generate_startup_script(artifact_name):
    """
    Builds the UEFI shell script that runs the artifact and frames its output.

    The script reports the firmware and shell versions, dumps 'ver', runs the
    artifact between <cmd> tags followed by its %lasterror% in <cres>, then
    resets the machine. The shell treats '<' and '>' as redirections, so they
    are escaped with '^'.
    """
    lines = [
        "@echo -off",
        "echo ^<uefiver^>%uefiversion%^</uefiver^>",
        "echo ^<shellver^>%uefishellversion%^</shellver^>",
        "echo ^<ver^>",
        "ver",
        "echo ^</ver^>",
        "fs0:",
        "echo ^<cmd^>",
        f"\\{artifact_name}",
        "echo ^</cmd^>^<cres^>%lasterror%^</cres^>",
        "reset -s",
    ]
    return "\r\n".join(lines) + "\r\n"


def build_drive(drive_dir, code, artifact_path, shell_path=None, script_path=None,
                remove_existing=False, copy_artifact=True, debug_file=None):
    """
    Lays out the directory QEMU mounts as a FAT boot drive.

    Args:
        drive_dir: Directory to populate; created when missing.
        code: UEFI firmware-architecture code, used for the boot file name.
        artifact_path: Artifact the startup script runs from the drive root.
        shell_path: UEFI shell to copy to the boot path, or None to skip.
        script_path: Caller startup script, or None to generate one.
        remove_existing: Delete drive_dir before building it.
        copy_artifact: Copy artifact_path to the drive root.
        debug_file: Optional debug file handle.

    Returns:
        The drive directory as a Path.
    """
    drive = Path(drive_dir)
    if remove_existing and drive.exists():
        print(f"Info: Removing existing drive '{drive}'")
        shutil.rmtree(drive)
    drive.mkdir(parents=True, exist_ok=True)

    if shell_path:
        boot_file = boot_file_path(drive, code)
        boot_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(shell_path, boot_file)
        debug_log(debug_file, f"DRIVE: Copied shell {shell_path} -> {boot_file}")

    artifact_name = os.path.basename(artifact_path)
    if copy_artifact:
        shutil.copyfile(artifact_path, drive / artifact_name)
        debug_log(debug_file, f"DRIVE: Copied target {artifact_path} -> {drive / artifact_name}")

    startup = drive / app_config.STARTUP_SCRIPT_NAME
    if script_path:
        shutil.copyfile(script_path, startup)
        debug_log(debug_file, f"DRIVE: Copied startup script {script_path}")
    else:
        with open(startup, "w", encoding="ascii", newline="") as f:
            f.write(generate_startup_script(artifact_name))
        debug_log(debug_file, f"DRIVE: Generated {startup}")

    print(f"Info: Prepared boot drive in '{drive}'")
    return drive


def prepare_vars_file(template_path, vars_path, debug_file=None):
    """Ensures a writable copy of the UEFI variables image exists at vars_path."""
    template_size = os.path.getsize(template_path)
    if not os.path.exists(vars_path) or os.path.getsize(vars_path) != template_size:
        print(f"Info: UEFI variables file missing or incorrect size. Creating/updating at: {vars_path}")
        Path(vars_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(template_path, vars_path)
    debug_log(debug_file, f"DRIVE: Using UEFI vars {vars_path}")
    return vars_path
