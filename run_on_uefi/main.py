import argparse
import os
import shlex
import sys
from pathlib import Path

from . import arch as arch_resolver
from . import config as app_config
from . import drive, environment, install, process, report, tags, validate
from .config import RunConfig, RunRequest
from .errors import HarnessError
from .logging_utils import debug_log, open_debug_file

DESCRIPTION = """\
Boot a UEFI application in QEMU, capture its serial console and check its output.

commands:
  arch                print the UEFI firmware-architecture code
  install             install QEMU, UEFI firmware and the UEFI shell
  run TARGET          boot TARGET and summarize the run
  validate TARGET     compare the output of the last run with stdin
"""

EPILOG = """\
Every option can also be given as an environment variable (ARCH, UEFI_ARCH,
QEMU, QEMU_FLAGS, OUTPUT, MONITOR, TIMEOUT, KILL_TIMEOUT, FW_CODE, FW_VARS,
SHELL_EFI, WORK_DIR, DRIVE, LOG, RM_LOG, RM_DRIVE, SCRIPT, COPY_TARGET,
COPY_SHELL, NOCONFIRM, DEBUG_FILE). Options win over the environment.

example:
  printf "Hello, world!\\r\\n" | run-on-uefi validate example
"""


def _timeout_argument(value):
    try:
        return app_config.parse_timeout("timeout", value)
    except HarnessError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser():
    """Builds the command-line parser with one sub-command per operation."""
    # Options that were not given stay out of the namespace and fall through to
    # the environment.
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    common.add_argument("--arch", help="Target architecture (e.g. x86_64, aarch64). Default: host.")
    common.add_argument("--uefi-arch", help="UEFI firmware-architecture code. Default: derived from --arch.")
    common.add_argument("--work-dir", help=f"Directory holding targets, logs and drives. Default: '{app_config.WORK_DIR}'.")
    common.add_argument("--log", help="Log file of the run. Default: WORK_DIR/<target><code>.log.")
    common.add_argument("--debug-file", help="Append timestamped debug messages to this file.")

    parser = argparse.ArgumentParser(prog="run-on-uefi", description=DESCRIPTION, epilog=EPILOG,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("arch", parents=[common], argument_default=argparse.SUPPRESS,
                           help="Print the UEFI firmware-architecture code.")

    install_parser = subparsers.add_parser("install", parents=[common], argument_default=argparse.SUPPRESS,
                                            help="Install the emulator, firmware and shell.")
    install_parser.add_argument("--yes", dest="no_confirm", action="store_const", const=True, help="Do not ask for confirmation.")
    install_parser.add_argument("--copy-shell", action=argparse.BooleanOptionalAction, help="Install the UEFI shell too.")

    run_parser = subparsers.add_parser("run", parents=[common], argument_default=argparse.SUPPRESS,
                                       help="Boot a target and summarize the run.",
                                       usage="%(prog)s [options] TARGET [-- QEMU_ARGS ...]")
    run_parser.add_argument("target", help="Target name (e.g. 'example' for examplex64.efi) or path.")
    run_parser.add_argument("--qemu", help="QEMU executable.")
    run_parser.add_argument("--qemu-flags", type=shlex.split, help="Machine/platform flags, replacing the defaults.")
    run_parser.add_argument("--output", help="QEMU -serial target. Default: file:<log>.")
    run_parser.add_argument("--monitor", help="Unix socket path for the QEMU monitor.")
    run_parser.add_argument("--timeout", dest="soft_timeout", type=_timeout_argument,
                            help=f"Seconds before QEMU is asked to quit; 0 disables. Default: {app_config.SOFT_TIMEOUT:g}.")
    run_parser.add_argument("--kill-timeout", dest="hard_timeout", type=_timeout_argument,
                            help=f"Seconds before QEMU is killed; 0 disables. Default: {app_config.HARD_TIMEOUT:g}.")
    run_parser.add_argument("--fw-code", help="UEFI firmware code image.")
    run_parser.add_argument("--fw-vars", help="UEFI firmware variables image (template).")
    run_parser.add_argument("--shell-efi", help="UEFI shell binary.")
    run_parser.add_argument("--drive", help="Boot drive directory. Default: WORK_DIR/drive-<code>.")
    run_parser.add_argument("--script", help="Startup script to use instead of the generated one.")
    run_parser.add_argument("--rm-log", action=argparse.BooleanOptionalAction, help="Remove the previous log first (default).")
    run_parser.add_argument("--rm-drive", action=argparse.BooleanOptionalAction, help="Delete the drive before building it.")
    run_parser.add_argument("--copy-target", action=argparse.BooleanOptionalAction, help="Copy the target to the drive (default).")
    run_parser.add_argument("--copy-shell", action=argparse.BooleanOptionalAction, help="Copy the UEFI shell to the drive (default).")

    validate_parser = subparsers.add_parser("validate", parents=[common], argument_default=argparse.SUPPRESS,
                                             help="Compare the last run's output with stdin.")
    validate_parser.add_argument("target", help="Target name the run was started with.")
    return parser


def config_from_args(args, environ=None):
    """Resolves the RunConfig once: environment first, then command-line options."""
    fields = set(RunConfig.__dataclass_fields__)
    overrides = {name: value for name, value in vars(args).items() if name in fields}
    return RunConfig.from_sources(environ, overrides)


def default_log_path(target, code, cfg):
    if cfg.log:
        return cfg.log
    stem = environment.artifact_stem(target, code)
    return os.path.join(cfg.work_dir, stem + app_config.LOG_EXTENSION)


# --- Commands ---

def run_artifact(request, cfg, debug_file=None):
    """
    Runs one boot-and-capture cycle.

    Order: resolve, check dependencies, build the drive, launch, wrap the log,
    extract and summarize. Nothing on disk is touched before the dependency
    check has passed.

    Returns:
        The process exit status for the run.
    """
    arch, code = arch_resolver.resolve(request.arch, cfg.uefi_arch)
    env = environment.resolve_environment(arch, code, cfg)
    debug_log(debug_file, f"RUN: Resolved environment {env}")

    artifact_path = environment.resolve_artifact(request.artifact, code, request.work_dir)
    log_path = default_log_path(request.artifact, code, cfg)
    drive_dir = cfg.drive or os.path.join(request.work_dir, app_config.DRIVE_PATTERN.format(code=code))

    environment.check_dependencies(env, cfg, artifact_path)
    print(f"Info: Running '{artifact_path}' on {arch} ({code}).")

    if cfg.rm_log and os.path.exists(log_path):
        os.remove(log_path)
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

    drive.build_drive(
        drive_dir, code,
        artifact_path,
        shell_path=env.shell_efi if cfg.copy_shell else None,
        script_path=cfg.script,
        remove_existing=cfg.rm_drive,
        copy_artifact=cfg.copy_target,
        debug_file=debug_file,
    )
    vars_path = drive.prepare_vars_file(
        env.fw_vars, os.path.join(request.work_dir, app_config.VARS_COPY_PATTERN.format(code=code)), debug_file)

    qemu_args = process.build_emulator_args(env, cfg, drive_dir, vars_path, log_path, request.extra_args)
    outcome = process.launch(qemu_args, cfg.soft_timeout, cfg.hard_timeout, cfg.monitor, log_path, debug_file)
    if outcome.timed_out:
        print(f"Warning: QEMU {process.describe_termination(outcome.termination_code)}.", file=sys.stderr)

    wrapped = tags.wrap_log(log_path, outcome)
    fields = tags.extract_fields(wrapped)
    report.print_run_summary(fields, outcome.termination_code)
    if not _is_success_status(fields.command_result):
        print(f"Warning: Target reported status {fields.command_result}.", file=sys.stderr)
    print(f"Info: Log written to '{log_path}'.")
    return app_config.EXIT_SUCCESS


def _is_success_status(status):
    try:
        return int(status, 0) == 0
    except ValueError:
        return False


def cmd_arch(args, cfg, debug_file=None):
    _, code = arch_resolver.resolve(cfg.arch, cfg.uefi_arch)
    print(code)
    return app_config.EXIT_SUCCESS


def cmd_install(args, cfg, debug_file=None):
    arch, code = arch_resolver.resolve(cfg.arch, cfg.uefi_arch)
    install.install(arch, code, with_shell=cfg.copy_shell, no_confirm=cfg.no_confirm, debug_file=debug_file)
    return app_config.EXIT_SUCCESS


def cmd_run(args, cfg, debug_file=None):
    request = RunRequest(artifact=args.target, work_dir=cfg.work_dir, arch=cfg.arch, extra_args=list(args.extra))
    return run_artifact(request, cfg, debug_file)


def cmd_validate(args, cfg, debug_file=None):
    _, code = arch_resolver.resolve(cfg.arch, cfg.uefi_arch)
    log_path = default_log_path(args.target, code, cfg)
    reference = sys.stdin.buffer.read().decode(app_config.LOG_ENCODING, app_config.LOG_ERRORS)
    debug_log(debug_file, f"VALIDATE: {log_path} against {reference!r}")
    result = validate.validate_log(reference, log_path)
    report.print_validation(result)
    return app_config.EXIT_SUCCESS if result.passed else app_config.EXIT_FAILURE


COMMANDS = {
    "arch": cmd_arch,
    "install": cmd_install,
    "run": cmd_run,
    "validate": cmd_validate,
}


def main(argv=None):
    """Parses command-line arguments and runs the selected command."""
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else list(argv)
    # Everything after "--" goes to QEMU untouched.
    extra = []
    if "--" in argv:
        split = argv.index("--")
        argv, extra = argv[:split], argv[split + 1:]
    args = parser.parse_args(argv)
    if extra and args.command != "run":
        parser.error(f"extra QEMU arguments are only accepted by 'run': {' '.join(extra)}")
    args.extra = extra

    debug_file = None
    try:
        cfg = config_from_args(args)
        debug_file = open_debug_file(cfg.debug_file)
        return_code = COMMANDS[args.command](args, cfg, debug_file)
    except HarnessError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(app_config.EXIT_INTERRUPTED)
    finally:
        if debug_file:
            debug_file.close()
    sys.exit(return_code)


if __name__ == "__main__":
    main()
