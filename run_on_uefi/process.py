import os
import signal
import socket
import subprocess
import sys
import threading
from dataclasses import dataclass

from . import config as app_config
from .logging_utils import debug_log


@dataclass(frozen=True)
class RunOutcome:
    """What one emulator run left behind."""

    raw_text: str
    termination_code: int
    log_exists: bool

    @property
    def timed_out(self):
        return self.termination_code in (app_config.SOFT_TIMEOUT_CODE, app_config.HARD_TIMEOUT_CODE)


def build_emulator_args(env, cfg, drive_dir, vars_path, log_path, extra_args=()):
    """Constructs the list of arguments for the QEMU command."""
    args = [env.qemu, *env.platform_flags]
    args.extend([
        "-drive", f"if=pflash,format=raw,unit=0,readonly=on,file={env.fw_code}",
        "-drive", f"if=pflash,format=raw,unit=1,file={vars_path}",
        "-drive", f"format=raw,file=fat:rw:{drive_dir}",
        "-net", "none",
        "-display", "none",
        "-serial", cfg.output or f"file:{log_path}",
    ])
    if cfg.monitor:
        args.extend(["-monitor", f"unix:{cfg.monitor},server,nowait"])
    args.extend(extra_args)
    return args


def format_command(args):
    """Renders a command one argument per line, the way it is echoed before a run."""
    formatted_command = f"{args[0]} \\\n"
    formatted_command += " \\\n".join([f"    {subprocess.list2cmdline([arg])}" for arg in args[1:]])
    return formatted_command


def log_signature(log_path):
    """Identity of a log file on disk, or None when there is none."""
    if not log_path:
        return None
    try:
        st = os.stat(log_path)
    except FileNotFoundError:
        return None
    return st.st_ino, st.st_size, st.st_mtime_ns


def read_capture(log_path, previous=None):
    """
    Returns (exists, text) for a serial capture; a missing file reads as empty.

    A file whose signature still equals 'previous' was left over from an
    earlier run and counts as missing.
    """
    signature = log_signature(log_path)
    if signature is None or (previous is not None and signature == previous):
        return False, ""
    with open(log_path, "r", encoding=app_config.LOG_ENCODING,
              errors=app_config.LOG_ERRORS, newline="") as f:
        return True, f.read()


def _send_monitor_quit(monitor_socket, debug_file=None):
    """Asks QEMU to quit through its monitor socket; returns True if the command was sent."""
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(1.0)
            sock.connect(monitor_socket)
            sock.sendall(b"quit\n")
        debug_log(debug_file, f"WATCHDOG: Sent 'quit' to monitor {monitor_socket}")
        return True
    except OSError as e:
        debug_log(debug_file, f"WATCHDOG: Monitor quit failed: {e}")
        return False


def _signal_process(process, send, debug_file=None):
    """Delivers a signal, ignoring a child that has already gone away."""
    try:
        send()
    except (ProcessLookupError, OSError) as e:
        debug_log(debug_file, f"WATCHDOG: Signal not delivered: {e}")


class Watchdog:
    """
    Two independent deadlines against one child process.

    After soft_timeout seconds the child is asked to quit (monitor 'quit' when a
    socket is configured, then SIGTERM); after hard_timeout seconds it is
    killed. A None timeout never arms. cancel() is idempotent and safe to call
    while a deadline is firing.
    """

    def __init__(self, process, soft_timeout=None, hard_timeout=None, monitor_socket=None, debug_file=None):
        self._process = process
        self._soft_timeout = soft_timeout
        self._hard_timeout = hard_timeout
        self._monitor_socket = monitor_socket
        self._debug_file = debug_file
        self._timers = []
        self.soft_fired = threading.Event()
        self.hard_fired = threading.Event()

    def start(self):
        for timeout, action in ((self._soft_timeout, self._soft_quit), (self._hard_timeout, self._hard_kill)):
            if timeout is None:
                continue
            timer = threading.Timer(timeout, action)
            timer.daemon = True
            timer.start()
            self._timers.append(timer)
        debug_log(self._debug_file, f"WATCHDOG: Armed soft={self._soft_timeout} hard={self._hard_timeout}")

    def _soft_quit(self):
        if self._process.poll() is not None:
            return
        self.soft_fired.set()
        print(f"Warning: QEMU still running after {self._soft_timeout:g}s, asking it to quit.", file=sys.stderr, flush=True)
        if self._monitor_socket:
            _send_monitor_quit(self._monitor_socket, self._debug_file)
        _signal_process(self._process, self._process.terminate, self._debug_file)

    def _hard_kill(self):
        if self._process.poll() is not None:
            return
        self.hard_fired.set()
        print(f"Warning: QEMU still running after {self._hard_timeout:g}s, killing it.", file=sys.stderr, flush=True)
        _signal_process(self._process, self._process.kill, self._debug_file)

    def cancel(self):
        for timer in self._timers:
            timer.cancel()
        # A deadline that was already firing finishes its single action here.
        for timer in self._timers:
            if timer is not threading.current_thread():
                timer.join()
        debug_log(self._debug_file, "WATCHDOG: Cancelled")


def termination_code(returncode, watchdog):
    """Maps a child's return code to the launcher's termination code."""
    if watchdog.hard_fired.is_set():
        return app_config.HARD_TIMEOUT_CODE
    if watchdog.soft_fired.is_set():
        return app_config.SOFT_TIMEOUT_CODE
    if returncode < 0:
        return 128 - returncode
    return returncode


def launch(args, soft_timeout=None, hard_timeout=None, monitor_socket=None, log_path=None, debug_file=None):
    """
    Runs the emulator under the soft/hard deadlines and waits for it to end.

    Args:
        args: Full command line; args[0] is the executable.
        soft_timeout: Seconds before a graceful quit is requested, or None.
        hard_timeout: Seconds before the child is killed, or None.
        monitor_socket: QEMU monitor socket used for the graceful quit.
        log_path: Serial capture to read once the child has exited.
        debug_file: Optional debug file handle.

    Returns:
        A RunOutcome. An executable that cannot be started yields code 127.
    """
    print("--- Starting QEMU with the following command ---", flush=True)
    print(format_command(args), flush=True)
    print("-" * 50, flush=True)

    previous = log_signature(log_path)
    try:
        process = subprocess.Popen(args, stdin=subprocess.DEVNULL)
    except FileNotFoundError:
        print(f"Error: QEMU executable '{args[0]}' not found.", file=sys.stderr)
        exists, text = read_capture(log_path, previous)
        return RunOutcome(text, app_config.NOT_EXECUTABLE_CODE, exists)

    debug_log(debug_file, f"LAUNCH: Started pid {process.pid}")
    watchdog = Watchdog(process, soft_timeout, hard_timeout, monitor_socket, debug_file)
    watchdog.start()
    try:
        returncode = process.wait()
    except KeyboardInterrupt:
        _signal_process(process, process.kill, debug_file)
        process.wait()
        raise
    finally:
        watchdog.cancel()

    code = termination_code(returncode, watchdog)
    debug_log(debug_file, f"LAUNCH: pid {process.pid} exited with {returncode}, reported as {code}")
    exists, text = read_capture(log_path, previous)
    return RunOutcome(text, code, exists)


def describe_termination(code):
    """Human-readable description of a termination code."""
    if code == app_config.SOFT_TIMEOUT_CODE:
        return "terminated after soft timeout"
    if code == app_config.HARD_TIMEOUT_CODE:
        return "killed after hard timeout"
    if code == app_config.NOT_EXECUTABLE_CODE:
        return "could not be executed"
    if code > 128:
        try:
            return f"terminated by {signal.Signals(code - 128).name}"
        except ValueError:
            pass
    return f"exited with status {code}"
