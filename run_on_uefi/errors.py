"""
Failures reported by the harness.

Every error carries the process exit status main() uses when it reaches the
top level. Checked failures share status 1 so scripts that branch on a plain
success/failure keep working; invalid configuration uses the usage status 2.
"""


class HarnessError(Exception):
    """Base class for failures that end a run with a reported status."""

    exit_code = 1


class ConfigError(HarnessError):
    """A configuration value could not be parsed."""

    exit_code = 2


class MissingDependencyError(HarnessError):
    """A required tool or file is missing; raised before anything is mutated."""

    def __init__(self, dependency, path):
        super().__init__(f"{dependency} not found: {path}")
        self.dependency = dependency
        self.path = path


class FailedToStartError(HarnessError):
    """The emulator never produced a log file."""

    def __init__(self, log_path):
        super().__init__(f"Failed to start: no log was written to {log_path}")
        self.log_path = log_path


class FailedToBootError(HarnessError):
    """The emulator ran but the serial log is empty."""

    def __init__(self, log_path):
        super().__init__(f"Failed to boot: log {log_path} is empty")
        self.log_path = log_path


class ProtocolError(HarnessError):
    """A required tag is absent from an otherwise present log."""

    def __init__(self, stage, tag):
        super().__init__(f"Failed to {stage} script: <{tag}> not found in log")
        self.stage = stage
        self.tag = tag


class MissingLogError(HarnessError):
    """Validation was asked for a run whose log does not exist."""

    def __init__(self, log_path):
        super().__init__(f"Log not found: {log_path}")
        self.log_path = log_path


class UnsupportedPackageManagerError(HarnessError):
    def __init__(self, tried):
        super().__init__(f"No supported package manager found. Tried: {', '.join(tried)}")
        self.tried = tried


class InstallError(HarnessError):
    def __init__(self, command, returncode):
        super().__init__(f"Installation command failed with status {returncode}: {' '.join(command)}")
        self.command = command
        self.returncode = returncode
