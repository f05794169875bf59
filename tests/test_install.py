from unittest.mock import Mock, patch

import pytest

from run_on_uefi import install
from run_on_uefi.errors import InstallError, UnsupportedPackageManagerError


@pytest.fixture
def as_root():
    """Runs the test as if the harness were root, so no sudo is prefixed."""
    with patch("os.geteuid", return_value=0, create=True):
        yield


def which_only(*available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


# --- Detection Tests ---


def test_first_available_manager_wins():
    with patch("shutil.which", side_effect=which_only("dnf", "brew")):
        assert install.detect_package_manager() == "dnf"


def test_no_manager_found():
    with patch("shutil.which", side_effect=which_only()):
        with pytest.raises(UnsupportedPackageManagerError):
            install.detect_package_manager()


# --- Package Selection Tests ---


def test_apt_packages_for_x86_64():
    assert install.packages_for("apt-get", "x86_64", "x64") == ["qemu-system-x86", "ovmf", "efi-shell-x64"]


def test_apk_has_no_shell_package():
    assert install.packages_for("apk", "riscv64", "riscv64") == ["qemu-system-riscv64"]


def test_shared_packages_are_listed_once():
    assert install.packages_for("brew", "aarch64", "aa64") == ["qemu"]


def test_shell_can_be_left_out():
    assert install.packages_for("apt-get", "aarch64", "aa64", with_shell=False) == ["qemu-system-arm", "qemu-efi-aarch64"]


def test_apt_runs_update_first(as_root):
    commands = install.install_commands("apt-get", "i386", "ia32")
    assert commands == [
        ["apt-get", "update"],
        ["apt-get", "install", "-y", "qemu-system-x86", "ovmf-ia32", "efi-shell-ia32"],
    ]


def test_sudo_is_prefixed_for_non_root():
    with patch("os.geteuid", return_value=1000, create=True), \
            patch("shutil.which", side_effect=which_only("sudo")):
        assert install.install_commands("apk", "x86_64", "x64")[0][:3] == ["sudo", "apk", "add"]


# --- Install Tests ---


def test_install_without_confirmation_runs_commands(as_root):
    with patch("shutil.which", side_effect=which_only("apk")), \
            patch("subprocess.run", return_value=Mock(returncode=0)) as run:
        assert install.install("x86_64", "x64", no_confirm=True)
    run.assert_called_once_with(["apk", "add", "qemu-system-x86_64", "ovmf"])


def test_declined_confirmation_runs_nothing(as_root):
    with patch("shutil.which", side_effect=which_only("apk")), \
            patch.object(install, "confirm_commands", return_value=False), \
            patch("subprocess.run") as run:
        assert not install.install("x86_64", "x64")
    run.assert_not_called()


def test_failing_command_raises(as_root):
    with patch("shutil.which", side_effect=which_only("dnf")), \
            patch("subprocess.run", return_value=Mock(returncode=1)):
        with pytest.raises(InstallError) as excinfo:
            install.install("aarch64", "aa64", no_confirm=True)
    assert excinfo.value.returncode == 1
