import os

import pytest

from run_on_uefi import config as app_config
from run_on_uefi import environment
from run_on_uefi.config import RunConfig
from run_on_uefi.errors import MissingDependencyError


@pytest.fixture
def ovmf_dir(tmp_path, monkeypatch):
    """Points the OVMF lookup at an empty temporary directory."""
    monkeypatch.setattr(app_config, "OVMF_DIRECTORY", str(tmp_path))
    return tmp_path


@pytest.fixture
def deps(tmp_path):
    """Creates every file a run needs and a config pointing at them."""
    files = {}
    for name in ("code.fd", "vars.fd", "shell.efi", "examplex64.efi", "startup.nsh"):
        path = tmp_path / name
        path.write_bytes(b"\0")
        files[name] = str(path)
    cfg = RunConfig(qemu="sh", fw_code=files["code.fd"], fw_vars=files["vars.fd"],
                    shell_efi=files["shell.efi"], script=files["startup.nsh"])
    return cfg, files


# --- Resolution Tests ---


def test_x86_64_needs_no_platform_flags(ovmf_dir):
    env = environment.resolve_environment("x86_64", "x64", RunConfig())
    assert env.qemu == "qemu-system-x86_64"
    assert env.platform_flags == ()


def test_aarch64_pins_cpu_model():
    env = environment.resolve_environment("aarch64", "aa64", RunConfig())
    assert env.platform_flags == ("-machine", "virt", "-cpu", "cortex-a57")
    assert env.fw_code == "/usr/share/qemu/edk2-aarch64-code.fd"
    assert env.fw_vars == "/usr/share/qemu/edk2-arm-vars.fd"


def test_other_architectures_use_virt_machine():
    env = environment.resolve_environment("loongarch64", "loongarch64", RunConfig())
    assert env.platform_flags == ("-machine", "virt")
    assert env.fw_code == "/usr/share/qemu/edk2-loongarch64-code.fd"
    assert env.shell_efi == "/usr/share/efi-shell-loongarch64/shellloongarch64.efi"


def test_ovmf_probe_picks_first_existing_suffix(ovmf_dir):
    """Test that the probe order is respected when several images exist."""
    (ovmf_dir / "OVMF_CODE.4m.fd").write_bytes(b"")
    (ovmf_dir / "OVMF_CODE.fd").write_bytes(b"")
    env = environment.resolve_environment("x86_64", "x64", RunConfig())
    assert env.fw_code == str(ovmf_dir / "OVMF_CODE.4m.fd")
    assert env.fw_vars == str(ovmf_dir / "OVMF_VARS.4m.fd")


def test_ovmf_probe_falls_back_to_last_candidate(ovmf_dir):
    env = environment.resolve_environment("x86_64", "x64", RunConfig())
    assert env.fw_code == str(ovmf_dir / "OVMF_CODE.fd")


def test_overrides_win_over_defaults(ovmf_dir):
    cfg = RunConfig(qemu="my-qemu", qemu_flags=["-M", "pc"], fw_code="/c", fw_vars="/v", shell_efi="/s")
    env = environment.resolve_environment("x86_64", "x64", cfg)
    assert (env.qemu, env.platform_flags, env.fw_code, env.fw_vars, env.shell_efi) == (
        "my-qemu", ("-M", "pc"), "/c", "/v", "/s")


def test_empty_flag_override_clears_defaults():
    env = environment.resolve_environment("aarch64", "aa64", RunConfig(qemu_flags=[]))
    assert env.platform_flags == ()


# --- Artifact Lookup Tests ---


def test_artifact_resolves_verbatim(tmp_path):
    target = tmp_path / "app.efi"
    target.write_bytes(b"")
    assert environment.resolve_artifact(str(target), "x64", "build") == str(target)


def test_artifact_resolves_with_code_suffix_in_work_dir(tmp_path):
    (tmp_path / "examplex64.efi").write_bytes(b"")
    assert environment.resolve_artifact("example", "x64", str(tmp_path)) == os.path.join(str(tmp_path), "examplex64.efi")


def test_missing_artifact_reports_suffixed_path(tmp_path):
    assert environment.resolve_artifact("example", "aa64", str(tmp_path)) == os.path.join(str(tmp_path), "exampleaa64.efi")


def test_artifact_stem():
    assert environment.artifact_stem("example", "x64") == "examplex64"
    assert environment.artifact_stem("build/examplex64.efi", "x64") == "examplex64"


# --- Dependency Check Tests ---


def test_all_dependencies_present(deps):
    cfg, files = deps
    env = environment.resolve_environment("x86_64", "x64", cfg)
    environment.check_dependencies(env, cfg, files["examplex64.efi"])


@pytest.mark.parametrize("field, dependency", [
    ("fw_code", "UEFI firmware code image"),
    ("fw_vars", "UEFI firmware vars image"),
    ("shell_efi", "UEFI shell"),
    ("script", "Startup script"),
])
def test_missing_file_is_reported_with_its_path(deps, tmp_path, field, dependency):
    cfg, files = deps
    missing = str(tmp_path / "missing")
    cfg = cfg.with_overrides(**{field: missing})
    env = environment.resolve_environment("x86_64", "x64", cfg)
    with pytest.raises(MissingDependencyError) as excinfo:
        environment.check_dependencies(env, cfg, files["examplex64.efi"])
    assert excinfo.value.dependency == dependency
    assert excinfo.value.path == missing


def test_missing_emulator(deps):
    cfg, files = deps
    cfg = cfg.with_overrides(qemu="no-such-qemu-binary")
    env = environment.resolve_environment("x86_64", "x64", cfg)
    with pytest.raises(MissingDependencyError, match="Emulator"):
        environment.check_dependencies(env, cfg, files["examplex64.efi"])


def test_missing_artifact(deps, tmp_path):
    cfg, _ = deps
    env = environment.resolve_environment("x86_64", "x64", cfg)
    with pytest.raises(MissingDependencyError, match="Target"):
        environment.check_dependencies(env, cfg, str(tmp_path / "nope.efi"))


def test_disabled_copies_skip_their_checks(deps, tmp_path):
    """Test that shell and target are not required when they are not copied."""
    cfg, _ = deps
    cfg = cfg.with_overrides(shell_efi=str(tmp_path / "none"), copy_shell=False, copy_target=False)
    env = environment.resolve_environment("x86_64", "x64", cfg)
    environment.check_dependencies(env, cfg, str(tmp_path / "nope.efi"))
