import os
import stat

import pytest
import yaml

from rke2boot.config import BootstrapConfig
from rke2boot.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("RKE2BOOT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = BootstrapConfig()
    assert settings.rke2.config_file == "/etc/rancher/rke2/config.yaml"
    assert settings.rke2.verbosity == 3
    assert settings.rke2.debug is True
    assert settings.rke2.write_kubeconfig_mode == "0644"
    assert settings.rke2.service_name == "rke2-server.service"
    assert settings.rke2.node_token_path == "/var/lib/rancher/rke2/server/node-token"
    assert settings.rke2.ca_cert_path == "/var/lib/rancher/rke2/server/tls/server-ca.crt"
    assert settings.rke2.kubectl_source == "/var/lib/rancher/rke2/bin/kubectl"
    assert settings.system.prerequisite_packages == ["curl"]
    assert settings.readiness.wait_for_node is True


def test_nested_environment_variables(monkeypatch):
    monkeypatch.setenv("RKE2BOOT_RKE2__VERBOSITY", "5")
    monkeypatch.setenv("RKE2BOOT_RKE2__WRITE_KUBECONFIG_MODE", "0640")
    monkeypatch.setenv("RKE2BOOT_SYSTEM__PREREQUISITE_PACKAGES", '["curl", "jq"]')
    monkeypatch.setenv("RKE2BOOT_LOGGING__LEVEL", "debug")

    settings = BootstrapConfig.load()

    assert settings.rke2.verbosity == 5
    assert settings.rke2.write_kubeconfig_mode == "0640"
    assert settings.system.prerequisite_packages == ["curl", "jq"]
    assert settings.logging.level == "DEBUG"


def test_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("RKE2BOOT_NETWORK__TIMEOUT=25\n")
    assert BootstrapConfig.load().network.timeout == 25


def test_load_precedence(tmp_path, monkeypatch):
    path = tmp_path / "rke2boot.yaml"
    path.write_text(yaml.safe_dump({
        "rke2": {"verbosity": 1, "channel": "stable"},
        "network": {"timeout": 4},
    }))
    monkeypatch.setenv("RKE2BOOT_NETWORK__TIMEOUT", "20")
    monkeypatch.setenv("RKE2BOOT_RKE2__VERBOSITY", "2")

    settings = BootstrapConfig.load(path, overrides={"rke2": {"verbosity": 7}})

    assert settings.rke2.verbosity == 7
    assert settings.rke2.channel == "stable"
    assert settings.network.timeout == 20
    assert settings.logging.level == "INFO"


def test_file_only_ignores_environment(tmp_path, monkeypatch):
    path = tmp_path / "rke2boot.yaml"
    path.write_text("network:\n  timeout: 4\n")
    monkeypatch.setenv("RKE2BOOT_NETWORK__TIMEOUT", "20")
    assert BootstrapConfig.load(path, read_env=False).network.timeout == 4


def test_unquoted_octal_mode_in_yaml(tmp_path):
    path = tmp_path / "rke2boot.yaml"
    path.write_text("rke2:\n  write_kubeconfig_mode: 0640\n")
    settings = BootstrapConfig.load(path, read_env=False)
    assert settings.rke2.write_kubeconfig_mode == "0640"


@pytest.mark.parametrize("env", [
    {"RKE2BOOT_RKE2__VERBOSITY": "eleven"},
    {"RKE2BOOT_LOGGING__LEVEL": "chatty"},
    {"RKE2BOOT_SYSTEM__PREREQUISITE_PACKAGES": "[curl"},
])
def test_invalid_environment_raises(monkeypatch, env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError):
        BootstrapConfig.load()


@pytest.mark.parametrize("section", ["RKE2", "LOGGING"])
def test_scalar_section_with_nested_key_raises(monkeypatch, section):
    monkeypatch.setenv(f"RKE2BOOT_{section}", "x")
    monkeypatch.setenv(f"RKE2BOOT_{section}__LEVEL", "DEBUG")
    with pytest.raises(ConfigurationError, match="Invalid settings"):
        BootstrapConfig.load()


def test_invalid_override_raises():
    with pytest.raises(ConfigurationError):
        BootstrapConfig.load(overrides={"rke2": {"write_kubeconfig_mode": "rw-r--r--"}}, read_env=False)


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        BootstrapConfig.load(tmp_path / "nope.yaml")


def test_non_mapping_file(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigurationError, match="mapping"):
        BootstrapConfig.load(path)


def test_malformed_yaml_file(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("rke2: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Failed to load"):
        BootstrapConfig.load(path)


def test_save_round_trip(tmp_path):
    settings = BootstrapConfig.load(overrides={"rke2": {"version": "v1.30.4+rke2r1"}}, read_env=False)
    path = settings.save(tmp_path / "out" / "config.yaml")
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    reloaded = BootstrapConfig.load(path, read_env=False)
    assert reloaded == settings
