import pytest
import requests

from rke2boot.config import RKE2Config
from rke2boot.exceptions import CommandError, NetworkError
from rke2boot.modules.rke2 import service
from rke2boot.tests.conftest import UNIT_TEXT, FakeRunner


def test_patch_unit_text_comments_marker_line():
    patched, count = service.patch_unit_text(UNIT_TEXT, "nm-cloud-setup")
    assert count == 1
    assert "#ExecStartPre=/bin/sh -xc '! /usr/bin/systemctl is-enabled --quiet nm-cloud-setup.service'" in patched
    assert "\nExecStartPre=-/sbin/modprobe br_netfilter\n" in patched


def test_patch_unit_text_is_stable_on_second_run():
    once, _ = service.patch_unit_text(UNIT_TEXT, "nm-cloud-setup")
    twice, count = service.patch_unit_text(once, "nm-cloud-setup")
    assert count == 0
    assert twice == once
    assert "##ExecStartPre" not in twice


def test_patch_unit_file(tmp_path):
    unit = tmp_path / "rke2-server.service"
    unit.write_text(UNIT_TEXT)
    assert service.patch_unit_file(str(unit), "nm-cloud-setup") == 1
    first = unit.read_text()
    assert service.patch_unit_file(str(unit), "nm-cloud-setup") == 0
    assert unit.read_text() == first


def test_patch_unit_file_dry_run(tmp_path):
    unit = tmp_path / "rke2-server.service"
    unit.write_text(UNIT_TEXT)
    assert service.patch_unit_file(str(unit), "nm-cloud-setup", dry_run=True) == 1
    assert unit.read_text() == UNIT_TEXT


def test_patch_unit_file_without_marker(tmp_path):
    unit = tmp_path / "rke2-server.service"
    unit.write_text("[Service]\nExecStart=/usr/local/bin/rke2 server\n")
    assert service.patch_unit_file(str(unit), "nm-cloud-setup") == 0


def test_find_unit_file(tmp_path):
    first = tmp_path / "a"
    second = tmp_path / "b"
    first.mkdir()
    second.mkdir()
    (second / "rke2-server.service").write_text(UNIT_TEXT)
    found = service.find_unit_file("rke2-server.service", [str(first), str(second)])
    assert found == str(second / "rke2-server.service")
    with pytest.raises(FileNotFoundError):
        service.find_unit_file("rke2-server.service", [str(first)])


def test_install_rke2_pipes_script_to_sh(monkeypatch):
    monkeypatch.setattr(service, "download_installer", lambda url, timeout: "#!/bin/sh\necho installing\n")
    runner = FakeRunner()
    service.install_rke2(runner, RKE2Config(version="v1.30.4+rke2r1"))
    assert runner.calls == [["sh", "-"]]
    assert runner.inputs == ["#!/bin/sh\necho installing\n"]
    assert runner.envs[0] == {"INSTALL_RKE2_TYPE": "server", "INSTALL_RKE2_VERSION": "v1.30.4+rke2r1"}


def test_install_rke2_failure(monkeypatch):
    monkeypatch.setattr(service, "download_installer", lambda url, timeout: "exit 1\n")
    with pytest.raises(CommandError):
        service.install_rke2(FakeRunner(fail_on=[["sh"]]), RKE2Config())


def test_install_rke2_dry_run_downloads_nothing(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("download attempted")

    monkeypatch.setattr(service, "download_installer", fail)
    runner = FakeRunner()
    runner.dry_run = True
    service.install_rke2(runner, RKE2Config())
    assert runner.calls == []


def test_installer_env_channel():
    assert service.installer_env(RKE2Config(channel="latest")) == {
        "INSTALL_RKE2_TYPE": "server",
        "INSTALL_RKE2_CHANNEL": "latest",
    }


def test_download_installer_errors(monkeypatch):
    class Empty:
        text = "   "

        def raise_for_status(self):
            pass

    monkeypatch.setattr(service.requests, "get", lambda *a, **kw: Empty())
    with pytest.raises(NetworkError, match="empty"):
        service.download_installer("https://get.rke2.io")

    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(service.requests, "get", refuse)
    with pytest.raises(NetworkError):
        service.download_installer("https://get.rke2.io")


def test_systemctl_wrappers():
    runner = FakeRunner(outputs={("systemctl", "is-active", "rke2-server.service"): "activating\n"})
    service.daemon_reload(runner)
    service.enable_service(runner, "rke2-server.service")
    service.start_service(runner, "rke2-server.service")
    assert service.service_state(runner, "rke2-server.service") == "activating"
    assert not service.is_service_active(runner, "rke2-server.service")
    assert runner.calls[:3] == [
        ["systemctl", "daemon-reload"],
        ["systemctl", "enable", "rke2-server.service"],
        ["systemctl", "start", "rke2-server.service"],
    ]
