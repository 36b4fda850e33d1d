from __future__ import annotations

import argparse
import signal

import pytest

import plhm_relay_service
from plhm_relay.acquisition import AcquisitionFailure
from plhm_relay.cli import apply_overrides
from plhm_relay.config import AppConfig


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch):
    installed = []
    monkeypatch.setattr(signal, "signal", lambda signum, handler: installed.append(signum))
    return installed


class FakeRunner:
    behaviour = None
    instances = []

    def __init__(self, service, listen_port=0):
        self.service = service
        self.listen_port = listen_port
        FakeRunner.instances.append(self)

    def run(self):
        if FakeRunner.behaviour is not None:
            raise FakeRunner.behaviour


@pytest.fixture
def fake_runner(monkeypatch):
    FakeRunner.behaviour = None
    FakeRunner.instances = []
    monkeypatch.setattr(plhm_relay_service, "ServiceRunner", FakeRunner)
    return FakeRunner


def test_parser_short_flags() -> None:
    args = plhm_relay_service.build_parser().parse_args(
        ["-D", "-d", "/dev/ttyS1", "-P", "-E", "-T", "-o", "-H", "-s", "osc.udp://h:1", "-l", "9000", "-m"]
    )
    assert args.daemon and args.position and args.euler and args.timestamp
    assert args.device == "/dev/ttyS1"
    assert args.output == "-"
    assert args.hex and args.mapper
    assert args.send == "osc.udp://h:1"
    assert args.listen == 9000
    assert args.poll is None


def test_poll_flag_without_value_means_as_fast_as_possible() -> None:
    args = plhm_relay_service.build_parser().parse_args(["-P", "-p"])
    assert args.poll == plhm_relay_service.POLL_AS_FAST_AS_POSSIBLE
    args = plhm_relay_service.build_parser().parse_args(["-P", "-p", "12.5"])
    assert args.poll == 12.5


def test_apply_overrides_maps_every_flag() -> None:
    args = argparse.Namespace(
        device="/dev/ttyS3",
        transport="sim",
        reset=True,
        daemon=True,
        position=True,
        euler=False,
        timestamp=True,
        poll=0.0,
        quiet=True,
        output="out.txt",
        hex=True,
        send="osc.udp://localhost:9999",
        listen=7000,
        mapper=True,
    )
    config = apply_overrides(AppConfig(), args)
    assert config.device.path == "/dev/ttyS3"
    assert config.device.transport == "sim"
    assert config.device.reset is True
    assert config.acquisition.daemon is True
    assert config.acquisition.position is True
    assert config.acquisition.euler is False
    assert config.acquisition.poll_mode is True
    assert config.acquisition.poll_period_us == 0
    assert config.acquisition.show_rate is False
    assert config.output.path == "out.txt"
    assert config.output.hex_floats is True
    assert config.network.send_url == "osc.udp://localhost:9999"
    assert config.network.listen_port == 7000
    assert config.mapping.enabled is True


def test_apply_overrides_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        apply_overrides(AppConfig(), argparse.Namespace(poll=-1.0))
    with pytest.raises(ValueError):
        apply_overrides(AppConfig(), argparse.Namespace(listen=70000))


def test_main_requires_requested_data(capsys, fake_runner) -> None:
    assert plhm_relay_service.main(["--transport", "sim"]) == 1
    assert "No data requested" in capsys.readouterr().err
    assert fake_runner.instances == []


def test_main_rejects_non_positive_poll_period() -> None:
    with pytest.raises(SystemExit):
        plhm_relay_service.main(["-P", "-p", "0"])


def test_main_missing_config_file(tmp_path, capsys) -> None:
    assert plhm_relay_service.main(["-P", "--config", str(tmp_path / "missing.yaml")]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_main_bad_send_url(capsys, fake_runner) -> None:
    assert plhm_relay_service.main(["-P", "-s", "http://localhost:9999"]) == 1
    assert "Couldn't open OSC address" in capsys.readouterr().err


def test_main_runs_and_installs_signal_handlers(fake_runner, no_signal_handlers) -> None:
    assert plhm_relay_service.main(["-P", "--transport", "sim", "-l", "9000"]) == 0
    runner = fake_runner.instances[0]
    assert runner.listen_port == 9000
    assert runner.service.config.device.transport == "sim"
    assert signal.SIGINT in no_signal_handlers
    assert signal.SIGTERM in no_signal_handlers


def test_main_reports_acquisition_failure(capsys, fake_runner) -> None:
    fake_runner.behaviour = AcquisitionFailure("find_device", RuntimeError("Could not find device"))
    assert plhm_relay_service.main(["-E", "--transport", "sim"]) == 1
    assert "[plhm] error: find_device" in capsys.readouterr().err


def test_main_plhm_transport_without_driver_fails_cleanly(capsys) -> None:
    assert plhm_relay_service.main(["-P", "--transport", "plhm"]) == 1
    assert "device.driver" in capsys.readouterr().err


def test_main_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        plhm_relay_service.main(["-V"])
    assert excinfo.value.code == 0
    assert "0.1.0" in capsys.readouterr().out
