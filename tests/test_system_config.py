"""Tests for services/system_config.py - raspi-config driven settings."""

from unittest.mock import patch

from rpi_first_boot.domain.models import StepResult, StepStatus
from rpi_first_boot.services import system_config


def succeed(name, command, **kwargs):
    return StepResult.success(name)


class TestHostname:
    def test_model_number(self, write_file):
        path = write_file("model", "Raspberry Pi 4 Model B Rev 1.4\x00")

        assert system_config.read_model_number(path) == "4"

    def test_zero_w_model(self, write_file):
        path = write_file("model", "Raspberry Pi Zero W Rev 1.1\x00")

        assert system_config.read_model_number(path) == "Zero"

    def test_missing_model(self, tmp_path):
        assert system_config.read_model_number(tmp_path / "model") == ""

    def test_cpu_serial_drops_leading_characters(self, write_file):
        path = write_file(
            "cpuinfo",
            "processor\t: 0\nHardware\t: BCM2835\nSerial\t\t: 000000001a2b3c4d\nModel\t: Pi\n",
        )

        assert system_config.read_cpu_serial(path) == "2b3c4d"

    def test_cpu_serial_absent(self, write_file):
        assert system_config.read_cpu_serial(write_file("cpuinfo", "processor : 0\n")) == ""

    def test_hostname_with_tag(self):
        assert system_config.build_hostname("4", "1a2b3c4d", "lab") == "pi4-lab-1a2b3c4d"

    def test_hostname_without_tag(self):
        assert system_config.build_hostname("4", "1a2b3c4d") == "pi4-1a2b3c4d"


class TestDisableAcceptEnv:
    def test_comments_out_line(self, fake_system):
        result = system_config.disable_accept_env(fake_system["sshd_config"])

        assert result.ok is True
        text = fake_system["sshd_config"].read_text()
        assert "#AcceptEnv LANG LC_*" in text
        assert "\nAcceptEnv" not in text

    def test_already_disabled_is_ok(self, write_file):
        path = write_file("sshd_config", "#AcceptEnv LANG LC_*\n")

        assert system_config.disable_accept_env(path).ok is True
        assert path.read_text() == "#AcceptEnv LANG LC_*\n"

    def test_missing_file_fails(self, tmp_path):
        result = system_config.disable_accept_env(tmp_path / "sshd_config")

        assert result.status is StepStatus.FAILED


class TestConfigureSystem:
    @patch("rpi_first_boot.services.system_config.run_step", side_effect=succeed)
    def test_commands(self, mock_step, fake_system, make_config):
        config = make_config(
            new_timezone="Europe/Amsterdam",
            new_wifi_ssid="lab",
            new_wifi_password="hunter2",
            new_ssh_setting=1,
        )

        result = system_config.configure_system(
            config, hostname="pi4-1a2b3c4d", sshd_config=fake_system["sshd_config"]
        )

        commands = [call.args[1] for call in mock_step.call_args_list]
        assert commands == [
            ["raspi-config", "nonint", "do_change_timezone", "Europe/Amsterdam"],
            ["raspi-config", "nonint", "do_hostname", "pi4-1a2b3c4d"],
            ["raspi-config", "nonint", "do_ssh", "1"],
            ["raspi-config", "nonint", "do_wifi_country", "GB"],
            ["raspi-config", "nonint", "do_wifi_ssid_passphrase", "lab", "hunter2"],
            ["raspi-config", "nonint", "do_change_locale", "en_GB.UTF-8"],
        ]
        assert mock_step.call_args_list[4].kwargs["secrets"] == ["hunter2"]
        assert mock_step.call_args_list[2].args[0] == "Set SSH to off"
        assert len(result.steps) == 7
        assert result.ok is True

    @patch("rpi_first_boot.services.system_config.read_cpu_serial", return_value="1a2b3c4d")
    @patch("rpi_first_boot.services.system_config.read_model_number", return_value="3")
    @patch("rpi_first_boot.services.system_config.run_step", side_effect=succeed)
    def test_derives_hostname(self, mock_step, mock_model, mock_serial, fake_system, make_config):
        system_config.configure_system(
            make_config(new_hostname_tag="lab"), sshd_config=fake_system["sshd_config"]
        )

        assert mock_step.call_args_list[1].args[1][-1] == "pi3-lab-1a2b3c4d"

    @patch("rpi_first_boot.services.system_config.run_step")
    def test_failure_does_not_stop_phase(self, mock_step, fake_system, default_config):
        mock_step.side_effect = lambda name, command, **kwargs: (
            StepResult.failure(name, "rc=1") if "do_hostname" in command else StepResult.success(name)
        )

        result = system_config.configure_system(
            default_config, hostname="pi", sshd_config=fake_system["sshd_config"]
        )

        assert mock_step.call_count == 6
        assert len(result.failed_steps) == 1
