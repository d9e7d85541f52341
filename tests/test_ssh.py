"""Tests for SSH remote execution and reachability polling."""

from unittest.mock import MagicMock, patch

import pytest

from wksl.core.ssh import run_command, wait_for_ssh


class TestWaitForSsh:
    """Tests for wait_for_ssh."""

    @patch("wksl.core.ssh.socket.create_connection")
    def test_returns_true_when_reachable(self, mock_conn: MagicMock) -> None:
        result = wait_for_ssh("desktop.lan", timeout=10)

        assert result is True
        mock_conn.assert_called_once_with(("desktop.lan", 22), timeout=5.0)

    @patch("wksl.core.ssh.time.sleep")
    @patch("wksl.core.ssh.time.monotonic", side_effect=[0.0, 0.5, 2.0])
    @patch("wksl.core.ssh.socket.create_connection", side_effect=OSError)
    def test_returns_false_after_deadline(
        self, mock_conn: MagicMock, mock_clock: MagicMock, mock_sleep: MagicMock
    ) -> None:
        result = wait_for_ssh("desktop.lan", timeout=1, poll_interval=5.0)

        assert result is False
        assert mock_conn.call_count == 2
        # Never sleeps past the deadline
        mock_sleep.assert_called_once_with(0.5)

    @patch("wksl.core.ssh.time.sleep")
    @patch("wksl.core.ssh.socket.create_connection")
    def test_succeeds_on_second_attempt(self, mock_conn: MagicMock, mock_sleep: MagicMock) -> None:
        mock_conn.side_effect = [ConnectionRefusedError, MagicMock()]

        result = wait_for_ssh("desktop.lan", port=2222, timeout=30, poll_interval=1.0)

        assert result is True
        assert mock_conn.call_count == 2
        mock_sleep.assert_called_once_with(1.0)


class TestRunCommand:
    """Tests for run_command via paramiko."""

    def _make_mock_client(
        self, stdout_data: str = "", stderr_data: str = "", exit_code: int = 0
    ) -> MagicMock:
        mock_stdout = MagicMock()
        mock_stdout.read.return_value = stdout_data.encode()
        mock_stdout.channel.recv_exit_status.return_value = exit_code
        mock_stderr = MagicMock()
        mock_stderr.read.return_value = stderr_data.encode()
        mock_client = MagicMock()
        mock_client.exec_command.return_value = (MagicMock(), mock_stdout, mock_stderr)
        return mock_client

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_returns_exit_code_and_output(self, mock_ssh_cls: MagicMock) -> None:
        mock_ssh_cls.return_value = self._make_mock_client(stdout_data="suspending\n")

        ec, out, err = run_command("nas.lan", "systemctl suspend")

        assert ec == 0
        assert out == "suspending\n"
        assert err == ""

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_returns_nonzero_exit_code(self, mock_ssh_cls: MagicMock) -> None:
        mock_ssh_cls.return_value = self._make_mock_client(stderr_data="denied", exit_code=1)

        ec, _, err = run_command("nas.lan", "systemctl suspend")

        assert ec == 1
        assert err == "denied"

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_connect_arguments(self, mock_ssh_cls: MagicMock) -> None:
        mock_client = self._make_mock_client()
        mock_ssh_cls.return_value = mock_client

        run_command("nas.lan", "cmd", user="admin", port=2222, key_path="~/.ssh/id_ed25519", connect_timeout=7)

        args, kwargs = mock_client.connect.call_args
        assert args == ("nas.lan",)
        assert kwargs["username"] == "admin"
        assert kwargs["port"] == 2222
        assert kwargs["timeout"] == 7
        assert kwargs["key_filename"].endswith("id_ed25519")
        assert not kwargs["key_filename"].startswith("~")
        assert kwargs["look_for_keys"] is False

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_default_keys_used_without_key_path(self, mock_ssh_cls: MagicMock) -> None:
        mock_client = self._make_mock_client()
        mock_ssh_cls.return_value = mock_client

        run_command("nas.lan", "cmd")

        kwargs = mock_client.connect.call_args[1]
        assert kwargs["look_for_keys"] is True
        assert kwargs["allow_agent"] is True
        assert "key_filename" not in kwargs

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_client_closed_after_command(self, mock_ssh_cls: MagicMock) -> None:
        mock_client = self._make_mock_client(exit_code=1)
        mock_ssh_cls.return_value = mock_client

        run_command("nas.lan", "cmd")

        mock_client.close.assert_called_once()

    @patch("wksl.core.ssh.paramiko.SSHClient")
    def test_client_closed_when_connect_fails(self, mock_ssh_cls: MagicMock) -> None:
        mock_client = self._make_mock_client()
        mock_client.connect.side_effect = OSError("unreachable")
        mock_ssh_cls.return_value = mock_client

        with pytest.raises(OSError):
            run_command("nas.lan", "cmd")

        mock_client.close.assert_called_once()
