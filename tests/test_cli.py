"""
Tests for the command line — autosearch/cli.py
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner
from pytest_mock import MockerFixture

from autosearch.cli import main
from autosearch.settings import Settings
from autosearch.store import DOWNLOAD_READY, DurableStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def channel(mocker: MockerFixture) -> MagicMock:
    """Patch the CLI's CommandChannel and return the instance it will use."""
    cls = mocker.patch("autosearch.cli.CommandChannel")
    return cls.return_value


class TestCli:
    """Tests for the autosearch command group."""

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_start_sends_topics(
        self, runner: CliRunner, channel: MagicMock, mocker: MockerFixture, tmp_path: Path
    ) -> None:
        """start should fetch topics and send them with the chosen mode."""
        source = mocker.patch("autosearch.cli.TopicSource")
        source.return_value.fetch.return_value = ["a", "b"]
        channel.send.return_value = {"status": "Search started"}

        result = runner.invoke(
            main, ["--state-dir", str(tmp_path), "start", "--mode", "interval", "--count", "2"]
        )

        assert result.exit_code == 0, result.output
        source.return_value.fetch.assert_called_once_with(2)
        channel.send.assert_called_once_with(
            {"action": "startSearch", "queries": ["a", "b"], "mode": "interval"}
        )
        assert "Search started" in result.output

    def test_start_rejects_count_out_of_range(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["start", "--count", "0"])
        assert result.exit_code != 0

    def test_no_reply_exits_nonzero(
        self, runner: CliRunner, channel: MagicMock, tmp_path: Path
    ) -> None:
        """A command with no agent listening should fail with exit code 1."""
        channel.send.return_value = None
        result = runner.invoke(main, ["--state-dir", str(tmp_path), "stop-all"])
        assert result.exit_code == 1
        assert "No reply" in result.output

    @pytest.mark.parametrize(
        "command, action",
        [("stop-all", "stopAll"), ("stop-interval", "stopInterval")],
    )
    def test_stop_commands(
        self,
        runner: CliRunner,
        channel: MagicMock,
        tmp_path: Path,
        command: str,
        action: str,
    ) -> None:
        channel.send.return_value = {"status": "ok"}
        result = runner.invoke(main, ["--state-dir", str(tmp_path), command])
        assert result.exit_code == 0
        channel.send.assert_called_once_with({"action": action})

    def test_download_logs_writes_file(
        self, runner: CliRunner, channel: MagicMock, tmp_path: Path
    ) -> None:
        """download-logs should save the published payload to --output."""
        settings = Settings(state_dir=tmp_path)
        DurableStore(settings.store_path).set(
            {
                DOWNLOAD_READY: {
                    "content": "[2026-01-01 00:00:00] INFO: hello",
                    "timestamp": "2026-01-01T00:00:00+00:00",
                    "ready": True,
                }
            }
        )
        channel.send.return_value = {"status": "Logs download initiated"}
        output = tmp_path / "out.log"

        result = runner.invoke(
            main, ["--state-dir", str(tmp_path), "download-logs", "--output", str(output)]
        )

        assert result.exit_code == 0, result.output
        assert output.read_text() == "[2026-01-01 00:00:00] INFO: hello\n"

    def test_download_logs_without_logs(
        self, runner: CliRunner, channel: MagicMock, tmp_path: Path
    ) -> None:
        """A payload marked not ready should be reported as an error."""
        settings = Settings(state_dir=tmp_path)
        DurableStore(settings.store_path).set(
            {DOWNLOAD_READY: {"content": "", "ready": False, "error": "No logs available"}}
        )
        channel.send.return_value = {"status": "Logs download initiated"}

        result = runner.invoke(main, ["--state-dir", str(tmp_path), "download-logs"])

        assert result.exit_code == 1
        assert "No logs available" in result.output

    def test_download_logs_debounced(
        self, runner: CliRunner, channel: MagicMock, tmp_path: Path
    ) -> None:
        channel.send.return_value = {"status": "Download request ignored"}
        result = runner.invoke(main, ["--state-dir", str(tmp_path), "download-logs"])
        assert result.exit_code == 0
        assert "ignored" in result.output

    def test_run_builds_agent(
        self, runner: CliRunner, mocker: MockerFixture, tmp_path: Path
    ) -> None:
        """run should start an Agent with the requested startup policy."""
        agent_cls = mocker.patch("autosearch.main.Agent")
        result = runner.invoke(main, ["--state-dir", str(tmp_path), "run", "--fresh", "--headless"])

        assert result.exit_code == 0, result.output
        settings = agent_cls.call_args.args[0]
        assert settings.fresh_start is True
        assert settings.headless is True
        assert settings.state_dir == tmp_path
        agent_cls.return_value.run.assert_called_once()
