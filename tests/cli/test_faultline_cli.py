"""Tests for the faultline command line."""

from typer.testing import CliRunner

from faultline import __version__
from faultline.cli.main import app
from faultline.core.handler import Handler

runner = CliRunner()


class TestCli:
    """version, diagnose and send-test."""

    def test_version(self):
        """Test that the version is shown."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_diagnose(self, tmp_path):
        """Test that resources and guarded options are listed."""
        config = tmp_path / "faultline.yaml"
        config.write_text("client_id: client-5\nscope: exceptions\n", encoding="utf-8")

        result = runner.invoke(app, ["diagnose", "--config", str(config)])

        assert result.exit_code == 0
        assert "client-5" in result.stdout
        assert "report_post" in result.stdout
        assert Handler.get_instance().client_id == "client-5"

    def test_diagnose_missing_config(self, tmp_path):
        """Test that a missing config file is a usage error."""
        result = runner.invoke(app, ["diagnose", "--config", str(tmp_path / "absent.yaml")])

        assert result.exit_code != 0

    def test_send_test_without_sinks(self, tmp_path):
        """Test that the sample exception is reported locally when no sink is configured."""
        config = tmp_path / "faultline.yaml"
        config.write_text("report_post_url: null\nclient_id: null\n", encoding="utf-8")

        result = runner.invoke(app, ["send-test", "--config", str(config), "--message", "hello"])

        assert result.exit_code == 0
        assert "Exception - hello" in result.stdout
        assert len(Handler.get_instance().reported_exceptions) == 1
