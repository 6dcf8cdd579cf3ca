import allure
from click.testing import CliRunner

from issue_investigator import __version__
from issue_investigator.main import issue_investigator

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Entry Point"),
]


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(issue_investigator, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands():
    runner = CliRunner()
    result = runner.invoke(issue_investigator, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "trigger", "worker", "status", "forget", "release-worker"):
        assert command in result.output
