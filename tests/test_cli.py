"""Tests for the command line interface."""

import json

import pytest

from gangflow.cli import create_argument_parser, main


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestCli:
    """Test cases for gangflow commands."""

    def test_parser_requires_input_for_run(self):
        with pytest.raises(SystemExit):
            create_argument_parser().parse_args(["run", "research"])

    def test_no_command_prints_help(self, workdir, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_templates(self, workdir, capsys):
        assert main(["templates"]) == 0
        out = capsys.readouterr().out
        assert "research: research-gang" in out
        assert "analysis: analysis-gang" in out

    def test_run_template_in_demo_mode(self, workdir, capsys):
        assert main(["--demo", "--base-dir", str(workdir), "run", "research", "-i", "AI trends"]) == 0
        out = capsys.readouterr().out
        assert "Final node: researcher" in out
        assert "Demo response" in out

    def test_run_json_output(self, workdir, capsys):
        assert main(["--base-dir", str(workdir), "run", "analysis", "-i", "files", "--json"]) == 0
        record = json.loads(capsys.readouterr().out)
        assert record["final"]["nodeName"] == "analyzer"

    def test_test_command_writes_reports(self, workdir, capsys):
        assert main(["--demo", "--base-dir", str(workdir), "test", "research"]) == 0
        assert "1/1 tests passed" in capsys.readouterr().out
        assert (workdir / "gang_reports" / "research-gang_tests.md").exists()

    def test_failing_assertion_exit_code(self, workdir, single_member_config):
        single_member_config["tests"] = [
            {"name": "t", "input": "x", "asserts": [{"type": "contains", "target": "m1", "value": "never"}]}
        ]
        path = workdir / "gang.json"
        path.write_text(json.dumps(single_member_config))
        assert main(["--demo", "--base-dir", str(workdir), "test", str(path)]) == 1

    def test_invalid_config_exit_code(self, workdir, capsys):
        path = workdir / "broken.json"
        path.write_text(json.dumps({"name": "broken", "version": 1}))
        assert main(["--demo", "--base-dir", str(workdir), "run", str(path), "-i", "x"]) == 1
        assert "Missing required gang config field: llm" in capsys.readouterr().err
