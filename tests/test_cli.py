"""Tests for the command line interface."""

import csv
import io
import json

import pytest
from click.testing import CliRunner

from conftest import FakeWebsetsClient, enrichment, make_item
from prospector import cli as cli_module
from prospector.cli import cli, format_output, parse_criterion
from prospector.models import Prospect


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake(monkeypatch):
    fake = FakeWebsetsClient()
    monkeypatch.setattr(cli_module, "make_client", lambda settings: fake)
    return fake


@pytest.fixture
def fast_config(tmp_path):
    path = tmp_path / "prospector.yaml"
    path.write_text("cli_poll_interval: 0\nmax_polls: 5\n")
    return str(path)


class TestParseCriterion:
    """Test "type:value" parsing."""

    def test_typed(self):
        criterion = parse_criterion("job_title:CTO")
        assert (criterion.type, criterion.value, criterion.label) == ("job_title", "CTO", "CTO")

    def test_type_case_insensitive(self):
        assert parse_criterion("Location: Berlin").type == "location"

    def test_unknown_prefix_is_other(self):
        criterion = parse_criterion("series:A funded")
        assert criterion.type == "other"
        assert criterion.value == "series:A funded"

    def test_plain_text(self):
        assert parse_criterion("Uses Rust").type == "other"


class TestFormatOutput:
    """Test output formats."""

    def prospects(self):
        return [
            Prospect(id="a", full_name="Ada Lovelace", company="Analytical", email="ada@example.com", fit_score=40),
            Prospect(id="b", full_name="Alan Turing", company="Bletchley", fit_score=15),
        ]

    def test_json(self):
        data = json.loads(format_output(self.prospects(), "json"))
        assert [p["fullName"] for p in data] == ["Ada Lovelace", "Alan Turing"]

    def test_jsonl(self):
        lines = format_output(self.prospects(), "jsonl").splitlines()
        assert json.loads(lines[1])["company"] == "Bletchley"

    def test_csv(self):
        rows = list(csv.DictReader(io.StringIO(format_output(self.prospects(), "csv"))))

        assert rows[0]["full_name"] == "Ada Lovelace"
        assert rows[0]["email"] == "ada@example.com"
        assert rows[1]["email"] == ""

    def test_tsv_without_headers(self):
        output = format_output(self.prospects(), "tsv", no_headers=True)

        assert not output.startswith("full_name")
        assert output.splitlines()[0].split("\t")[0] == "Ada Lovelace"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            format_output([], "xml")


class TestSearchCommand:
    """Test the search command."""

    def test_dry_run_prints_payload(self, runner):
        result = runner.invoke(cli, [
            "search", "CTOs at Berlin fintech startups",
            "-c", "job_title:CTO", "-c", "location:Berlin", "-e", "email", "-n", "10", "--dry-run",
        ])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["search"]["count"] == 10
        assert [c["description"] for c in payload["search"]["criteria"]] == ["CTO", "Berlin"]
        assert payload["enrichments"][0]["description"] == "Extract the person's email address"
        assert payload["externalId"].startswith("prospector:webset:")

    def test_invalid_target(self, runner):
        result = runner.invoke(cli, ["search", "CTOs", "-n", "0", "--dry-run"])
        assert result.exit_code == 2

    def test_search_to_target(self, runner, fake, fast_config):
        fake.seed_items = [
            make_item("a", title="Ada Lovelace - CTO at Analytical",
                      enrichments=[enrichment("Extract the person's email address", "ada@example.com")]),
            make_item("b", title="Alan Turing - CTO at Bletchley"),
        ]

        result = runner.invoke(cli, [
            "search", "CTOs", "-e", "email", "-n", "2", "-f", "json", "-q", "--config", fast_config,
        ])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        # Sorted by fit score
        assert [p["fullName"] for p in data] == ["Ada Lovelace", "Alan Turing"]
        assert fake.canceled == ["ws_1"]

    def test_require_email(self, runner, fake, fast_config):
        fake.seed_items = [
            make_item("a", title="Ada Lovelace",
                      enrichments=[enrichment("Extract the person's email address", "ada@example.com")]),
            make_item("b", title="Alan Turing"),
        ]

        result = runner.invoke(cli, [
            "search", "CTOs", "-n", "2", "-f", "jsonl", "-q", "--require-email", "--config", fast_config,
        ])

        assert result.exit_code == 0
        assert [json.loads(line)["id"] for line in result.stdout.splitlines()] == ["a"]

    def test_timeout_exits_nonzero(self, runner, fake, fast_config):
        result = runner.invoke(cli, ["search", "CTOs", "-n", "5", "-f", "json", "-q", "--config", fast_config])

        assert result.exit_code == 1
        assert json.loads(result.stdout) == []


class TestOtherCommands:
    """Test status, cancel, check and version."""

    def test_status_json(self, runner, fake):
        fake.add_webset("ws_1", status="running", found=4, analyzed=12)
        fake.add_items("ws_1", make_item("a", title="Ada Lovelace"))

        result = runner.invoke(cli, ["status", "ws_1", "-f", "json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "running"
        assert data["found"] == 4
        assert [p["fullName"] for p in data["prospects"]] == ["Ada Lovelace"]

    def test_cancel(self, runner, fake):
        fake.add_webset("ws_1", status="running")

        result = runner.invoke(cli, ["cancel", "ws_1"])

        assert result.exit_code == 0
        assert fake.canceled == ["ws_1"]

    def test_check_without_key(self, runner, monkeypatch):
        monkeypatch.delenv("EXA_API_KEY", raising=False)

        result = runner.invoke(cli, ["check"])

        assert result.exit_code == 1
        assert "EXA_API_KEY: not set" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])
        assert "prospector 1.0.0" in result.output
