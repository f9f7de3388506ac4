"""Tests for the snapwarden command-line interface."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import snapwarden.cli.main as cli_main
from snapwarden.cli.formatters import (
    CLEANUP_COLUMNS,
    JSONFormatter,
    TableColumn,
    TableData,
    TableFormatter,
    get_formatter,
)
from snapwarden.cli.main import EXIT_ENVIRONMENT, EXIT_FAILURES, EXIT_OK, EXIT_USAGE, main
from snapwarden.config import get_config
from snapwarden.exceptions import ProviderCallError
from snapwarden.models import SnapshotRecord


@pytest.fixture
def serverlist(tmp_path) -> Path:
    path = tmp_path / "serverlist.txt"
    path.write_text(
        "# target;rg;type;retention;scope;reason\n"
        "vm-app;rg-prod;inc;14;Both;nightly\n"
        "disk-standalone;rg-prod;full;3;OS;pre-upgrade\n"
    )
    return path


@pytest.fixture
def use_provider(provider, monkeypatch):
    """Route the CLI to the shared in-memory provider."""
    monkeypatch.setattr(cli_main, "create_provider", lambda config: provider)
    return provider


class TestTableFormatter:
    """Tests for the text table formatter."""

    def test_header_separator_rows(self) -> None:
        formatter = TableFormatter(
            columns=[TableColumn("id", "ID"), TableColumn("age", "AGE", align="right")]
        )

        text = formatter.format([{"id": "snap-1", "age": 3}, {"id": "s2", "age": 12}])

        assert text.splitlines() == [
            "ID      AGE",
            "------  ---",
            "snap-1    3",
            "s2       12",
        ]

    def test_missing_values_rendered_as_dash(self) -> None:
        formatter = TableFormatter(columns=[TableColumn("reason", "REASON")])
        assert formatter.format([{"reason": ""}]).splitlines()[-1] == "-"

    def test_truncation(self) -> None:
        formatter = TableFormatter(columns=[TableColumn("name", "NAME", width=8)])
        assert formatter.format([{"name": "abcdefghijkl"}]).splitlines()[-1] == "abcde..."

    def test_title_and_footer(self) -> None:
        data = TableData(
            columns=CLEANUP_COLUMNS,
            rows=[],
            title="Cleanup",
            footer="0 eligible",
        )

        lines = TableFormatter().format(data).splitlines()

        assert lines[0] == "Cleanup"
        assert lines[2].split() == ["SNAPSHOT_ID", "RETENTION", "START", "AGE", "DEL?"]
        assert lines[-1] == "0 eligible"


class TestJSONFormatter:
    """Tests for the JSON formatter."""

    def test_to_dict_objects(self) -> None:
        class Item:
            def to_dict(self):
                return {"a": 1}

        assert json.loads(JSONFormatter().format([Item()])) == [{"a": 1}]

    def test_datetimes_serialized(self) -> None:
        text = JSONFormatter(pretty=False).format({"at": datetime(2025, 1, 1)})
        assert text == '{"at": "2025-01-01 00:00:00"}'

    def test_get_formatter(self) -> None:
        assert isinstance(get_formatter("json"), JSONFormatter)
        assert isinstance(get_formatter("table"), TableFormatter)


class TestCreateCommand:
    """Tests for `snapwarden create`."""

    def test_dry_run_table(self, serverlist, use_provider, capsys) -> None:
        exit_code = main(["create", str(serverlist), "--dry-run"])

        out = capsys.readouterr().out
        assert exit_code == EXIT_OK
        assert "SNAPSHOT NAME" in out
        assert "automated-backup-root-1" in out
        assert "Dry run: 4 snapshot(s) would be created." in out
        assert use_provider.calls_to("create_snapshot") == []

    def test_run_creates(self, serverlist, use_provider, capsys) -> None:
        exit_code = main(["create", str(serverlist), "--run"])

        assert exit_code == EXIT_OK
        assert len(use_provider.snapshots) == 4
        assert "Created 4 snapshot(s), 0 disk failure(s)." in capsys.readouterr().out

    def test_run_with_failures(self, serverlist, use_provider) -> None:
        use_provider.fail_create_for.add("disk-standalone")

        assert main(["create", str(serverlist), "--run"]) == EXIT_FAILURES

    def test_invalid_entries_reported(self, tmp_path, use_provider, capsys) -> None:
        path = tmp_path / "bad.txt"
        path.write_text("vm-app;rg-prod;inc;forever;Both;\n")

        exit_code = main(["create", str(path), "--dry-run"])

        assert exit_code == EXIT_FAILURES
        assert "line 1: Invalid RetentionDays 'forever'" in capsys.readouterr().out

    def test_json_output(self, serverlist, use_provider, capsys) -> None:
        main(["create", str(serverlist), "--dry-run", "--output", "json"])

        payload = json.loads(capsys.readouterr().out)
        assert payload["dry_run"] is True
        assert payload["entries"] == 2
        assert len(payload["outcomes"][0]["planned"]) == 3

    def test_missing_serverlist(self, tmp_path, use_provider) -> None:
        assert main(["create", str(tmp_path / "nope.txt"), "--dry-run"]) == EXIT_USAGE

    def test_mode_required(self, serverlist) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["create", str(serverlist)])

        assert exc_info.value.code == EXIT_USAGE

    def test_modes_exclusive(self, serverlist) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["create", str(serverlist), "--dry-run", "--run"])

        assert exc_info.value.code == EXIT_USAGE

    def test_environment_error(self, serverlist, use_provider) -> None:
        use_provider.authenticated = False

        assert main(["create", str(serverlist), "--run"]) == EXIT_ENVIRONMENT
        assert use_provider.calls_to("create_snapshot") == []

    def test_unknown_provider_in_config(self, serverlist, tmp_path) -> None:
        config = tmp_path / "snapwarden.yaml"
        config.write_text("provider:\n  name: gcp\n")

        assert main(["--config", str(config), "create", str(serverlist), "--dry-run"]) == EXIT_ENVIRONMENT

    def test_missing_config_file(self, serverlist, tmp_path) -> None:
        missing = str(tmp_path / "missing.yaml")
        assert main(["--config", missing, "create", str(serverlist), "--dry-run"]) == EXIT_USAGE

    def test_explicit_config_wins_over_working_directory(
        self, serverlist, use_provider, tmp_path
    ) -> None:
        Path("snapwarden.yaml").write_text("logging: [broken\n")
        config = tmp_path / "custom.yaml"
        config.write_text("logging:\n  log_dir: custom_logs\n")

        exit_code = main(["--config", str(config), "create", str(serverlist), "--dry-run"])

        assert exit_code == EXIT_OK
        assert get_config().logging.log_dir == "custom_logs"
        assert list(Path("custom_logs").glob("create-*.jsonl"))

    def test_per_run_log_file(self, serverlist, use_provider) -> None:
        main(["create", str(serverlist), "--dry-run"])

        logs = list(Path("snapshot_logs").glob("create-*.jsonl"))
        assert len(logs) == 1
        events = [json.loads(line)["event"] for line in logs[0].read_text().splitlines() if line]
        assert "run_started" in events
        assert "snapshot_previewed" in events


class TestCleanupCommand:
    """Tests for `snapwarden cleanup`."""

    @pytest.fixture
    def aged(self, use_provider):
        now = datetime.now(timezone.utc)
        for snapshot_id, age, retention in [("old", 30, "7"), ("young", 1, "7"), ("dflt", 20, "x")]:
            use_provider.add_snapshot(
                SnapshotRecord(
                    snapshot_id=snapshot_id,
                    created_at=now - timedelta(days=age),
                    tags={"AutomatedBackup": "true", "RetentionDays": retention},
                )
            )
        return use_provider

    def test_dry_run_is_default(self, aged, capsys) -> None:
        exit_code = main(["cleanup"])

        out = capsys.readouterr().out
        assert exit_code == EXIT_OK
        assert "DEL?" in out
        assert "Dry run: 2 of 3 snapshot(s) eligible for deletion." in out
        assert aged.calls_to("delete_snapshot") == []

    def test_run_deletes(self, aged, capsys) -> None:
        exit_code = main(["cleanup", "--run"])

        assert exit_code == EXIT_OK
        assert set(aged.snapshots) == {"young"}
        assert "Deleted 2 snapshot(s), 0 failure(s)." in capsys.readouterr().out

    def test_delete_failure_exit_code(self, aged) -> None:
        aged.fail_delete_for.add("old")

        assert main(["cleanup", "--run"]) == EXIT_FAILURES
        assert "old" in aged.snapshots
        assert "dflt" not in aged.snapshots

    def test_json_output(self, aged, capsys) -> None:
        main(["cleanup", "--output", "json"])

        payload = json.loads(capsys.readouterr().out)
        decisions = {d["snapshot_id"]: d for d in payload["decisions"]}
        assert decisions["dflt"]["retention_days"] == 14
        assert decisions["dflt"]["retention_defaulted"] is True
        assert decisions["young"]["eligible"] is False

    def test_environment_error(self, aged) -> None:
        aged.authenticated = False
        assert main(["cleanup", "--run"]) == EXIT_ENVIRONMENT

    def test_scan_failure_exit_code(self, aged, capsys) -> None:
        def throttled(tag_filter):
            raise ProviderCallError.call_failed("memory", "list_snapshots", "RequestLimitExceeded")

        aged.list_snapshots = throttled

        assert main(["cleanup", "--run"]) == EXIT_FAILURES
        assert "RequestLimitExceeded" in capsys.readouterr().err
        assert aged.calls_to("delete_snapshot") == []
