"""Tests for server-list parsing."""

import pytest

from snapwarden.exceptions import ConfigurationError, ErrorCode
from snapwarden.models import BackupType, ScopeSelector
from snapwarden.serverlist import (
    ServerlistLayout,
    normalize_backup_type,
    normalize_scope,
    parse_line,
    parse_retention_days,
    parse_serverlist,
)


class TestNormalizers:
    """Tests for field normalization."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("incremental", BackupType.INCREMENTAL),
            ("INC", BackupType.INCREMENTAL),
            ("incr", BackupType.INCREMENTAL),
            ("i", BackupType.INCREMENTAL),
            ("Full", BackupType.FULL),
            ("f", BackupType.FULL),
        ],
    )
    def test_backup_type_synonyms(self, value, expected) -> None:
        assert normalize_backup_type(value) == expected

    def test_unknown_backup_type_uses_default(self) -> None:
        assert normalize_backup_type("weekly") == BackupType.INCREMENTAL
        assert normalize_backup_type("weekly", BackupType.FULL) == BackupType.FULL

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("OS", ScopeSelector.OS),
            ("root", ScopeSelector.OS),
            ("Data", ScopeSelector.DATA),
            (" both ", ScopeSelector.BOTH),
        ],
    )
    def test_scope_synonyms(self, value, expected) -> None:
        assert normalize_scope(value) == expected

    def test_unknown_scope_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            normalize_scope("all", "vm-1")

        assert exc_info.value.error_code == ErrorCode.CONFIG_SCOPE_INVALID

    @pytest.mark.parametrize("value", ["abc", "-1", "1.5", ""])
    def test_retention_must_be_digits(self, value) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_retention_days(value)

        assert exc_info.value.error_code == ErrorCode.CONFIG_RETENTION_INVALID

    def test_retention_zero(self) -> None:
        assert parse_retention_days(" 0 ") == 0


class TestParseLine:
    """Tests for parse_line."""

    def test_azure_layout(self) -> None:
        request = parse_line(" vm-app ; rg-prod ; inc ; 14 ; Both ; pre-patch ", 1)

        assert request.target == "vm-app"
        assert request.scope == "rg-prod"
        assert request.backup_type == BackupType.INCREMENTAL
        assert request.retention_days == 14
        assert request.selector == ScopeSelector.BOTH
        assert request.reason == "pre-patch"

    def test_reason_keeps_semicolons(self) -> None:
        request = parse_line("vm;rg;full;7;OS;change; ticket 42", 1)
        assert request.reason == "change; ticket 42"

    def test_reason_optional(self) -> None:
        assert parse_line("vm;rg;full;7;OS", 1).reason == ""

    def test_aws_layout(self) -> None:
        request = parse_line(
            "i-0abc;eu-west-1;30;Data;quarterly", 3, layout=ServerlistLayout.AWS
        )

        assert request.target == "i-0abc"
        assert request.scope == "eu-west-1"
        assert request.retention_days == 30
        assert request.selector == ScopeSelector.DATA
        assert request.backup_type == BackupType.INCREMENTAL

    def test_aws_layout_default_type(self) -> None:
        request = parse_line(
            "vol-1;us-east-1;5;OS", 1, layout=ServerlistLayout.AWS, default_backup_type=BackupType.FULL
        )
        assert request.backup_type == BackupType.FULL

    def test_missing_fields(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_line("vm;rg;inc", 4)

        assert exc_info.value.error_code == ErrorCode.CONFIG_ENTRY_INCOMPLETE
        assert exc_info.value.context["line_number"] == 4

    def test_bad_retention(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_line("vm;rg;inc;two weeks;OS", 1)

        assert exc_info.value.error_code == ErrorCode.CONFIG_RETENTION_INVALID


class TestParseServerlist:
    """Tests for parse_serverlist."""

    def test_file(self, tmp_path) -> None:
        path = tmp_path / "serverlist.txt"
        path.write_text(
            "# target;rg;type;retention;scope;reason\n"
            "\n"
            "vm-app;rg-prod;inc;14;Both;nightly\n"
            "vm-bad;rg-prod;inc;soon;Both;broken\n"
            "disk-1;rg-prod;full;7;OS;\n"
        )

        entries = parse_serverlist(path)

        assert [e.line_number for e in entries] == [3, 4, 5]
        assert [e.valid for e in entries] == [True, False, True]
        assert entries[1].error.error_code == ErrorCode.CONFIG_RETENTION_INVALID
        assert entries[1].request is None
        assert entries[2].request.target == "disk-1"

    def test_lines_iterable(self) -> None:
        entries = parse_serverlist(["i-1;us-east-1;3;OS"], layout="aws")

        assert len(entries) == 1
        assert entries[0].request.scope == "us-east-1"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            parse_serverlist(tmp_path / "nope.txt")

        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING

    def test_unknown_layout(self) -> None:
        with pytest.raises(ValueError):
            parse_serverlist([], layout="gcp")

    def test_entry_to_dict(self) -> None:
        entry = parse_serverlist(["vm;rg;inc;x;OS"])[0]
        data = entry.to_dict()

        assert data["valid"] is False
        assert data["target"] is None
        assert data["error"]["error_code"] == ErrorCode.CONFIG_RETENTION_INVALID.value
