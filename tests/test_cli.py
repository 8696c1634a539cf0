from uuid import uuid4

import pytest

from orbit_api.core.config import settings
from orbit_api.middleware.auth import TokenManager
from orbit_cli import cli
from orbit_cli.verification import check_environment, issue_token, run_export, run_import, run_purge_audit_logs


def test_parser_requires_org_for_import():
    parser = cli.create_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["import", "companies", "companies.csv"])

    args = parser.parse_args(["import", "companies", "companies.csv", "--org-id", str(uuid4()), "--mode", "overwrite"])
    assert args.mode == "overwrite"


def test_parser_rejects_unknown_role():
    with pytest.raises(SystemExit):
        cli.create_parser().parse_args(["issue-token", "--user-id", str(uuid4()), "--org-id", str(uuid4()), "--role", "owner"])


def test_main_without_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "orbit-cli" in capsys.readouterr().out


def test_check_environment_in_testing():
    result = check_environment()

    assert result.success
    assert result.data["environment"] == "testing"
    assert result.data["database"] == "sqlite"


def test_issue_token_round_trips():
    user_id, org_id = uuid4(), uuid4()

    result = issue_token(user_id, org_id, role="viewer", email="ops@acme.test")

    assert result.success
    claims = TokenManager.verify_token(result.data["token"])
    assert claims["sub"] == str(user_id)
    assert claims["org_id"] == str(org_id)
    assert claims["role"] == "viewer"


def test_issue_token_refused_in_production(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")

    result = issue_token(uuid4(), uuid4())

    assert not result.success
    assert "production" in result.message


def test_issue_token_command_prints_token(capsys):
    code = cli.main(["issue-token", "--user-id", str(uuid4()), "--org-id", str(uuid4())])

    assert code == 0
    assert "Token issued" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_import_then_export(tmp_path, org):
    source = tmp_path / "markets.csv"
    source.write_text("Market,Population\nMadison WI,680000\nFort Wayne IN,420000\n", encoding="utf-8")

    imported = await run_import("markets", source, org.id)

    assert imported.success
    assert imported.data["created"] == 2

    target = tmp_path / "out.csv"
    exported = await run_export("markets", org.id, output=target)

    assert exported.success
    assert exported.data["rows"] == 2
    assert target.read_text(encoding="utf-8").startswith("name,state,metro_population")


@pytest.mark.asyncio
async def test_import_missing_file(tmp_path, org):
    result = await run_import("companies", tmp_path / "nope.csv", org.id)

    assert not result.success
    assert result.message.startswith("File not found")


@pytest.mark.asyncio
async def test_export_unknown_organization():
    result = await run_export("companies", uuid4())

    assert not result.success
    assert "not found" in result.message


@pytest.mark.asyncio
async def test_purge_audit_logs_uses_retention_setting(org):
    result = await run_purge_audit_logs()

    assert result.success
    assert result.data == {"purged": 0, "older_than_days": settings.audit_log_retention_days}


@pytest.mark.asyncio
async def test_purge_audit_logs_rejects_non_positive_days():
    result = await run_purge_audit_logs(0)

    assert not result.success


def test_parser_accepts_purge_days():
    args = cli.create_parser().parse_args(["purge-audit-logs", "--days", "30"])

    assert args.command == "purge-audit-logs"
    assert args.days == 30
