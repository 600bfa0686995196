import csv
import re

import yaml
from click.testing import CliRunner

from tightbudget import database
from tightbudget.cli import main as cli


def write_config(tmp_path, **recurring):
    cfg = {
        "db_path": str(tmp_path / "tb.db"),
        "output_dir": str(tmp_path / "data"),
        "recurring": recurring,
    }
    path = tmp_path / "config.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(cfg, f)
    return path


def write_templates(tmp_path):
    path = tmp_path / "recurring.yaml"
    path.write_text(
        """\
- id: rent
  merchant: Landlord
  category: Housing
  amount: 1200
  frequency: MONTHLY
  start_date: 2025-01-31T09:00:00
  description: Rent
- id: salary
  merchant: Employer
  category: Salary
  amount: 3500
  type: income
  frequency: MONTHLY
  start_date: 2025-02-25T08:00:00
"""
    )
    return path


def invoke(cfg_path, *args, **kwargs):
    return CliRunner().invoke(cli, ["--config", str(cfg_path), *args], **kwargs)


def test_import_process_and_export(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    cfg_path = write_config(tmp_path, catch_up=True)

    res = invoke(cfg_path, "import", str(write_templates(tmp_path)), "--user", "3")
    assert res.exit_code == 0, res.output
    assert "Imported 2" in res.output

    res = invoke(cfg_path, "due", "--at", "2025-02-10T00:00:00")
    assert res.exit_code == 0, res.output
    assert "rent" in res.output
    assert "salary" not in res.output

    res = invoke(cfg_path, "process", "--at", "2025-03-01T00:00:00", "--output", "csv")
    assert res.exit_code == 0, res.output
    assert "Generated 3 transaction(s)." in res.output

    with open(tmp_path / "data" / "Recurring2025.csv", newline="") as f:
        rows = list(csv.reader(f))
    assert [r[2] for r in rows[1:]] == ["Landlord", "Employer", "Landlord"]

    res = invoke(cfg_path, "process", "--at", "2025-03-01T12:00:00")
    assert "already processed" in res.output

    rent = database.get_recurring(str(tmp_path / "tb.db"), "rent")
    assert rent.next_occurrence.date().isoformat() == "2025-03-31"
    assert rent.user_id == 3


def test_add_list_cancel_delete(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    cfg_path = write_config(tmp_path)

    res = invoke(
        cfg_path, "add", "--merchant", "Gym", "--category", "Health",
        "--amount", "30", "--frequency", "weekly", "--start", "2025-01-06",
    )
    assert res.exit_code == 0, res.output
    template_id = re.search(r"Created recurring transaction (\w+)\.", res.output).group(1)

    res = invoke(cfg_path, "list")
    assert "Gym" in res.output
    assert "Weekly" in res.output
    assert "[active]" in res.output

    res = invoke(cfg_path, "cancel", template_id)
    assert res.exit_code == 0, res.output
    assert "[cancelled]" in invoke(cfg_path, "list").output
    assert "No recurring" in invoke(cfg_path, "list", "--active-only").output

    assert invoke(cfg_path, "delete", template_id).exit_code == 0
    res = invoke(cfg_path, "delete", template_id)
    assert res.exit_code != 0
    assert "No recurring transaction" in res.output


def test_add_rejects_negative_amount(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    cfg_path = write_config(tmp_path)
    res = invoke(
        cfg_path, "add", "--merchant", "Gym", "--category", "Health",
        "--amount=-30", "--start", "2025-01-06",
    )
    assert res.exit_code != 0
    assert "negative" in res.output


def test_list_requires_database(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    res = invoke(write_config(tmp_path), "list")
    assert res.exit_code != 0
    assert "Database not found" in res.output


def test_purge_user(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    cfg_path = write_config(tmp_path)
    invoke(cfg_path, "import", str(write_templates(tmp_path)), "--user", "3")

    res = invoke(cfg_path, "purge-user", "3", "--yes")

    assert res.exit_code == 0, res.output
    assert "Deleted 2 template(s) and 0 transaction(s)." in res.output
    assert database.list_recurring(str(tmp_path / "tb.db")) == []


def test_import_reports_malformed_entries(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    cfg_path = write_config(tmp_path)
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just a string\n")

    res = invoke(cfg_path, "import", str(bad))

    assert res.exit_code != 0
    assert "must be a mapping" in res.output
    assert res.exception is None or isinstance(res.exception, SystemExit)


def test_unknown_log_level_is_rejected(tmp_path, monkeypatch):
    monkeypatch.delenv("TIGHTBUDGET_DB", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    cfg_path = write_config(tmp_path)

    res = invoke(cfg_path, "--log-level", "FOO", "list")
    assert res.exit_code == 2
    assert "Unknown logging level: FOO" in res.output

    monkeypatch.setenv("LOG_LEVEL", "FOO")
    res = invoke(cfg_path, "list")
    assert res.exit_code == 2
    assert "Unknown logging level" in res.output
