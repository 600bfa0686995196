# tightbudget/templates.py
from datetime import date, datetime

import yaml

from tightbudget.core.models import RecurringTransaction
from tightbudget.recurring import new_recurring_transaction
from tightbudget.timeutil import to_millis


def _parse_timestamp(value, field_name, entry):
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return to_millis(value)
    if isinstance(value, str):
        try:
            return to_millis(datetime.fromisoformat(value))
        except ValueError as exc:
            raise ValueError(f"Invalid {field_name} in recurring entry: {entry}") from exc
    raise ValueError(f"Unrecognized {field_name} in recurring entry: {entry}")


def _parse_direction(entry) -> bool:
    if "is_expense" in entry:
        return bool(entry["is_expense"])
    kind = str(entry.get("type", "expense")).lower()
    if kind not in ("expense", "income"):
        raise ValueError(f"'type' must be expense or income in recurring entry: {entry}")
    return kind == "expense"


def _build_template(entry, default_user_id, now) -> RecurringTransaction:
    if not isinstance(entry, dict):
        raise ValueError(f"Recurring entry must be a mapping: {entry}")
    start = _parse_timestamp(entry.get("start_date"), "start_date", entry)
    if start is None:
        raise ValueError(f"Missing 'start_date' in recurring entry: {entry}")
    nxt = _parse_timestamp(entry.get("next_occurrence"), "next_occurrence", entry)

    amount = entry.get("amount", 0)
    try:
        template = new_recurring_transaction(
            user_id=int(entry.get("user_id", default_user_id)),
            merchant=str(entry.get("merchant", "")),
            category=str(entry.get("category", "")),
            amount=amount,
            is_expense=_parse_direction(entry),
            frequency=str(entry.get("frequency", "MONTHLY")).upper(),
            start_date_timestamp=start,
            next_occurrence_timestamp=nxt,
            description=entry.get("description"),
            receipt_path=entry.get("receipt_path"),
            template_id=entry.get("id"),
            now=now,
        )
    except ValueError as exc:
        raise ValueError(f"{exc} Entry: {entry}") from exc
    if entry.get("active") is False:
        template.is_active = False
    return template


def load_recurring_templates(path, default_user_id: int = 0, now: int | None = None):
    """Load recurring transaction templates from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or []
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of recurring entries in {path}")
    return [_build_template(entry, default_user_id, now) for entry in data]
