# tightbudget/cli.py
import logging
import os

import click
from dotenv import load_dotenv

from tightbudget import database, recurring
from tightbudget.config import DEFAULT_CONFIG, load_config, save_config
from tightbudget.outputs import get_output
from tightbudget.templates import load_recurring_templates
from tightbudget.timeutil import from_millis, now_millis, to_millis


def _require_db(db_path):
    if not os.path.exists(db_path):
        raise click.ClickException(f"Database not found: {db_path}")


def _parse_time(value):
    if not value:
        return now_millis()
    try:
        return to_millis(value)
    except ValueError:
        raise click.BadParameter(f"Invalid ISO timestamp: {value}", param_hint="--at")


def _format_template(t, now):
    status = "active" if t.is_active else "cancelled"
    direction = "-" if t.is_expense else "+"
    days = t.days_until_next(now)
    when = f"in {days} day(s)" if days >= 0 else f"{-days} day(s) overdue"
    return (
        f"{t.id}  {t.merchant:<20} {t.category:<14} {direction}{t.amount:>10.2f}  "
        f"{t.frequency_label():<8} next {t.next_occurrence.date().isoformat()} "
        f"({when}) [{status}]"
    )


@click.group()
@click.option(
    '--config', 'config_path',
    default='config.yaml',
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (defaults apply when it does not exist)'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides config)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with TIGHTBUDGET_DB / LOG_LEVEL overrides'
)
@click.option('--log-level', default=None, help='Logging level, e.g. DEBUG')
@click.pass_context
def main(ctx, config_path, db_path, env_file, log_level):
    """Manage recurring transaction templates and generate due transactions."""
    if env_file:
        load_dotenv(env_file)
    try:
        cfg = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))

    level = str(log_level or cfg['log_level']).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise click.BadParameter(f"Unknown logging level: {level}", param_hint="--log-level")
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg
    ctx.obj['config_path'] = config_path
    ctx.obj['db_path'] = db_path or cfg['db_path']


@main.command('init-config')
@click.pass_context
def init_config(ctx):
    """Write the default configuration to the --config path."""
    path = ctx.obj['config_path']
    if os.path.exists(path):
        raise click.ClickException(f"Refusing to overwrite existing {path}")
    save_config(DEFAULT_CONFIG, path)
    click.echo(f"Wrote default configuration to {path}.")


@main.command()
@click.option('--user', 'user_id', type=int, default=0, show_default=True)
@click.option('--merchant', required=True)
@click.option('--category', required=True)
@click.option('--amount', required=True, type=str, help='Non-negative amount')
@click.option('--income', is_flag=True, default=False, help='Incoming rather than outgoing')
@click.option(
    '--frequency',
    default='MONTHLY',
    type=click.Choice(['DAILY', 'WEEKLY', 'MONTHLY', 'YEARLY'], case_sensitive=False),
)
@click.option('--start', 'start_date', required=True, help='ISO start date, e.g. 2025-01-31')
@click.option('--next', 'next_date', default=None, help='First occurrence (defaults to start)')
@click.option('--description', default=None)
@click.option('--receipt', 'receipt_path', default=None)
@click.pass_context
def add(ctx, user_id, merchant, category, amount, income, frequency,
        start_date, next_date, description, receipt_path):
    """Create a recurring transaction template."""
    try:
        template = recurring.new_recurring_transaction(
            user_id=user_id,
            merchant=merchant,
            category=category,
            amount=amount,
            is_expense=not income,
            frequency=frequency.upper(),
            start_date_timestamp=to_millis(start_date),
            next_occurrence_timestamp=to_millis(next_date) if next_date else None,
            description=description,
            receipt_path=receipt_path,
        )
    except ValueError as e:
        raise click.ClickException(str(e))
    database.save_recurring(ctx.obj['db_path'], template)
    click.echo(f"Created recurring transaction {template.id}.")


@main.command('import')
@click.argument('templates_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--user', 'user_id', type=int, default=0, show_default=True)
@click.pass_context
def import_templates(ctx, templates_file, user_id):
    """Import recurring templates from a YAML file."""
    try:
        templates = load_recurring_templates(templates_file, default_user_id=user_id)
    except ValueError as e:
        raise click.ClickException(f"Error loading recurring templates: {e}")
    for template in templates:
        database.save_recurring(ctx.obj['db_path'], template)
    click.echo(f"Imported {len(templates)} recurring transaction(s).")


@main.command('list')
@click.option('--user', 'user_id', type=int, default=None)
@click.option('--active-only', is_flag=True, default=False)
@click.pass_context
def list_templates(ctx, user_id, active_only):
    """List recurring templates ordered by next occurrence."""
    db_path = ctx.obj['db_path']
    _require_db(db_path)
    now = now_millis()
    templates = database.list_recurring(db_path, user_id=user_id, active_only=active_only)
    if not templates:
        click.echo("No recurring transactions.")
        return
    for t in templates:
        click.echo(_format_template(t, now))


@main.command()
@click.option('--user', 'user_id', type=int, default=None)
@click.option('--at', 'at', default=None, help='ISO timestamp to evaluate instead of now')
@click.pass_context
def due(ctx, user_id, at):
    """Show templates that are due."""
    db_path = ctx.obj['db_path']
    _require_db(db_path)
    now = _parse_time(at)
    templates = [
        t for t in database.list_recurring(db_path, user_id=user_id, active_only=True)
        if t.is_due(now)
    ]
    if not templates:
        click.echo("Nothing is due.")
        return
    for t in templates:
        click.echo(_format_template(t, now))


@main.command()
@click.option('--force', is_flag=True, default=False,
              help='Process even if a run already happened today')
@click.option('--at', 'at', default=None, help='ISO timestamp to process as of')
@click.option(
    '--output', 'output_format',
    default=None,
    type=click.Choice(['csv', 'excel']),
    help='Also export generated transactions'
)
@click.pass_context
def process(ctx, force, at, output_format):
    """Generate transactions for every due template."""
    cfg = ctx.obj['config']
    db_path = ctx.obj['db_path']
    opts = cfg['recurring']
    now = _parse_time(at)

    generated = recurring.process_if_needed(
        db_path,
        now,
        force=force,
        policy=opts['advance_policy'],
        catch_up=bool(opts['catch_up']),
        max_catch_up=int(opts['max_catch_up']),
    )
    if generated is None:
        click.echo(
            f"Recurring transactions already processed for "
            f"{from_millis(now).date().isoformat()}; use --force to run again."
        )
        return

    click.echo(f"Generated {len(generated)} transaction(s).")
    if output_format and generated:
        out_path = get_output(output_format, cfg).append(generated)
        click.echo(f"Exported to {out_path}.")


@main.command()
@click.argument('template_id')
@click.pass_context
def cancel(ctx, template_id):
    """Stop a template from generating further transactions."""
    db_path = ctx.obj['db_path']
    _require_db(db_path)
    if not recurring.cancel(db_path, template_id):
        raise click.ClickException(f"No recurring transaction {template_id}")
    click.echo(f"Cancelled {template_id}.")


@main.command()
@click.argument('template_id')
@click.pass_context
def delete(ctx, template_id):
    """Delete a template permanently."""
    db_path = ctx.obj['db_path']
    _require_db(db_path)
    if not database.delete_recurring(db_path, template_id):
        raise click.ClickException(f"No recurring transaction {template_id}")
    click.echo(f"Deleted {template_id}.")


@main.command('purge-user')
@click.argument('user_id', type=int)
@click.confirmation_option(prompt='Delete all templates and transactions for this user?')
@click.pass_context
def purge_user(ctx, user_id):
    """Delete every template and transaction owned by USER_ID."""
    db_path = ctx.obj['db_path']
    _require_db(db_path)
    counts = database.delete_user_data(db_path, user_id)
    click.echo(
        f"Deleted {counts['recurring_transactions']} template(s) and "
        f"{counts['transactions']} transaction(s)."
    )
