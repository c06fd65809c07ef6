#!/usr/bin/env python
"""
Management Script

CLI commands for the local store and the sync engine, plus the
Flask-Migrate ``db`` commands.

Usage:
    python manage.py sync-now
    python manage.py sync-status
    python manage.py pending-list [--collection daily_logs]
    python manage.py pending-discard <operation id>
    python manage.py store-export --output backup.json
    python manage.py store-clear
    python manage.py store-version

    python manage.py db upgrade
"""
import json
import os
import sys

# Add the backend directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# One-shot commands must not start the periodic timer or connectivity probe
os.environ.setdefault('SYNC_AUTO_START', '0')

from flask.cli import with_appcontext
import click

from caresync import create_app
from caresync.exceptions import CareSyncError
from caresync.services.context import get_offline_context
from caresync.services.sync.schema import SCHEMA_VERSION

# Create app instance
app = create_app()


@app.cli.command('sync-now')
@with_appcontext
def sync_now():
    """Run one drain cycle now."""
    ctx = get_offline_context()
    try:
        result = ctx.manager.force_sync()
    except CareSyncError as e:
        click.echo(click.style(f'✗ Sync failed: {e}', fg='red'))
        sys.exit(1)

    if not result.started:
        click.echo(f'Sync not started ({result.status.value if result.status else "busy"})')
        return

    color = 'green' if result.failed == 0 else 'yellow'
    click.echo(click.style(f'✓ Synced {result.success}, failed {result.failed}', fg=color))


@app.cli.command('sync-status')
@with_appcontext
def sync_status():
    """Show sync state and queue size."""
    status = get_offline_context().manager.get_status()
    click.echo(f"Status:     {status['status']}")
    click.echo(f"Online:     {status['is_online']}")
    click.echo(f"Pending:    {status['pending_count']}")
    click.echo(f"Exhausted:  {status['exhausted_count']} (retry_count >= {status['max_retries']})")


@app.cli.command('pending-list')
@click.option('--collection', default=None, help='Only operations targeting this collection')
@with_appcontext
def pending_list(collection):
    """List queued operations in replay order."""
    ctx = get_offline_context()
    items = ctx.queue.list_by_collection(collection) if collection else ctx.queue.list_pending()
    if not items:
        click.echo('No pending operations')
        return

    max_retries = ctx.manager.max_retries
    for item in items:
        line = (
            f'{item.id}  {item.operation.value:<6}  {item.collection:<14}  '
            f'target={item.target_id or "-"}  retries={item.retry_count}'
        )
        if item.retry_count >= max_retries:
            line = click.style(line + '  (exhausted)', fg='red')
        click.echo(line)
        if item.last_error:
            click.echo(f'    last error: {item.last_error}')


@app.cli.command('pending-discard')
@click.argument('op_id')
@with_appcontext
def pending_discard(op_id):
    """Drop one queued operation (the write is lost)."""
    ctx = get_offline_context()
    item = ctx.queue.get(op_id)
    if item is None:
        click.echo(click.style(f'✗ No pending operation {op_id}', fg='red'))
        sys.exit(1)

    ctx.queue.remove(op_id)
    click.echo(click.style(f'✓ Discarded {item.operation.value} on {item.collection}', fg='green'))


@app.cli.command('store-export')
@click.option('--output', '-o', type=click.Path(dir_okay=False, writable=True), default=None,
              help='Write the dump to this file instead of stdout')
@with_appcontext
def store_export(output):
    """Dump every local collection as JSON."""
    ctx = get_offline_context()
    dump = {
        'schema_version': ctx.store.schema_version,
        'collections': ctx.store.export_all(),
    }
    text = json.dumps(dump, ensure_ascii=False, indent=2)
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(text)
        total = sum(len(records) for records in dump['collections'].values())
        click.echo(click.style(f'✓ Exported {total} records to {output}', fg='green'))
    else:
        click.echo(text)


@app.cli.command('store-clear')
@click.confirmation_option(prompt='This deletes the local cache and every queued write. Continue?')
@with_appcontext
def store_clear():
    """Clear every local collection, pending queue included."""
    cleared = get_offline_context().store.clear_all()
    for name, count in cleared.items():
        click.echo(f'  - {name}: {count}')
    click.echo(click.style('✓ Local store cleared', fg='green'))


@app.cli.command('store-version')
@with_appcontext
def store_version():
    """Show the local schema version."""
    current = get_offline_context().store.schema_version
    click.echo(f'Local schema version: {current} (code: {SCHEMA_VERSION})')


if __name__ == '__main__':
    # Support running with flask CLI
    import subprocess

    if len(sys.argv) > 1 and sys.argv[1] == 'db':
        # Use flask db commands
        os.environ['FLASK_APP'] = 'manage.py'
        subprocess.run(['flask'] + sys.argv[1:])
    else:
        # Run custom commands
        app.cli()
