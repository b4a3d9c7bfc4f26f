"""
Maintenance commands, run with ``flask --app api <command>``:
- create-admin          bootstrap an ADMIN account
- purge-refresh-tokens  delete expired refresh tokens
- purge-audit-logs      delete audit entries past retention

Audit entries written here have actor "system" (no request context).
"""
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from models import storage
from models.audit_log import ACTION_CLEANUP, ACTION_CREATE, RESOURCE_AUDIT_LOG, RESOURCE_REFRESH_TOKEN, RESOURCE_USER
from models.user import User
from utils.security import hash_password


def _security():
    return current_app.extensions["security"]


@click.command("create-admin")
@with_appcontext
@click.option("--username", required=True)
@click.option("--email", required=True)
@click.password_option()
def create_admin(username, email, password):
    """Create an ADMIN account."""
    if len(password) < 8:
        raise click.BadParameter("Password must be at least 8 characters long.", param_hint="password")
    session = storage.get_session()
    if session.query(User).filter((User.username == username) | (User.email == email)).first():
        raise click.ClickException("A user with that username or email already exists")
    user = User(
        username=username,
        email=email.strip().lower(),
        password_hash=hash_password(password),
        roles=["ADMIN"],
        enabled=True,
        failed_login_attempts=0,
    )
    storage.new(user)
    storage.save()
    audit = _security().audit
    audit.log_success(ACTION_CREATE, RESOURCE_USER, user.id, details=f"Bootstrapped admin: {username}")
    audit.flush()
    click.echo(f"Created admin {username} ({user.id})")


@click.command("purge-refresh-tokens")
@with_appcontext
def purge_refresh_tokens():
    """Delete expired refresh tokens."""
    security = _security()
    count = security.refresh_tokens.purge_expired()
    security.audit.log_success(
        ACTION_CLEANUP, RESOURCE_REFRESH_TOKEN, None, details=f"Purged {count} expired refresh tokens"
    )
    security.audit.flush()
    click.echo(f"Purged {count} expired refresh tokens")


@click.command("purge-audit-logs")
@with_appcontext
@click.option("--days", type=click.IntRange(min=1), default=None, help="Keep this many days (default: AUDIT_RETENTION_DAYS)")
def purge_audit_logs(days):
    """Delete audit log entries older than the retention period."""
    days = days or current_app.config["AUDIT_RETENTION_DAYS"]
    audit = _security().audit
    cutoff = audit.clock.now() - timedelta(days=days)
    count = audit.delete_older_than(cutoff)
    audit.log_success(
        ACTION_CLEANUP, RESOURCE_AUDIT_LOG, None, details=f"Removed {count} audit entries older than {days} days"
    )
    audit.flush()
    click.echo(f"Removed {count} audit log entries older than {days} days")


def register_commands(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(purge_refresh_tokens)
    app.cli.add_command(purge_audit_logs)
