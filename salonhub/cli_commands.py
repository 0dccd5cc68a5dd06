"""
Flask CLI commands.

Commands:
- flask init-db: Create the tables of both partitions
- flask create-super-admin: Create a platform super admin
- flask expire-subscriptions: Expire trials and plans past their end date
"""
import re

import click

from salonhub import database
from salonhub.models import User, UserRole
from salonhub.services.super_admin_service import expire_overdue_subscriptions

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables first')
    def init_db_command(drop):
        """Create the platform and tenant schemas."""
        if drop:
            click.confirm('This deletes ALL data in both partitions. Continue?', abort=True)
            database.drop_all()
        database.create_all()
        click.echo(click.style('Platform and tenant tables created.', fg='green'))

    @app.cli.command('create-super-admin')
    @click.option('--email', prompt=True, help='Super admin email address')
    @click.option('--name', default='Super Admin', show_default=True, help='Display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
    def create_super_admin(email, name, password):
        """Create a platform super admin account."""
        email = email.strip().lower()
        if not re.match(EMAIL_PATTERN, email):
            click.echo(click.style('Invalid email. Use the form user@example.com', fg='red'))
            raise SystemExit(1)

        if len(password) < 8:
            click.echo(click.style('Password must be at least 8 characters.', fg='red'))
            raise SystemExit(1)

        session = database.get_session()
        if session.query(User).filter_by(email=email).first():
            click.echo(click.style(f'A user with email {email} already exists.', fg='red'))
            raise SystemExit(1)

        try:
            user = User(email=email, name=name, role=UserRole.SUPER_ADMIN.value, active=True, email_verified=True)
            user.set_password(password)
            session.add(user)
            session.commit()
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Could not create super admin: {e}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('Super admin created.', fg='green', bold=True))
        click.echo(f'   Email: {email}')
        click.echo(f'   ID: {user.id}')

    @app.cli.command('expire-subscriptions')
    def expire_subscriptions():
        """Expire running subscriptions whose period has ended."""
        count = expire_overdue_subscriptions(database.get_session())
        click.echo(click.style(f'{count} subscription(s) expired.', fg='yellow' if count else 'green'))
