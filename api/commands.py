"""
Maintenance commands, run with `flask --app api <command>`:
- create-user: seed an account
- purge-refresh-tokens: retention job that deletes expired refresh-token rows
"""
import click
from flask import Flask

from models import storage
from models.user import User
from utils.security import hash_password
from utils.token_store import TokenStore


def register_commands(app: Flask) -> None:

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--role", default="user", show_default=True)
    @click.password_option()
    def create_user(username, role, password):
        """Create a user account."""
        username = username.strip().lower()
        session = storage.get_session()
        if session.query(User).filter(User.username == username).first():
            raise click.ClickException(f"User {username!r} already exists")
        user = User(username=username, password_hash=hash_password(password), role=role)
        user.save()
        click.echo(f"Created user {user.username} ({user.id}) with role {user.role}")

    @app.cli.command("purge-refresh-tokens")
    def purge_refresh_tokens():
        """Delete refresh tokens whose expiry has passed."""
        deleted = TokenStore().purge_expired()
        click.echo(f"Deleted {deleted} expired refresh tokens")
