# Overview: Flask CLI command groups for bootstrap, inspection and maintenance.

# backend/sellomaster/cli.py
# Commands Legend (run with: flask --app sellomaster <group> <command>):
#
# System bootstrap:
# - flask --app sellomaster system init [--admin-password "..."]
#   Create tables, default cities and the ADMIN user (idempotent).
# - flask --app sellomaster system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - flask --app sellomaster users list [--city BOGOTÁ]
# - flask --app sellomaster users create --username ana --full-name "Ana Ruiz" --city CALI --role GESTOR
#
# Cities:
# - flask --app sellomaster cities list
# - flask --app sellomaster cities add "PEREIRA"
# - flask --app sellomaster cities rename "CALI" "SANTIAGO DE CALI"
#
# Seals:
# - flask --app sellomaster seals list [--status ASIGNADO] [--city CALI]
# - flask --app sellomaster seals import precintos.xlsx --as admin [--city CALI]
#
# Backup:
# - flask --app sellomaster backup export backup.json
# - flask --app sellomaster backup restore backup.json --yes

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLE_ADMIN, VALID_ROLES
from .services import auth_service, backup_service, import_service, seal_service, site_service
from .services.auth_service import AuthError
from .services.backup_service import BackupError
from .services.import_service import SealImportError
from .services.site_service import SiteError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='ADMIN', show_default=True)
@click.option('--admin-password', default='admin123', show_default=True)
@click.option('--admin-city', default=None, help='City of the admin user (first default city if omitted)')
@with_appcontext
def init_system(admin_username, admin_password, admin_city):
    """
    Create tables, default cities and an ADMIN user.

    Safe to re-run: existing cities and users are left untouched.
    """
    db.create_all()

    cities = site_service.ensure_cities(current_app.config["DEFAULT_CITIES"])
    db.session.commit()
    click.echo(f"PASS Cities: {', '.join(city.name for city in cities)}")

    if not cities:
        click.echo("FAIL No cities configured; set SELLOMASTER_CITIES")
        return

    username = auth_service.normalize_username(admin_username)
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"WARN  User '{username}' already exists, skipping...")
        return

    try:
        auth_service.create_user(
            username=username,
            password=admin_password,
            full_name="Administrador",
            city=admin_city or cities[0].name,
            role=ROLE_ADMIN,
        )
        db.session.commit()
    except AuthError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create admin user: {e}")
        return

    click.echo(f"PASS Created admin user '{username}' (CHANGE THE PASSWORD IN PRODUCTION!)")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete. Run 'system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--city', default=None)
@with_appcontext
def list_users_cli(city):
    users = auth_service.list_users(city=site_service.normalize_city_name(city) if city else None)
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<16} {user.role:<7} {user.city:<16} {status}  {user.full_name}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--full-name', prompt=True)
@click.option('--city', prompt=True)
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), default='GESTOR', show_default=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cli(username, full_name, city, role, password):
    try:
        user = auth_service.create_user(
            username=username,
            password=password,
            full_name=full_name,
            city=city,
            role=role,
        )
        db.session.commit()
    except AuthError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e}")
        return
    click.echo(f"PASS Created user: {user.username} ({user.role}, {user.city})")


@click.group('cities')
def cities_group():
    """Operating site commands."""


@cities_group.command('list')
@with_appcontext
def list_cities_cli():
    for name in site_service.city_names():
        click.echo(name)


@cities_group.command('add')
@click.argument('name')
@with_appcontext
def add_city_cli(name):
    try:
        city = site_service.add_city(name)
        db.session.commit()
    except SiteError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Added city {city.name}")


@cities_group.command('rename')
@click.argument('old_name')
@click.argument('new_name')
@with_appcontext
def rename_city_cli(old_name, new_name):
    """Rename a city; seals and users follow (best effort)."""
    try:
        result = site_service.rename_city(old_name, new_name)
    except SiteError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Renamed to {result['city']}: {result['seals']} seals, {result['users']} users updated")


@click.group('seals')
def seals_group():
    """Seal inspection and bulk import."""


def _load_actor(username: str) -> User:
    user = db.session.query(User).filter_by(username=auth_service.normalize_username(username)).first()
    if user is None or not user.is_active:
        raise click.ClickException(f"User '{username}' not found or inactive")
    return user


@seals_group.command('list')
@click.option('--as', 'username', default='ADMIN', show_default=True, help='List as this user')
@click.option('--status', default=None)
@click.option('--city', default=None)
@with_appcontext
def list_seals_cli(username, status, city):
    actor = _load_actor(username)
    try:
        seals = seal_service.list_seals(actor, status=status, city=city)
    except ValueError as e:
        raise click.ClickException(str(e))
    for seal in seals:
        click.echo(f"{seal.id:<20} {seal.type:<12} {seal.status:<20} {seal.city:<16} {seal.last_movement:%Y-%m-%d %H:%M}")
    click.echo(f"{len(seals)} seal(s)")


@seals_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--as', 'username', required=True, help='User recorded as registering the seals')
@click.option('--city', default=None, help='Target city (ADMIN only)')
@with_appcontext
def import_seals_cli(path, username, city):
    actor = _load_actor(username)
    try:
        with open(path, 'rb') as stream:
            rows = import_service.read_rows(path, stream)
    except SealImportError as e:
        raise click.ClickException(str(e))

    result = import_service.import_seals(rows, actor, city=city)
    db.session.commit()

    summary = result.to_dict()
    click.echo(
        f"PASS {summary['created']} created, {summary['duplicates']} duplicates, "
        f"{summary['skipped']} skipped, {len(summary['errors'])} errors"
    )
    for error in summary['errors']:
        click.echo(f"     row {error['row']}: {error['error']}")


@click.group('backup')
def backup_group():
    """Full-store JSON backup and restore."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_backup_cli(path):
    snapshot = backup_service.export_snapshot()
    with open(path, 'w', encoding='utf-8') as fh:
        json.dump(snapshot, fh, ensure_ascii=False, indent=2)
    click.echo(f"PASS Exported {len(snapshot['seals'])} seals, {len(snapshot['users'])} users to {path}")


@backup_group.command('restore')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def restore_backup_cli(path, yes):
    """DANGER: Replace the whole store with the snapshot."""
    if not yes:
        click.confirm("WARN This replaces ALL current data. Continue?", abort=True)

    with open(path, encoding='utf-8') as fh:
        snapshot = json.load(fh)
    try:
        result = backup_service.restore_snapshot(snapshot)
        db.session.commit()
    except BackupError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Restored {result['seals']} seals, {result['users']} users, {result['cities']} cities")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cities_group)
    app.cli.add_command(seals_group)
    app.cli.add_command(backup_group)
