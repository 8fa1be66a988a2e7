#!/usr/bin/env python3
"""
Octagon Oracle Management CLI

This script provides command-line management functionality for the Octagon Oracle application.
"""

import os

import click
from flask.cli import with_appcontext
from flask_migrate import upgrade
from sqlalchemy import text

from app import create_app, db
from app.models import Event, Fight, Payment, Prediction, User
from app.models.payment import PAYMENT_PAID
from app.services.errors import OracleError
from app.services.events import create_event
from app.services.settlement import rescore_event
from app.utils.cache_utils import get_cache_stats, invalidate_rankings

app = create_app()


@click.group()
def cli():
    """Octagon Oracle Management CLI"""
    pass


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command()
@click.argument("username")
@click.argument("email")
@click.argument("password")
@with_appcontext
def create_admin(username, email, password):
    """Create an admin user"""
    email = User.normalize_email(email)
    existing = User.query.filter(
        (User.username == username) | (User.email == email)
    ).first()

    if existing:
        click.echo(
            f"❌ User with username '{username}' or email '{email}' already exists!"
        )
        return

    user = User(username=username, email=email, is_admin=True)
    user.set_password(password)

    db.session.add(user)
    db.session.commit()

    click.echo(f"✅ Created admin user '{username}' ({email})")


@user.command()
@click.argument("username")
@with_appcontext
def promote(username):
    """Grant admin privileges to an existing user"""
    user = User.query.filter_by(username=username).first()
    if not user:
        click.echo(f"❌ User '{username}' not found")
        return

    user.is_admin = True
    db.session.commit()
    invalidate_rankings()
    click.echo(f"✅ {username} is now an admin")


@user.command()
@with_appcontext
def list_users():
    """List all users"""
    users = User.query.order_by(User.created_at.desc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("Users:")
    for u in users:
        role = "🛡️" if u.is_admin else "👤"
        click.echo(f"  {role} {u.username} ({u.email})")


# Event Management Commands
@cli.group()
def event():
    """Event management commands"""
    pass


@event.command()
@click.argument("name")
@click.option("--date", "event_date", required=True, help="Event date (YYYY-MM-DD)")
@click.option(
    "--deadline", required=True, help="Picks deadline, ISO-8601 (e.g. 2026-11-14T23:00Z)"
)
@click.option("--price", default=None, help="Entry price (default: DEFAULT_ENTRY_PRICE)")
@with_appcontext
def create(name, event_date, deadline, price):
    """Create a new event"""
    data = {"name": name, "date": event_date, "picks_deadline": deadline}
    if price is not None:
        data["entry_price"] = price

    try:
        new_event = create_event(data)
    except OracleError as e:
        click.echo(f"❌ Error creating event: {e.message}")
        return

    click.echo(f"✅ Created event {new_event.id}: {new_event.name} ({new_event.date})")


@event.command(name="list")
@with_appcontext
def list_events():
    """List all events"""
    events = Event.query.order_by(Event.date.desc()).all()

    if not events:
        click.echo("No events found.")
        return

    for e in events:
        fights = e.fights.count()
        settled = e.fights.filter(Fight.winner_name.isnot(None)).count()
        state = "🟢 open" if e.is_open_for_picks() else "🔒 closed"
        click.echo(
            f"  [{e.id}] {e.date} {e.name} - {settled}/{fights} fights settled, {state}"
        )


@event.command()
@click.argument("event_id", type=int)
@with_appcontext
def rescore(event_id):
    """Recompute every point of an event from its stored results"""
    try:
        summary = rescore_event(event_id)
    except OracleError as e:
        click.echo(f"❌ Error re-scoring event {event_id}: {e.message}")
        return

    click.echo(
        f"✅ Re-scored {summary['predictions_rescored']} prediction(s) and "
        f"{summary['bonus_predictions_rescored']} bonus prediction(s)"
    )


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    db.create_all()
    click.echo("✅ Database tables created successfully!")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    db.drop_all()
    db.create_all()
    click.echo("✅ Database reset successfully!")


@db_cmd.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def upgrade_db(revision):
    """Apply Flask-Migrate migrations"""
    if not os.path.exists("migrations"):
        click.echo("❌ No migrations directory, run 'flask db init' first")
        return

    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🥊 Octagon Oracle Application Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except Exception as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    player_count = User.query.filter_by(is_admin=False).count()
    admin_count = User.query.filter_by(is_admin=True).count()
    click.echo(f"👥 Players: {player_count} (admins: {admin_count})")

    event_count = Event.query.count()
    open_count = sum(1 for e in Event.query.all() if e.is_open_for_picks())
    click.echo(f"📅 Events: {event_count} ({open_count} open for picks)")

    fight_count = Fight.query.count()
    settled_count = Fight.query.filter(Fight.winner_name.isnot(None)).count()
    click.echo(f"🥊 Fights: {settled_count}/{fight_count} settled")

    click.echo(f"🎯 Predictions: {Prediction.query.count()}")
    click.echo(f"💳 Paid entries: {Payment.query.filter_by(status=PAYMENT_PAID).count()}")

    cache_stats = get_cache_stats()
    click.echo(f"🗄️  Cache: {cache_stats['type']} (rankings {cache_stats['timeout']}s)")


if __name__ == "__main__":
    with app.app_context():
        cli()
