# Overview: Flask CLI command groups for bootstrap and tenant administration.

# backend/invoicing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--company "Acme Ltd" --owner-email owner@acme.test --currency NGN]
#   Create all tables; optionally create a first company with its owner user.
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme Ltd" --owner-email owner@acme.test [--currency NGN]
# - python -m flask companies issue-token --email owner@acme.test [--company-id <company id>] [--name cli]
#   Print a new API bearer token (shown once).
#
# Payment gateways:
# - python -m flask integrations set --company-id <company id> --channel paystack --private-key sk_... [--public-key pk_...] [--mode test]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import InvoicingError
from .extensions import db
from .models import Company, User
from .money import normalize_currency
from .services import integration_service, token_service
from .services.tenant_service import get_company_by_uuid


def _create_company(name: str, owner_email: str, currency: str | None) -> tuple[Company, User]:
    company = Company(
        name=name,
        currency=normalize_currency(currency or current_app.config.get("DEFAULT_CURRENCY", "NGN")),
    )
    db.session.add(company)
    db.session.flush()
    owner = User(company_id=company.id, email=owner_email.strip().lower())
    db.session.add(owner)
    db.session.commit()
    return company, owner


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default=None, help='Create a first company with this name')
@click.option('--owner-email', default=None, help='Email of the first company user')
@click.option('--currency', default=None, help='ISO 4217 company currency')
@with_appcontext
def init_system(company_name, owner_email, currency):
    """
    Create the schema and, optionally, a first company and owner.

    Idempotent: an existing company with the same name is left alone.
    """
    click.echo("START Initializing invoicing database...")
    db.create_all()
    click.echo("PASS Tables created")

    if not company_name:
        click.echo("DONE No company requested")
        return
    if not owner_email:
        raise click.UsageError("--owner-email is required with --company")

    existing = db.session.query(Company).filter_by(name=company_name).first()
    if existing:
        click.echo(f"WARN  Company '{company_name}' already exists (ID: {existing.uuid}), skipping...")
        return
    try:
        company, owner = _create_company(company_name, owner_email, currency)
    except InvoicingError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created company: {company.name} (ID: {company.uuid}, currency {company.currency})")
    click.echo(f"PASS Created owner: {owner.email}")


@click.group('companies')
def companies_group():
    """Company (tenant) management."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    for company in db.session.query(Company).order_by(Company.id).all():
        status = "active" if company.is_active else "inactive"
        click.echo(f"{company.uuid}  {company.name}  {company.currency}  users={len(company.users)}  {status}")


@companies_group.command('create')
@click.option('--name', required=True)
@click.option('--owner-email', required=True)
@click.option('--currency', default=None)
@with_appcontext
def create_company(name, owner_email, currency):
    try:
        company, owner = _create_company(name, owner_email, currency)
    except InvoicingError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created company {company.name} ({company.uuid}) with owner {owner.email}")


@companies_group.command('issue-token')
@click.option('--email', required=True, help='User email')
@click.option('--company-id', default=None, help='Company id, when the email exists in several companies')
@click.option('--name', default=None, help='Label for the token')
@with_appcontext
def issue_token(email, company_id, name):
    query = db.session.query(User).filter_by(email=email.strip().lower())
    if company_id:
        try:
            company = get_company_by_uuid(company_id)
        except InvoicingError as e:
            raise click.ClickException(e.message)
        query = query.filter_by(company_id=company.id)
    users = query.all()
    if not users:
        raise click.ClickException(f"No user with email {email}")
    if len(users) > 1:
        raise click.ClickException("That email exists in several companies; pass --company-id")

    _, plaintext = token_service.issue_token(users[0], name=name)
    click.echo(plaintext)


@click.group('integrations')
def integrations_group():
    """Payment gateway configuration."""


@integrations_group.command('set')
@click.option('--company-id', required=True)
@click.option('--channel', required=True, help='paystack or rave')
@click.option('--private-key', required=True)
@click.option('--public-key', default=None)
@click.option('--mode', default='live', type=click.Choice(['test', 'live']))
@with_appcontext
def set_integration(company_id, channel, private_key, public_key, mode):
    try:
        company = get_company_by_uuid(company_id)
        integration = integration_service.configure_integration(
            company, channel, {"private_key": private_key, "public_key": public_key, "mode": mode}
        )
    except InvoicingError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {integration.name} configured for {company.name} (mode {mode})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(integrations_group)
