import click

from diocese_backend.permissions.auth import parse_db_auth_token
from diocese_backend.permissions.principal import AccessConstraint
from diocese_backend.permissions.query_constraints import inject_constraints, missing_filters

@click.command()
@click.argument("sql")
@click.option("--diocese-id", "-d", "diocese_id", type=int, default=None)
@click.option("--testing-center-id", "-t", "testing_center_id", type=int, default=None)
def inject(sql, diocese_id, testing_center_id):
    """Print SQL with the diocese and testing center filters injected."""

    constraint = AccessConstraint(
        has_constraints=diocese_id is not None or testing_center_id is not None,
        diocese_id=diocese_id,
        testing_center_id=testing_center_id,
        must_include_diocese_filter=diocese_id is not None,
        must_include_testing_center_filter=testing_center_id is not None
    )

    modified = inject_constraints(sql, constraint)
    click.echo(modified)

    for message in missing_filters(modified, constraint):
        click.echo(click.style(message, fg="yellow"), err=True)

@click.command()
@click.argument("token")
def parse_token(token):
    """Print the user id carried by a db-auth-token."""

    user_id = parse_db_auth_token(token)

    if user_id is None:
        raise click.ClickException(f"Malformed token: {token}")

    click.echo(user_id)
