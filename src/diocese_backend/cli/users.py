import uuid
import click

from diocese_backend.database import get_db
from diocese_backend.model.auth import User
from diocese_backend.permissions.passwords import hash_password
from diocese_backend.permissions.roles import ExternalRole

ROLE_CHOICES = [role.value for role in ExternalRole]

@click.command()
@click.option("--email", "-e", "email", prompt=True)
@click.option("--username", "-u", "username", default=None)
@click.option("--password", "-p", "password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--role", "-r", "role", type=click.Choice(ROLE_CHOICES), default=ExternalRole.CENTER_ADMIN.value, show_default=True)
@click.option("--diocese-id", "diocese_id", type=int, default=None)
@click.option("--testing-center-id", "testing_center_id", type=int, default=None)
def create_user(email, username, password, role, diocese_id, testing_center_id):

    if len(password) < 6:
        raise click.BadParameter("Password must be at least 6 characters", param_hint="password")

    with next(get_db()) as db:

        if db.query(User).filter(User.email == email).first() is not None:
            raise click.ClickException(f"User {email} already exists")

        user = User(
            uuid=str(uuid.uuid4()),
            email=email,
            username=username or email.split("@")[0],
            encrypted_password=hash_password(password),
            role=ExternalRole(role).code,
            diocese_id=diocese_id,
            testing_center_id=testing_center_id
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        click.echo(f"Created user {user.id} ({email}) as {role}")

@click.command()
@click.argument("password")
def hash_password_command(password):
    """Print a Devise compatible bcrypt hash."""
    click.echo(hash_password(password))

@click.group()
def users():
    pass

users.add_command(create_user,"create")
users.add_command(hash_password_command,"hash-password")
