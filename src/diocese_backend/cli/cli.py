import click

from .users import users
from .queries import inject, parse_token
from .server import serve

@click.group()
def cli():
    pass

cli.add_command(users,"users")
cli.add_command(inject,"inject")
cli.add_command(parse_token,"parse-token")
cli.add_command(serve,"serve")

if __name__ == '__main__':
    cli()
