from aicommit.cli.main import cli

cli()
