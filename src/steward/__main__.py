from steward.main import cli

cli()
