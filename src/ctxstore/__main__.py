from ctxstore.cli import cli

cli()
