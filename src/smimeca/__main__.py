"""Allow ``python -m smimeca``."""

from smimeca.cli.main import main

main()
