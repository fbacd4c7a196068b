"""CLI subcommand handlers; each takes ``(settings, args)``."""
