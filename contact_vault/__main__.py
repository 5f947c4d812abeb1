"""
Entry point for running contact_vault as a module.

Usage:
    python -m contact_vault --help
    python -m contact_vault add "Ada Lovelace" --email ada@example.com
    python -m contact_vault check
"""

from contact_vault.cli import cli

if __name__ == "__main__":
    cli()
