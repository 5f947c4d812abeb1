"""CLI package for contact_vault."""

from contact_vault.cli.formatters import (
    format_contact_line,
    show_contact_details,
    show_contacts,
    show_integrity_report,
    show_status,
)
from contact_vault.cli.main import (
    cli,
    get_config_dir,
    resolve_contact,
    resolve_group,
    run_with_vault,
)

__all__ = [
    "cli",
    "format_contact_line",
    "get_config_dir",
    "resolve_contact",
    "resolve_group",
    "run_with_vault",
    "show_contact_details",
    "show_contacts",
    "show_integrity_report",
    "show_status",
]
