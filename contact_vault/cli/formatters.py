"""CLI output formatting functions.

This module contains functions for displaying contacts, groups, statistics,
integrity reports and persistence status on the command line.
"""

from typing import TYPE_CHECKING, Any, Optional

import click

if TYPE_CHECKING:
    from contact_vault.contacts.contact import Contact
    from contact_vault.contacts.group import Group
    from contact_vault.recovery.engine import RecoveryOutcome
    from contact_vault.recovery.integrity import IntegrityReport

SHORT_ID_LENGTH = 8


def short_id(record_id: str) -> str:
    return record_id[:SHORT_ID_LENGTH]


def format_contact_line(contact: "Contact") -> str:
    """One-line summary: short id, flags, name and contact details."""
    flags = ("*" if contact.favorite else " ") + ("x" if contact.blocked else " ")
    details = ", ".join(part for part in (contact.email, contact.phone) if part)
    line = f"{short_id(contact.id)} {flags} {contact.name}"
    if details:
        line += f" <{details}>"
    if contact.blocked:
        return click.style(line, dim=True)
    return line


def show_contacts(contacts: list["Contact"]) -> None:
    if not contacts:
        click.echo("No contacts found.")
        return
    for contact in contacts:
        click.echo(format_contact_line(contact))
    click.echo(f"\n{len(contacts)} contact(s)")


def show_contact_details(contact: "Contact", groups: dict[str, "Group"]) -> None:
    """Full view of a single contact, with group labels resolved."""
    labels = sorted(groups[g].label for g in contact.groups if g in groups)
    click.echo(f"ID:        {contact.id}")
    click.echo(f"Name:      {contact.name}")
    click.echo(f"Email:     {contact.email or '-'}")
    click.echo(f"Phone:     {contact.phone or '-'}")
    click.echo(f"Favorite:  {'yes' if contact.favorite else 'no'}")
    click.echo(f"Blocked:   {'yes' if contact.blocked else 'no'}")
    click.echo(f"Groups:    {', '.join(labels) if labels else '-'}")
    click.echo(f"Created:   {contact.created_at.isoformat()}")
    click.echo(f"Updated:   {contact.updated_at.isoformat()}")


def show_groups(groups: list["Group"], member_counts: dict[str, int]) -> None:
    if not groups:
        click.echo("No groups defined.")
        return
    for group in groups:
        count = member_counts.get(group.id, 0)
        click.echo(f"{short_id(group.id)}  {group.label} ({count} member(s))")


def show_statistics(stats: dict[str, Any]) -> None:
    click.echo("=== Contact Statistics ===\n")
    click.echo(f"Total contacts: {stats['total']}")
    click.echo(f"With email:     {stats['with_email']} ({stats['email_percentage']}%)")
    click.echo(f"With phone:     {stats['with_phone']} ({stats['phone_percentage']}%)")
    click.echo(f"Favorites:      {stats['favorites']}")
    click.echo(f"Blocked:        {stats['blocked']}")
    click.echo(f"Groups:         {stats['groups']}")


def _count_text(count: Optional[int]) -> str:
    return "absent" if count is None else str(count)


def show_integrity_report(report: "IntegrityReport") -> None:
    """Display replica counts and the divergence verdict."""
    click.echo("=== Integrity Check ===\n")
    for source, count in report.counts.items():
        click.echo(f"  {source:<12} {_count_text(count)}")
    click.echo(f"\nSpread: {report.spread} (tolerated: {report.threshold:g})")

    if not report.mismatch:
        click.echo(click.style("Replicas are consistent.", fg="green"))
        return

    click.echo(click.style("Replica counts diverge.", fg="yellow"))
    if report.recovery is not None:
        show_recovery_outcome(report.recovery)
    elif report.recovery_error:
        click.echo(click.style(f"Recovery failed: {report.recovery_error}", fg="red"))
    else:
        click.echo("Run 'contact-vault recover' to restore the best copy.")


def show_recovery_outcome(outcome: "RecoveryOutcome") -> None:
    click.echo(
        click.style(
            f"Recovered {outcome.record_count} contact(s) and "
            f"{outcome.group_count} group(s) from {outcome.source_id}",
            fg="green",
        )
    )
    click.echo(
        f"  Score {outcome.score:.1f} ({outcome.tier.value}), "
        f"{outcome.candidates} candidate(s) considered"
    )


def show_status(status: dict[str, Any], verbose: bool = False) -> None:
    """Display the persistence status returned by ContactVault.status()."""
    click.echo("=== Contact Vault Status ===\n")
    click.echo(f"Contacts: {status['contacts']}")
    click.echo(f"Groups:   {status['groups']}")
    click.echo(f"Loaded from: {status['loaded_from'] or 'nothing (fresh start)'}")
    click.echo(f"Integrity: {status['integrity_state']}")

    last_save = status.get("last_critical_save")
    if last_save:
        click.echo(
            f"Last critical save: {last_save.get('timestamp')} ({last_save.get('trigger')})"
        )
    else:
        click.echo("Last critical save: never")

    click.echo("\nReplicas:")
    for source, count in status["replica_counts"].items():
        click.echo(f"  {source:<12} {_count_text(count)}")

    usage = status["kv_usage_bytes"]
    capacity = status["kv_capacity_bytes"]
    if capacity:
        click.echo(
            f"\nKey-value store: {usage} / {capacity} bytes "
            f"({usage / capacity * 100:.1f}%)"
        )
    else:
        click.echo(f"\nKey-value store: {usage} bytes")

    snapshots = status["snapshots"]
    click.echo(
        f"Snapshots: {len(snapshots['kv'])} in key-value store, "
        f"{len(snapshots['structured'])} in structured store"
    )
    click.echo(f"Remote sync: {'enabled' if status['remote_sync'] else 'disabled'}")

    if verbose:
        for store_name in ("kv", "structured"):
            for key in snapshots[store_name]:
                click.echo(f"  [{store_name}] {key}")
