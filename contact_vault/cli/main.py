"""
Command-line interface for contact_vault.

Provides commands for managing contacts and groups, running backups,
checking replica integrity, recovering data and running the backup daemon.

Usage:
    # Show help
    contact-vault --help

    # Manage contacts
    contact-vault add "Ada Lovelace" --email ada@example.com --favorite
    contact-vault list --search ada
    contact-vault group create Family
    contact-vault group add ada Family

    # Persistence
    contact-vault backup
    contact-vault check
    contact-vault recover
    contact-vault status
"""

import asyncio
import inspect
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import click

from contact_vault import __version__
from contact_vault.cli.formatters import (
    format_contact_line,
    show_contact_details,
    show_contacts,
    show_groups,
    show_integrity_report,
    show_recovery_outcome,
    show_statistics,
    show_status,
)
from contact_vault.config import ConfigError, VaultConfig, save_config_file
from contact_vault.config.loader import DEFAULT_CONFIG_FILE
from contact_vault.contacts import (
    Contact,
    ContactFilter,
    ContactNotFoundError,
    ContactStore,
    ContactStoreError,
    ContactValidationError,
    Group,
    GroupNotFoundError,
    ImportFormatError,
    clean_contact_fields,
    export_csv,
    export_json,
    import_json,
)
from contact_vault.recovery import IntegrityCheckInProgress, RecoveryExhausted
from contact_vault.storage import StorageError
from contact_vault.utils import resolve_config_dir
from contact_vault.utils.events import EVENT_RECOVERED, EVENT_RECOVERY_ISSUE
from contact_vault.utils.logging import (
    cleanup_old_logs,
    get_logger,
    setup_logging,
    setup_recovery_audit_log,
)
from contact_vault.vault import ContactVault

EXPORT_FORMATS = ("json", "csv")


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_dir: Path, config_file: str | None) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / DEFAULT_CONFIG_FILE


def _fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def _echo_recovered(_event: str, payload: dict[str, Any]) -> None:
    click.echo(
        click.style(
            f"Recovered {payload.get('record_count', 0)} contact(s) "
            f"from {payload.get('source')}",
            fg="yellow",
        ),
        err=True,
    )


def _echo_recovery_issue(_event: str, payload: dict[str, Any]) -> None:
    reason = payload.get("reason", "unknown")
    detail = payload.get("error")
    message = f"Recovery issue: {reason}" + (f" ({detail})" if detail else "")
    click.echo(click.style(message, fg="yellow"), err=True)


def run_with_vault(
    ctx: click.Context,
    operation: Callable[[ContactVault], Any],
    check_integrity: bool = True,
) -> Any:
    """
    Open the configured vault, run ``operation`` against it and close it.

    ``operation`` may be a plain function or a coroutine function. Closing
    the vault persists any changes the operation made. Known errors are
    reported in red and exit with status 1.
    """
    logger = get_logger(__name__)
    config: VaultConfig = ctx.obj["config"]

    async def runner() -> Any:
        vault = ContactVault.from_config(config)
        vault.events.subscribe(EVENT_RECOVERED, _echo_recovered)
        vault.events.subscribe(EVENT_RECOVERY_ISSUE, _echo_recovery_issue)
        await vault.open(check_integrity=check_integrity)
        try:
            result = operation(vault)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            await vault.close()

    try:
        return asyncio.run(runner())
    except ContactValidationError as e:
        for field_name, message in e.errors.items():
            click.echo(click.style(f"Error: {field_name}: {message}", fg="red"), err=True)
        sys.exit(1)
    except (
        ContactStoreError,
        StorageError,
        RecoveryExhausted,
        IntegrityCheckInProgress,
    ) as e:
        logger.debug(f"Command failed: {e}")
        _fail(str(e))


def resolve_contact(store: ContactStore, ref: str) -> Contact:
    """
    Find a contact by id, unique id prefix or exact name (case-insensitive).

    Raises:
        ContactNotFoundError: If nothing or more than one contact matches
    """
    try:
        return store.get(ref)
    except ContactNotFoundError:
        pass

    contacts = store.get_all()
    matches = [c for c in contacts if c.id.startswith(ref)]
    if not matches:
        matches = [c for c in contacts if c.name.casefold() == ref.casefold()]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise ContactNotFoundError(
            f"'{ref}' matches {len(matches)} contacts, use a longer id"
        )
    raise ContactNotFoundError(f"Contact not found: {ref}")


def resolve_group(store: ContactStore, ref: str) -> Group:
    """Find a group by id, label or unique id prefix."""
    try:
        return store.find_group(ref)
    except GroupNotFoundError:
        matches = [g for g in store.get_groups() if g.id.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        raise


@click.group()
@click.version_option(version=__version__, prog_name="contact-vault")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="CONTACT_VAULT_CONFIG_DIR",
    help="Configuration directory path (default: ~/.contact-vault).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="CONTACT_VAULT_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
) -> None:
    """
    Local-first contact manager with layered backups and recovery.

    Every change is mirrored to two local stores, snapshotted on a timer
    and checked for consistency at startup.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    try:
        config = VaultConfig.load(resolved_config_dir, resolved_config_file)
    except ConfigError as e:
        # Show error but don't fail, the CLI works without a config file
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = VaultConfig(config_dir=resolved_config_dir)

    ctx.obj["config"] = config

    effective_verbose = verbose or config.verbose
    ctx.obj["verbose"] = effective_verbose

    setup_logging(
        verbose=effective_verbose, log_dir=config.logs_dir, enable_file_logging=True
    )

    if config.log_retention_count > 0:
        cleanup_old_logs(log_dir=config.logs_dir, keep_count=config.log_retention_count)


# =============================================================================
# Contact Commands
# =============================================================================


@cli.command("add")
@click.argument("name")
@click.option("--email", "-e", default=None, help="Email address.")
@click.option("--phone", "-p", default=None, help="Phone number.")
@click.option("--favorite", is_flag=True, help="Mark as favorite.")
@click.option(
    "--group",
    "-g",
    "groups",
    multiple=True,
    help="Group label or id (repeatable). Unknown labels are created.",
)
@click.pass_context
def add_command(
    ctx: click.Context,
    name: str,
    email: str | None,
    phone: str | None,
    favorite: bool,
    groups: tuple[str, ...],
) -> None:
    """
    Add a contact.

    Examples:

        contact-vault add "Ada Lovelace" --email ada@example.com

        contact-vault add "Charles Babbage" --phone "+44 20 7946 0000" -g Family
    """

    def operation(vault: ContactVault) -> Contact:
        # Reject bad fields before any group gets created
        clean_contact_fields({"name": name, "email": email, "phone": phone})
        group_ids = []
        for label in groups:
            try:
                group = resolve_group(vault.store, label)
            except GroupNotFoundError:
                group = vault.store.add_group(label)
                click.echo(f"Created group '{group.label}'")
            group_ids.append(group.id)
        return vault.store.add(
            {
                "name": name,
                "email": email,
                "phone": phone,
                "favorite": favorite,
                "groups": group_ids,
            }
        )

    contact = run_with_vault(ctx, operation)
    click.echo(click.style(f"Added {contact.name} ({contact.id})", fg="green"))


@cli.command("list")
@click.option("--search", "-s", default=None, help="Match name, email or phone.")
@click.option("--group", "-g", default=None, help="Only members of this group.")
@click.option("--favorites", is_flag=True, help="Only favorites.")
@click.option("--hide-blocked", is_flag=True, help="Leave out blocked contacts.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_command(
    ctx: click.Context,
    search: str | None,
    group: str | None,
    favorites: bool,
    hide_blocked: bool,
    as_json: bool,
) -> None:
    """
    List contacts sorted by name.

    Favorites are marked with '*', blocked contacts with 'x'.
    """

    def operation(vault: ContactVault) -> list[Contact]:
        group_id = resolve_group(vault.store, group).id if group else None
        return vault.store.get_all(
            ContactFilter(
                search=search,
                group=group_id,
                favorites_only=favorites,
                include_blocked=not hide_blocked,
            )
        )

    contacts = run_with_vault(ctx, operation)
    if as_json:
        click.echo(json.dumps([c.to_dict() for c in contacts], indent=2))
    else:
        show_contacts(contacts)


@cli.command("show")
@click.argument("contact_ref")
@click.pass_context
def show_command(ctx: click.Context, contact_ref: str) -> None:
    """Show one contact. CONTACT_REF is an id, id prefix or exact name."""

    def operation(vault: ContactVault) -> tuple[Contact, dict[str, Group]]:
        contact = resolve_contact(vault.store, contact_ref)
        return contact, {g.id: g for g in vault.store.get_groups()}

    contact, groups = run_with_vault(ctx, operation)
    show_contact_details(contact, groups)


@cli.command("update")
@click.argument("contact_ref")
@click.option("--name", "-n", default=None, help="New name.")
@click.option("--email", "-e", default=None, help="New email ('' to clear).")
@click.option("--phone", "-p", default=None, help="New phone ('' to clear).")
@click.pass_context
def update_command(
    ctx: click.Context,
    contact_ref: str,
    name: str | None,
    email: str | None,
    phone: str | None,
) -> None:
    """Change a contact's name, email or phone."""
    patch = {
        key: value
        for key, value in (("name", name), ("email", email), ("phone", phone))
        if value is not None
    }
    if not patch:
        _fail("Nothing to update. Use --name, --email or --phone.")

    def operation(vault: ContactVault) -> Contact:
        contact = resolve_contact(vault.store, contact_ref)
        return vault.store.update(contact.id, patch)

    contact = run_with_vault(ctx, operation)
    click.echo(click.style(f"Updated {format_contact_line(contact)}", fg="green"))


@cli.command("delete")
@click.argument("contact_ref")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def delete_command(ctx: click.Context, contact_ref: str, yes: bool) -> None:
    """Delete a contact."""

    def operation(vault: ContactVault) -> Optional[Contact]:
        contact = resolve_contact(vault.store, contact_ref)
        if not yes and not click.confirm(f"Delete {contact.name}?"):
            return None
        vault.store.delete(contact.id)
        return contact

    contact = run_with_vault(ctx, operation)
    if contact is None:
        click.echo("Aborted.")
        return
    click.echo(click.style(f"Deleted {contact.name}", fg="green"))


@cli.command("favorite")
@click.argument("contact_ref")
@click.pass_context
def favorite_command(ctx: click.Context, contact_ref: str) -> None:
    """Toggle a contact's favorite flag."""

    def operation(vault: ContactVault) -> Contact:
        return vault.store.toggle_favorite(resolve_contact(vault.store, contact_ref).id)

    contact = run_with_vault(ctx, operation)
    state = "now a favorite" if contact.favorite else "no longer a favorite"
    click.echo(f"{contact.name} is {state}")


@cli.command("block")
@click.argument("contact_ref")
@click.pass_context
def block_command(ctx: click.Context, contact_ref: str) -> None:
    """Toggle a contact's blocked flag."""

    def operation(vault: ContactVault) -> Contact:
        return vault.store.toggle_block(resolve_contact(vault.store, contact_ref).id)

    contact = run_with_vault(ctx, operation)
    state = "blocked" if contact.blocked else "unblocked"
    click.echo(f"{contact.name} is now {state}")


@cli.command("stats")
@click.pass_context
def stats_command(ctx: click.Context) -> None:
    """Show contact statistics."""
    stats = run_with_vault(ctx, lambda vault: vault.store.statistics())
    show_statistics(stats)


# =============================================================================
# Group Commands
# =============================================================================


@cli.group("group")
def group_group() -> None:
    """
    Manage contact groups.

    Groups are referenced by label (case-insensitive) or id.

    Examples:

        contact-vault group create Family

        contact-vault group add "Ada Lovelace" Family

        contact-vault group members Family
    """
    pass


@group_group.command("create")
@click.argument("label")
@click.pass_context
def group_create_command(ctx: click.Context, label: str) -> None:
    """Create a group."""
    group = run_with_vault(ctx, lambda vault: vault.store.add_group(label))
    click.echo(click.style(f"Created group '{group.label}' ({group.id})", fg="green"))


@group_group.command("list")
@click.pass_context
def group_list_command(ctx: click.Context) -> None:
    """List groups with their member counts."""

    def operation(vault: ContactVault) -> tuple[list[Group], dict[str, int]]:
        groups = vault.store.get_groups()
        counts = {g.id: len(vault.store.group_members(g.id)) for g in groups}
        return groups, counts

    groups, counts = run_with_vault(ctx, operation)
    show_groups(groups, counts)


@group_group.command("rename")
@click.argument("group_ref")
@click.argument("label")
@click.pass_context
def group_rename_command(ctx: click.Context, group_ref: str, label: str) -> None:
    """Rename a group."""

    def operation(vault: ContactVault) -> Group:
        return vault.store.rename_group(resolve_group(vault.store, group_ref).id, label)

    group = run_with_vault(ctx, operation)
    click.echo(click.style(f"Renamed group to '{group.label}'", fg="green"))


@group_group.command("delete")
@click.argument("group_ref")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def group_delete_command(ctx: click.Context, group_ref: str, yes: bool) -> None:
    """Delete a group. Members are kept, only the membership is removed."""

    def operation(vault: ContactVault) -> Optional[tuple[Group, int]]:
        group = resolve_group(vault.store, group_ref)
        if not yes and not click.confirm(f"Delete group '{group.label}'?"):
            return None
        return group, vault.store.delete_group(group.id)

    result = run_with_vault(ctx, operation)
    if result is None:
        click.echo("Aborted.")
        return
    group, member_count = result
    click.echo(
        click.style(
            f"Deleted group '{group.label}' ({member_count} member(s) updated)",
            fg="green",
        )
    )


@group_group.command("add")
@click.argument("contact_ref")
@click.argument("group_ref")
@click.pass_context
def group_add_command(ctx: click.Context, contact_ref: str, group_ref: str) -> None:
    """Add a contact to a group."""

    def operation(vault: ContactVault) -> tuple[Contact, Group]:
        contact = resolve_contact(vault.store, contact_ref)
        group = resolve_group(vault.store, group_ref)
        return vault.store.add_to_group(contact.id, group.id), group

    contact, group = run_with_vault(ctx, operation)
    click.echo(f"{contact.name} is in '{group.label}'")


@group_group.command("remove")
@click.argument("contact_ref")
@click.argument("group_ref")
@click.pass_context
def group_remove_command(ctx: click.Context, contact_ref: str, group_ref: str) -> None:
    """Remove a contact from a group."""

    def operation(vault: ContactVault) -> tuple[Contact, Group]:
        contact = resolve_contact(vault.store, contact_ref)
        group = resolve_group(vault.store, group_ref)
        return vault.store.remove_from_group(contact.id, group.id), group

    contact, group = run_with_vault(ctx, operation)
    click.echo(f"{contact.name} is not in '{group.label}'")


@group_group.command("members")
@click.argument("group_ref")
@click.pass_context
def group_members_command(ctx: click.Context, group_ref: str) -> None:
    """List the members of a group."""

    def operation(vault: ContactVault) -> list[Contact]:
        return vault.store.group_members(resolve_group(vault.store, group_ref).id)

    show_contacts(run_with_vault(ctx, operation))


# =============================================================================
# Import / Export Commands
# =============================================================================


@cli.command("export")
@click.option(
    "--format",
    "-F",
    "export_format",
    type=click.Choice(EXPORT_FORMATS),
    default="json",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write to a file instead of stdout.",
)
@click.pass_context
def export_command(
    ctx: click.Context, export_format: str, output: str | None
) -> None:
    """Export contacts as JSON (with groups) or CSV."""
    exporter = export_json if export_format == "json" else export_csv
    text = run_with_vault(ctx, lambda vault: exporter(vault.store))

    if output is None:
        click.echo(text, nl=False)
        return

    try:
        Path(output).write_text(text, encoding="utf-8")
    except OSError as e:
        _fail(f"Could not write {output}: {e}")
    click.echo(click.style(f"Exported to {output}", fg="green"), err=True)


@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_command(ctx: click.Context, file: str) -> None:
    """Import contacts from a JSON export. Invalid records are skipped."""
    text = Path(file).read_text(encoding="utf-8")

    try:
        result = run_with_vault(ctx, lambda vault: import_json(vault.store, text))
    except ImportFormatError as e:
        _fail(str(e))
        return

    click.echo(
        click.style(
            f"Imported {result.imported} contact(s), "
            f"created {result.groups_created} group(s)",
            fg="green",
        )
    )
    if result.skipped:
        click.echo(click.style(f"Skipped {result.skipped} record(s):", fg="yellow"))
        for error in result.errors:
            click.echo(f"  - {error}")


# =============================================================================
# Persistence Commands
# =============================================================================


@cli.command("backup")
@click.pass_context
def backup_command(ctx: click.Context) -> None:
    """
    Run a manual backup.

    Writes a full snapshot to both stores (plus remote sync, if configured)
    and a "manual" critical save.
    """
    result = run_with_vault(ctx, lambda vault: vault.manual_backup())
    if result.success:
        click.echo(
            click.style(
                f"Backup complete: {result.record_count} contact(s)", fg="green"
            )
        )
    else:
        _fail(f"Backup failed: {result.error}")


@cli.command("check")
@click.option(
    "--no-recover", is_flag=True, help="Only report divergence, do not recover."
)
@click.pass_context
def check_command(ctx: click.Context, no_recover: bool) -> None:
    """Compare replica record counts and recover on divergence."""
    config: VaultConfig = ctx.obj["config"]
    if not no_recover:
        setup_recovery_audit_log(config.logs_dir)

    report = run_with_vault(
        ctx,
        lambda vault: vault.check_integrity(recover=not no_recover),
        check_integrity=False,
    )
    show_integrity_report(report)
    if report.mismatch and (no_recover or report.recovery_error):
        sys.exit(1)


@cli.command("recover")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def recover_command(ctx: click.Context, yes: bool) -> None:
    """
    Restore the highest-scoring copy of the data from any location.

    Candidates are scored by record count, recency and source reliability.
    The winner replaces the in-memory set and is written back everywhere.
    """
    config: VaultConfig = ctx.obj["config"]
    if not yes:
        click.confirm(
            "This replaces the current contacts with the best stored copy.\nContinue?",
            abort=True,
        )

    audit_logger = setup_recovery_audit_log(config.logs_dir)
    outcome = run_with_vault(ctx, lambda vault: vault.recover(), check_integrity=False)
    show_recovery_outcome(outcome)
    for handler in audit_logger.handlers:
        if hasattr(handler, "baseFilename"):
            click.echo(f"Audit log: {handler.baseFilename}")


@cli.command("cleanup")
@click.pass_context
def cleanup_command(ctx: click.Context) -> None:
    """Delete snapshots older than the retention period."""
    config: VaultConfig = ctx.obj["config"]
    result = run_with_vault(ctx, lambda vault: vault.cleanup(), check_integrity=False)
    click.echo(
        f"Deleted {len(result.expired)} expired and {len(result.corrupt)} "
        f"corrupt snapshot(s), kept {result.kept} "
        f"(retention: {config.retention_days:g} day(s))"
    )


@cli.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status_command(ctx: click.Context, as_json: bool) -> None:
    """Show persistence status: replicas, snapshots and storage usage."""
    status = run_with_vault(ctx, lambda vault: vault.status(), check_integrity=False)
    if as_json:
        click.echo(json.dumps(status, indent=2, default=str))
    else:
        show_status(status, verbose=ctx.obj["verbose"])


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Creates a configuration file with all available options documented
    and commented out.

    Examples:

        # Create config file (fails if already exists)
        contact-vault init-config

        # Overwrite existing config file
        contact-vault init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Edit the file to uncomment and configure desired options")
        click.echo("2. Run 'contact-vault --help' to see available commands")
    else:
        logger.error(f"Failed to create configuration file: {error}")
        _fail(str(error))


# =============================================================================
# Daemon Commands
# =============================================================================


@cli.group("daemon")
def daemon_group() -> None:
    """
    Manage the background backup daemon.

    The daemon keeps the vault open and runs the rapid, full and cleanup
    backup timers. On SIGTERM/SIGINT it performs a critical save and
    waits for in-flight backups before exiting.

    Examples:

        # Run the daemon (foreground, Ctrl+C to stop)
        contact-vault daemon start

        # Check daemon status
        contact-vault daemon status

        # Stop running daemon
        contact-vault daemon stop
    """
    pass


@daemon_group.command("start")
@click.pass_context
def daemon_start_command(ctx: click.Context) -> None:
    """Start the backup daemon in the foreground."""
    logger = get_logger(__name__)
    config: VaultConfig = ctx.obj["config"]

    from contact_vault.daemon import DaemonAlreadyRunningError, DaemonError, VaultDaemon

    click.echo(
        f"Starting daemon (rapid {config.rapid_interval}s, "
        f"full {config.full_interval}s, cleanup {config.cleanup_interval}s)"
    )
    click.echo("Running in foreground mode (Ctrl+C to stop)")
    if ctx.obj["verbose"]:
        click.echo(f"  Data directory: {config.resolved_data_dir}")
        click.echo(f"  PID file: {config.pid_file}")

    vault = ContactVault.from_config(config)
    vault.events.subscribe(EVENT_RECOVERED, _echo_recovered)
    vault.events.subscribe(EVENT_RECOVERY_ISSUE, _echo_recovery_issue)
    setup_recovery_audit_log(config.logs_dir)

    try:
        VaultDaemon(vault, pid_file=config.pid_file).run()
        click.echo(click.style("\nDaemon stopped gracefully.", fg="green"))

    except DaemonAlreadyRunningError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo("Use 'contact-vault daemon stop' to stop the running daemon.")
        sys.exit(1)

    except DaemonError as e:
        logger.error(f"Daemon error: {e}")
        click.echo(click.style(f"Daemon error: {e}", fg="red"), err=True)
        sys.exit(1)


@daemon_group.command("stop")
@click.pass_context
def daemon_stop_command(ctx: click.Context) -> None:
    """
    Stop the running backup daemon.

    Sends SIGTERM; the daemon saves the current data before exiting.
    """
    config: VaultConfig = ctx.obj["config"]

    from contact_vault.daemon import VaultDaemon

    pid = VaultDaemon.get_running_pid(config.pid_file)
    if pid is None:
        click.echo("No daemon is currently running.")
        return

    click.echo(f"Stopping daemon (PID: {pid})...")
    if VaultDaemon.stop_running_daemon(config.pid_file):
        click.echo(click.style("Stop signal sent successfully.", fg="green"))
    else:
        _fail("Failed to send stop signal to daemon.")


@daemon_group.command("status")
@click.pass_context
def daemon_status_command(ctx: click.Context) -> None:
    """Show whether the backup daemon is running."""
    config: VaultConfig = ctx.obj["config"]

    from contact_vault.daemon import PIDFileManager, VaultDaemon

    click.echo("=== Daemon Status ===\n")

    pid = VaultDaemon.get_running_pid(config.pid_file)
    if pid is not None:
        click.echo(f"Status: {click.style('Running', fg='green')}")
        click.echo(f"Process ID: {pid}")
    else:
        click.echo(f"Status: {click.style('Stopped', fg='yellow')}")
        stale_pid = PIDFileManager(config.pid_file).read()
        if stale_pid is not None:
            click.echo(f"Stale PID file exists (PID: {stale_pid})")
            click.echo("The stale PID file will be cleaned up on next daemon start.")
        else:
            click.echo("No daemon is currently running.")

    if ctx.obj["verbose"]:
        click.echo(f"\nPID file: {config.pid_file}")


if __name__ == "__main__":
    cli()
