# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from typing import Any, TypeVar

import click

from pawnctl.addons import semver
from pawnctl.addons.exceptions import AddonError, InvalidVersionError
from pawnctl.addons.manager import AddonManager
from pawnctl.addons.models import AddonInfo
from pawnctl.logging import configure_logging
from pawnctl.settings import Settings

T = TypeVar("T")

# Set by main() so every command shares the loop addons were activated on.
_runner: asyncio.Runner | None = None


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.pass_context
def cli(ctx: click.Context) -> None:
    """pawnctl command line interface."""
    if ctx.obj is None:
        ctx.obj = AddonManager(Settings(), program=ctx.command)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        if _runner is not None:
            return _runner.run(coro)
        return asyncio.run(coro)
    except AddonError as e:
        raise click.ClickException(str(e)) from e


def _describe(info: AddonInfo) -> str:
    version = f" v{info.version}" if info.version else ""
    status = "enabled" if info.enabled else "disabled"
    return f"{info.name}{version} [{status}] - {info.description or 'No description'}"


@cli.group("addon")
def addon() -> None:
    """Manage pawnctl addons."""


@addon.command("install")
@click.argument("source")
@click.option("-g", "--global", "global_", is_flag=True, help="Install into the global addons directory.")
@click.option("--source-type", type=click.Choice(["local", "github"]), default=None, help="Force the source type.")
@click.option("--path", "install_path", default=None, help="Install directory for remote sources.")
@click.option("--auto-deps", is_flag=True, help="Install missing dependencies too.")
@click.pass_obj
def install(
    manager: AddonManager,
    source: str,
    global_: bool,
    source_type: str | None,
    install_path: str | None,
    auto_deps: bool,
) -> None:
    """Install an addon from a local path or a GitHub repository.

    Examples:
        pawnctl addon install ./my-addon
        pawnctl addon install owner/repo@v1.2.0
        pawnctl addon install https://github.com/owner/repo/tree/main
    """
    info = _run(
        manager.install_addon(
            source, global_=global_, source_type=source_type, path=install_path, auto_deps=auto_deps
        )
    )
    click.echo(f"Installed {info.name} v{info.version} ({info.source})")


@addon.command("uninstall")
@click.argument("name")
@click.pass_obj
def uninstall(manager: AddonManager, name: str) -> None:
    """Remove an installed addon."""
    _run(manager.uninstall_addon(name))
    click.echo(f"Uninstalled {name}")


@addon.command("list")
@click.option("-a", "--all", "show_all", is_flag=True, help="Also show addons available for install.")
@click.option("-e", "--enabled", "only_enabled", is_flag=True, help="Show only enabled addons.")
@click.option("-d", "--disabled", "only_disabled", is_flag=True, help="Show only disabled addons.")
@click.option("--json", "as_json", is_flag=True, help="Print registry records as JSON.")
@click.pass_obj
def list_addons(manager: AddonManager, show_all: bool, only_enabled: bool, only_disabled: bool, as_json: bool) -> None:
    """List installed addons."""
    enabled = True if only_enabled else False if only_disabled else None
    infos = _run(manager.list_addons(enabled=enabled))

    if as_json:
        click.echo(json.dumps([info.to_registry() for info in infos], indent=2))
        return

    if not infos:
        click.echo("No addons installed.")
    for info in infos:
        click.echo(_describe(info))
        if info.last_error:
            click.echo(f"  last error: {info.last_error}")
    if infos:
        click.echo(f"Total: {len(infos)} addon(s)")

    if show_all:
        installed = {info.name for info in infos}
        candidates = _run(manager.search_addons(""))
        available = [info for info in candidates if info.name not in installed and not info.installed]
        click.echo("Available addons:")
        if not available:
            click.echo("  none found")
        for info in available:
            click.echo(f"  {info.name} - {info.description or 'No description'} ({info.path})")

    for name in manager.get_command_conflicts():
        conflict = manager.get_command_conflict_info(name)
        if conflict:
            contenders = ", ".join(f"{c['addon']} (priority {c['priority']})" for c in conflict["candidates"])
            click.echo(f"Command conflict '{name}': {contenders}; active: {conflict['active']}", err=True)


@addon.command("enable")
@click.argument("name")
@click.pass_obj
def enable(manager: AddonManager, name: str) -> None:
    """Enable an addon."""
    info = _run(manager.enable_addon(name))
    click.echo(f"Enabled {info.name}")


@addon.command("disable")
@click.argument("name")
@click.pass_obj
def disable(manager: AddonManager, name: str) -> None:
    """Disable an addon without uninstalling it."""
    info = _run(manager.disable_addon(name))
    click.echo(f"Disabled {info.name}")


@addon.command("search")
@click.argument("query", required=False, default="")
@click.option("--limit", type=int, default=None, help="Maximum number of results.")
@click.pass_obj
def search(manager: AddonManager, query: str, limit: int | None) -> None:
    """Search installed and discoverable addons."""
    results = _run(manager.search_addons(query, limit=limit))
    if not results:
        click.echo("No addons found.")
        return
    for info in results:
        marker = "installed" if info.installed else "available"
        click.echo(f"{info.name} v{info.version or '?'} ({marker}) - {info.description or 'No description'}")


@addon.command("info")
@click.argument("name")
@click.pass_obj
def info(manager: AddonManager, name: str) -> None:
    """Show details about an addon."""
    details = _run(manager.get_addon_info(name))
    if details is None:
        raise click.ClickException(f"Addon '{name}' not found")

    click.echo(f"Name:        {details.name}")
    click.echo(f"Version:     {details.version}")
    click.echo(f"Description: {details.description}")
    click.echo(f"Author:      {details.author}")
    click.echo(f"License:     {details.license}")
    click.echo(f"Enabled:     {'yes' if details.enabled else 'no'}")
    click.echo(f"Source:      {details.source or 'unknown'}")
    if details.path:
        click.echo(f"Path:        {details.path}")
    if details.github_url:
        click.echo(f"Repository:  {details.github_url}")
    if details.dependencies:
        click.echo(f"Depends on:  {', '.join(details.dependencies)}")
    for dependency, constraint in details.dependency_constraints.items():
        click.echo(f"  {dependency} {constraint}")
    if details.last_error:
        click.echo(f"Last error:  {details.last_error} ({details.last_error_time})")


@addon.command("update")
@click.argument("name", required=False)
@click.option("--all", "update_all", is_flag=True, help="Update every addon installed from GitHub.")
@click.pass_obj
def update(manager: AddonManager, name: str | None, update_all: bool) -> None:
    """Update a GitHub-installed addon to the latest version."""
    if update_all:
        summary = _run(manager.update_all_addons())
        for updated in summary.updated:
            click.echo(f"Updated {updated}")
        for failed in summary.failed:
            click.echo(f"Failed to update {failed}: {summary.errors.get(failed, '')}", err=True)
        click.echo(f"Updated {len(summary.updated)}, failed {len(summary.failed)}")
        return

    if not name:
        raise click.UsageError("Specify an addon name or --all")
    details = _run(manager.update_addon(name))
    click.echo(f"Updated {details.name} to v{details.version}")


@addon.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("command")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def run(manager: AddonManager, command: str, args: tuple[str, ...]) -> None:
    """Run an addon command by name."""
    _run(manager.run_addon_command(command, list(args), {}))


@addon.command("deps")
@click.argument("name")
@click.option("--check", "mode", flag_value="check", help="Check that dependencies are installed and enabled.")
@click.option("--resolve", "mode", flag_value="resolve", default=True, help="Resolve and show the dependency tree.")
@click.option("--validate", "mode", flag_value="validate", help="Validate dependencies of every addon.")
@click.pass_obj
def deps(manager: AddonManager, name: str, mode: str) -> None:
    """Inspect addon dependencies."""
    if mode == "check":
        validation = _run(manager.validate_dependencies(name))
        if validation.valid:
            click.echo("All dependencies are satisfied")
            return
        click.echo("Dependency issues found:")
        for issue in validation.issues:
            click.echo(f"  - {issue}")
        raise SystemExit(1)

    if mode == "validate":
        failing = 0
        for details in _run(manager.list_addons()):
            validation = _run(manager.validate_dependencies(details.name))
            status = "ok" if validation.valid else "issues"
            click.echo(f"{details.name}: {status}")
            for issue in validation.issues:
                click.echo(f"  - {issue}")
            failing += not validation.valid
        if failing:
            raise SystemExit(1)
        return

    resolution = _run(manager.resolve_dependencies(name))
    resolver = manager.dependencies
    click.echo(f"Resolved: {', '.join(resolution.resolved) or 'none'}")
    for conflict in resolution.conflicts:
        click.echo(f"Conflict ({conflict.conflict}) {conflict.addon}: {conflict.reason}")
    for version_conflict in resolution.version_conflicts:
        click.echo(
            f"Version conflict {version_conflict.addon}: {version_conflict.reason} "
            f"(available {version_conflict.available_version}, required {version_conflict.constraint})"
        )
    if resolution.missing:
        click.echo(f"Missing: {', '.join(resolution.missing)}")

    order = resolver.get_installation_order(resolution)
    if order:
        click.echo("Installation order:")
        for index, addon_name in enumerate(order, start=1):
            click.echo(f"  {index}. {addon_name}")
    suggestions = resolver.suggest_solutions(resolution)
    if suggestions:
        click.echo("Suggestions:")
        for suggestion in suggestions:
            click.echo(f"  {suggestion}")


@addon.command("install-deps")
@click.argument("name")
@click.option("-g", "--global", "global_", is_flag=True, help="Install dependencies globally.")
@click.option("--dry-run", is_flag=True, help="Show what would be installed.")
@click.pass_obj
def install_deps(manager: AddonManager, name: str, global_: bool, dry_run: bool) -> None:
    """Install the missing dependencies of an addon."""
    result = _run(manager.install_dependencies(name, global_=global_, dry_run=dry_run))
    if dry_run:
        if not result.skipped:
            click.echo("All dependencies are already installed")
        for dependency in result.skipped:
            click.echo(f"Would install: {dependency}")
        return

    for dependency in result.installed:
        click.echo(f"Installed {dependency}")
    for dependency in result.failed:
        click.echo(f"Failed to install {dependency}: {result.errors.get(dependency, '')}", err=True)
    if not result.installed and not result.failed:
        click.echo("All dependencies are already installed")
    if result.failed:
        raise SystemExit(1)


@addon.command("recover")
@click.argument("names", nargs=-1)
@click.option("-a", "--all", "recover_all", is_flag=True, help="Try to re-enable every failed addon.")
@click.option("--clear-errors", is_flag=True, help="Clear recorded errors.")
@click.pass_obj
def recover(manager: AddonManager, names: tuple[str, ...], recover_all: bool, clear_errors: bool) -> None:
    """Inspect and recover addons disabled after errors."""
    if clear_errors:
        targets = list(names) or [None]
        cleared: list[str] = []
        for target in targets:
            cleared.extend(_run(manager.clear_addon_errors(target)))
        click.echo(f"Cleared errors for {len(cleared)} addon(s)")
        return

    if recover_all or names:
        summary = _run(manager.recover_addons(list(names) if names else None))
        if not summary.recovered and not summary.failed:
            click.echo("No failed addons found")
            return
        for recovered in summary.recovered:
            click.echo(f"Recovered {recovered}")
        for failed in summary.failed:
            click.echo(f"Still failing {failed}: {summary.errors.get(failed, '')}", err=True)
        click.echo(f"Recovered {len(summary.recovered)}, still failing {len(summary.failed)}")
        return

    failing = [details for details in _run(manager.list_addons()) if details.last_error]
    ledger = manager.get_all_addon_errors()
    if not failing and not ledger:
        click.echo("No addon errors found")
        return
    for details in failing:
        click.echo(f"{details.name}: {details.last_error}")
    for addon_name, errors in ledger.items():
        if not any(details.name == addon_name for details in failing):
            click.echo(f"{addon_name}: {errors[-1]} ({len(errors)} error(s))")
    click.echo("Run 'pawnctl addon recover --all' to try re-enabling them")


@addon.command("version")
@click.option(
    "--check", nargs=2, metavar="VERSION CONSTRAINT", default=None, help="Check a version against a constraint."
)
@click.option("--compare", nargs=2, metavar="VERSION1 VERSION2", default=None, help="Compare two versions.")
@click.option("--validate", "validate_version", default=None, metavar="VERSION", help="Validate a version.")
@click.option("--constraint", default=None, metavar="CONSTRAINT", help="Validate a constraint.")
def version(
    check: tuple[str, str] | None,
    compare: tuple[str, str] | None,
    validate_version: str | None,
    constraint: str | None,
) -> None:
    """Semantic version utilities."""
    if check:
        candidate, expression = check
        if not semver.is_valid_version(candidate):
            raise click.ClickException(f"Invalid version format: {candidate}")
        if not semver.is_valid_constraint(expression):
            raise click.ClickException(f"Invalid constraint format: {expression}")
        if semver.satisfies(candidate, expression):
            click.echo(f"{candidate} satisfies {expression}")
        else:
            click.echo(f"{candidate} does not satisfy {expression}")
            raise SystemExit(1)
    elif compare:
        first, second = compare
        try:
            result = semver.compare(first, second)
        except InvalidVersionError as e:
            raise click.ClickException(str(e)) from e
        symbol = {-1: "<", 0: "=", 1: ">"}[result]
        click.echo(f"{first} {symbol} {second}")
    elif validate_version:
        if not semver.is_valid_version(validate_version):
            raise click.ClickException(f"Invalid version format: {validate_version}")
        click.echo(f"Valid version format: {validate_version}")
    elif constraint:
        if not semver.is_valid_constraint(constraint):
            raise click.ClickException(f"Invalid constraint format: {constraint}")
        click.echo(f"Valid constraint format: {constraint}")
    else:
        click.echo(click.get_current_context().get_help())


def main() -> None:
    global _runner
    settings = Settings()
    configure_logging(settings)
    with asyncio.Runner() as runner:
        _runner = runner
        manager = AddonManager(settings, program=cli)
        manager.commands.run = runner.run
        try:
            runner.run(manager.ensure_addons_loaded())
            cli.main(obj=manager)
        finally:
            _runner = None


if __name__ == "__main__":
    main()
