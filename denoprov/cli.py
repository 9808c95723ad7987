"""
CLI interface for denoprov.

Provides commands: run, validate, plan, init.

The target comes from the `target` section of denoprov.yaml and can be
overridden on the command line (--target ssh --host ... / --target docker
--container ...).
"""

import json
import signal
from dataclasses import replace
from pathlib import Path

import click
import yaml

from denoprov import __version__
from denoprov.cancel import CancelToken
from denoprov.communicators import TARGET_TYPES, build_communicator
from denoprov.config import DEFAULT_CONFIG_FILENAME, load_config, resolve_plan
from denoprov.errors import ConfigurationError
from denoprov.executor import run_command_line
from denoprov.installer import PACKAGE_MANAGERS, DOWNLOADER_PROBE, bootstrap_command
from denoprov.schemas import LocalBinaryUpload, NetworkInstall, RunStatus
from denoprov.ui import ConsoleReporter, NullReporter
from denoprov.utils import format_duration, remote_join, remote_parent, setup_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130

STARTER_CONFIG = {
    "scripts": ["deno-scripts/install-nginx-ubuntu.ts"],
    "remote_folder": "/tmp/denoprov-work",
    "skip_install": False,
    "skip_provision": False,
    "bundle": False,
    "target": {"type": "ssh", "host": "203.0.113.10", "user": "root"},
}


def _load_plan(config_path):
    """Load and resolve config, exiting with EXIT_CONFIG on any problem."""
    try:
        config = load_config(config_path)
        return config, resolve_plan(config)
    except FileNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        click.echo("Run 'denoprov init' to create a configuration file.", err=True)
        raise SystemExit(EXIT_CONFIG)
    except ConfigurationError as e:
        click.echo("✗ Configuration invalid:", err=True)
        for message in e.errors:
            click.echo(f"  - {message}", err=True)
        raise SystemExit(EXIT_CONFIG)


def _target_overrides(base: dict, target, host, user, port, identity, container) -> dict:
    merged = dict(base or {})
    if target:
        if merged.get("type") and merged["type"] != target:
            merged = {}
        merged["type"] = target
    for key, value in (("host", host), ("user", user), ("port", port),
                       ("identity", identity), ("container", container)):
        if value is not None:
            merged[key] = str(value) if key == "identity" else value
    return merged


@click.group()
@click.version_option(version=__version__, prog_name="denoprov")
def main():
    """
    denoprov - Deno provisioner.

    Installs Deno on a target machine, uploads Deno scripts and runs them
    in order, stopping at the first failure.
    """
    pass


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help=f"Configuration file (default: $DENOPROV_CONFIG or ./{DEFAULT_CONFIG_FILENAME})",
)
@click.option("--target", type=click.Choice(TARGET_TYPES), help="Override target type")
@click.option("--host", help="SSH host")
@click.option("--user", help="SSH or container user")
@click.option("--port", type=int, help="SSH port")
@click.option("--identity", type=click.Path(exists=True, path_type=Path), help="SSH identity file")
@click.option("--container", help="Docker container name or id")
@click.option("--skip-provision", is_flag=True, help="Upload scripts but do not run them")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--log-file", type=click.Path(path_type=Path), help="Also write JSON logs here")
@click.option("--json", "as_json", is_flag=True, help="Print the run result as JSON")
def run(config_path, target, host, user, port, identity, container,
        skip_provision, verbose, log_file, as_json):
    """
    Provision the target.

    Examples:

      # Provision using ./denoprov.yaml
      denoprov run

      # Provision a docker container
      denoprov run --target docker --container build-1

      # Upload only
      denoprov run --skip-provision
    """
    from denoprov.provisioner import Provisioner

    setup_logging(log_file, "DEBUG" if verbose else "WARNING", "pretty", console_output=not as_json)

    config, plan = _load_plan(config_path)
    if skip_provision:
        plan = replace(plan, skip_execution=True)

    try:
        communicator = build_communicator(
            _target_overrides(config.target, target, host, user, port, identity, container)
        )
    except ConfigurationError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(EXIT_CONFIG)

    token = CancelToken()
    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, lambda *_: token.cancel())

    reporter = NullReporter() if as_json else ConsoleReporter()
    try:
        result = Provisioner(communicator, reporter=reporter, cancel=token).run(plan)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        reporter.success(
            f"Provisioned {communicator.describe()} in {format_duration(result.duration_seconds)}"
        )

    if result.status == RunStatus.SUCCESS:
        raise SystemExit(EXIT_OK)
    if result.status == RunStatus.CANCELLED:
        raise SystemExit(EXIT_CANCELLED)
    if isinstance(result.error, ConfigurationError):
        raise SystemExit(EXIT_CONFIG)
    raise SystemExit(EXIT_FAILED)


@main.command()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Configuration file")
def validate(config_path):
    """
    Validate configuration without contacting the target.

    Checks:
    - scripts exist and have distinct file names
    - install options do not contradict each other
    - remote paths are absolute
    - the local deno exists when bundling is enabled
    """
    _, plan = _load_plan(config_path)
    click.echo(f"✓ Configuration valid ({len(plan.scripts)} scripts)")


@main.command("plan")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Configuration file")
def show_plan(config_path):
    """Show the resolved plan and the remote commands a run would issue."""
    _, plan = _load_plan(config_path)

    click.echo(yaml.safe_dump(plan.to_dict(), sort_keys=False).rstrip())
    click.echo()
    click.echo("Remote commands:")

    strategy = plan.install_strategy
    if isinstance(strategy, NetworkInstall):
        click.echo(f"  {DOWNLOADER_PROBE}")
        names = ", ".join(m.name for m in PACKAGE_MANAGERS)
        click.echo(f"  (if curl is missing: install it with the first of {names})")
        click.echo(f"  {bootstrap_command(plan.remote_runtime_path, strategy.version)}")
    elif isinstance(strategy, LocalBinaryUpload):
        click.echo(f"  mkdir -p {remote_parent(plan.remote_runtime_path)}")
        click.echo(f"  upload {strategy.path} -> {plan.remote_runtime_path}")
        click.echo(f"  chmod +x {plan.remote_runtime_path}")

    click.echo(f"  mkdir -p {plan.remote_work_dir}")
    remote_paths = []
    for script in plan.scripts:
        name = Path(f"{script.name}.bundle.js") if plan.bundle_enabled else script
        dst = remote_join(plan.remote_work_dir, name)
        remote_paths.append(dst)
        click.echo(f"  upload {script} -> {dst}")

    if plan.skip_execution:
        click.echo("  (execution skipped)")
    else:
        for dst in remote_paths:
            click.echo(f"  {run_command_line(plan.remote_runtime_path, dst)}")


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing configuration")
@click.option(
    "--path",
    "config_path",
    type=click.Path(path_type=Path),
    default=Path(DEFAULT_CONFIG_FILENAME),
    show_default=True,
    help="Where to write the configuration",
)
def init(force, config_path):
    """Write a starter denoprov.yaml."""
    if config_path.exists() and not force:
        click.echo(f"Config already exists at {config_path}. Use --force to overwrite.", err=True)
        raise SystemExit(EXIT_FAILED)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(yaml.safe_dump(STARTER_CONFIG, sort_keys=False))
    click.echo(f"Initialized denoprov config at {config_path}")


if __name__ == "__main__":
    main()
