"""CLI commands for sysglance."""

from dataclasses import replace
from pathlib import Path

import click

from sysglance import logging as console
from sysglance.config import Config


def _load_config(path: Path | None) -> Config:
    try:
        return Config.load(path)
    except ValueError as e:
        console.config_invalid(str(e))
        raise click.exceptions.Exit(1) from e


def _apply_overrides(
    config: Config,
    rate: int | None,
    group: bool,
    tree: bool,
    case_sensitive: bool,
    regex: bool,
    whole_word: bool,
    temperature_unit: str | None,
) -> Config:
    """Command line flags win over the config file."""
    collection = config.collection
    if rate is not None:
        collection = replace(collection, interval_seconds=rate / 1000)

    processes = config.processes
    processes = replace(
        processes,
        grouped=processes.grouped or group,
        tree=(processes.tree or tree) and not group,
        case_sensitive=processes.case_sensitive or case_sensitive,
        regex=processes.regex or regex,
        whole_word=processes.whole_word or whole_word,
    )

    display = config.display
    if temperature_unit is not None:
        display = replace(display, temperature_unit=temperature_unit)

    config = replace(config, collection=collection, processes=processes, display=display)
    config.validate()
    return config


@click.group(invoke_without_command=True)
@click.version_option(package_name="sysglance")
@click.option(
    "--rate",
    type=click.IntRange(min=250),
    default=None,
    metavar="MS",
    help="Refresh rate in milliseconds (minimum 250)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of the default location",
)
@click.option("--group", "-g", is_flag=True, help="Group processes by name")
@click.option("--tree", "-t", is_flag=True, help="Show processes as a tree")
@click.option("--case-sensitive", is_flag=True, help="Match search text case-sensitively")
@click.option("--regex", is_flag=True, help="Treat search text as regular expressions")
@click.option("--whole-word", is_flag=True, help="Match search text as whole words")
@click.option("--celsius", "-c", "temperature_unit", flag_value="celsius", help="Temperatures in C")
@click.option(
    "--fahrenheit", "-f", "temperature_unit", flag_value="fahrenheit", help="Temperatures in F"
)
@click.option("--kelvin", "-k", "temperature_unit", flag_value="kelvin", help="Temperatures in K")
@click.option("--debug", "-d", is_flag=True, help="Log debug events to the log file")
@click.pass_context
def main(
    ctx,
    rate: int | None,
    config_path: Path | None,
    group: bool,
    tree: bool,
    case_sensitive: bool,
    regex: bool,
    whole_word: bool,
    temperature_unit: str | None,
    debug: bool,
) -> None:
    """Interactive terminal system monitor."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    # If a subcommand was invoked, let it handle things
    if ctx.invoked_subcommand is not None:
        return

    config = _load_config(config_path)
    try:
        config = _apply_overrides(
            config, rate, group, tree, case_sensitive, regex, whole_word, temperature_unit
        )
    except ValueError as e:
        console.config_invalid(str(e))
        raise click.exceptions.Exit(1) from e

    from sysglance.app import SysglanceApp

    console.configure(config, debug=debug)
    app = SysglanceApp(config)
    app.run()
    if not app.stopped_cleanly:
        console.monitor_stopped_late(config.collection.shutdown_timeout)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx) -> None:
    """Display current configuration."""
    path = ctx.obj.get("config_path")
    cfg = _load_config(path)
    path = path or cfg.config_path

    click.echo(f"Config file: {path}")
    click.echo(f"Exists: {path.exists()}")
    click.echo()
    click.echo(cfg.to_toml())


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
@click.pass_context
def config_reset(ctx) -> None:
    """Reset configuration to defaults."""
    cfg = Config()
    path = ctx.obj.get("config_path") or cfg.config_path
    cfg.save(path)
    console.config_reset(str(path))


@config.command("path")
@click.pass_context
def config_path(ctx) -> None:
    """Print the config file location."""
    click.echo(ctx.obj.get("config_path") or Config().config_path)
