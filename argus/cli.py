"""Command-line interface for Argus.

This module defines the CLI commands using Click framework.
It provides commands for creating sites, compiling them and running the
development server.

Commands:
- new: Scaffold a new Argus site.
- compile: Compile the site into the output directory.
- create-item / create-layout: Create an item or layout in the first data source.
- info: List the available filters and data sources.
- serve: Run development server with live reload.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

import click
import questionary

from . import __version__
from .errors import ArgusError
from .site import CONFIG_FILENAME, DEFAULTS_FILENAME, Site
from .utils import titleize

_SCAFFOLD_FILES = {
    CONFIG_FILENAME: """\
# Extensions of files treated as text; all others are binary.
text_extensions: [css, htm, html, jinja, js, markdown, md, txt, xml]

# Where compiled output is written.
output_dir: output

# Filenames stripped from web paths ("/about/index.html" -> "/about/").
index_filenames: [index.html]

data_sources:
  - type: filesystem
    items_root: /
    layouts_root: /
""",
    DEFAULTS_FILENAME: """\
# Attributes every item inherits unless it sets them itself.
layout: default
""",
    "rules.py": '''\
# Compilation rules: the first rule matching an item's identifier wins.
# ``rules`` is provided by argus when this file is loaded.


@rules.compile("/stylesheet/")
def stylesheet(ctx):
    ctx.layout(None)


@rules.compile("*")
def everything(ctx):
    ctx.filter("jinja")
    ctx.layout("default")


@rules.route("/stylesheet/")
def stylesheet_route(ctx):
    return "/style.css"


@rules.route("*")
def everything_route(ctx):
    return ctx.identifier + "index.html"


rules.layout_filter("*", "jinja")
''',
    "content/index.html": """\
---
title: Home
---
<h1>A brand new site</h1>
<p>Edit <code>content/index.html</code> to change this page.</p>
""",
    "content/stylesheet.css": """\
body { font-family: sans-serif; margin: 2rem auto; max-width: 40rem; }
""",
    "layouts/default.html": """\
<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{{ item.title or "Argus site" }}</title>
    <link rel="stylesheet" href="/style.css">
  </head>
  <body>
{{ content }}
  </body>
</html>
""",
    "lib/helpers.py": '''\
"""Site helpers; every module in lib/ is loaded before the rules."""

from argus.filters import register_filter


@register_filter("shout")
def shout(content, params, context):
    return content.upper()
''',
}


@click.group()
@click.version_option(version=__version__, prog_name="argus")
@click.option("-v", "--verbose", is_flag=True, help="Log compilation progress")
def cli(verbose: bool):
    """Argus static site generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("path")
def new(path: str):
    """Scaffold a new Argus site."""
    target = Path(path).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to create a site in non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Argus site created at {target}")


@cli.command(name="compile")
@click.option("--force", is_flag=True, help="Recompile every rep, even when up to date")
def compile_site(force: bool):
    """Compile the site into the output directory."""
    site_dir = Path.cwd()
    with _reporting_errors():
        site = Site(site_dir)
        site.events.subscribe("rep_written", _report_written)
        site.events.subscribe("rep_skipped", _report_skipped)
        reps = site.compile(force=force)
        site.store_checksums()
    created = sum(1 for rep in reps if rep.created)
    updated = sum(1 for rep in reps if rep.modified and not rep.created)
    click.echo(
        f"Compiled {len(reps)} reps into {site.output_dir} "
        f"({created} created, {updated} updated)"
    )


@cli.command(name="create-item")
@click.argument("identifier", required=False)
def create_item(identifier: str | None):
    """Create an item in the first data source."""
    identifier = identifier or _ask_identifier("Item identifier:")
    with _reporting_errors():
        data_source = Site(Path.cwd()).data_sources[0]
        path = data_source.create_item(
            "Hi!\n", {"title": titleize(identifier)}, identifier
        )
    click.echo(f"Created item {identifier} at {path}")


@cli.command(name="create-layout")
@click.argument("identifier", required=False)
def create_layout(identifier: str | None):
    """Create a layout in the first data source."""
    identifier = identifier or _ask_identifier("Layout identifier:")
    with _reporting_errors():
        data_source = Site(Path.cwd()).data_sources[0]
        path = data_source.create_layout(
            "<html>\n  <body>\n{{ content }}\n  </body>\n</html>\n",
            {"filter": "jinja"},
            identifier,
        )
    click.echo(f"Created layout {identifier} at {path}")


@cli.command()
def info():
    """List the available filters and data sources."""
    from .data_sources import default_data_source_registry
    from .filters import default_filter_registry

    click.echo(click.style("Filters:", bold=True))
    for name in default_filter_registry.names():
        click.echo(f"  {name}")
    click.echo(click.style("Data sources:", bold=True))
    for name in default_data_source_registry.names():
        click.echo(f"  {name}")


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides config.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides config.yaml ws_port)",
)
def serve(port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    from .server import DevServer

    with _reporting_errors():
        server = DevServer(Path.cwd(), http_port=port, ws_port=ws_port)
    server.start()


@contextmanager
def _reporting_errors():
    """Turn an ArgusError into a coloured report and exit status 1."""
    try:
        yield
    except ArgusError as exc:
        click.echo(click.style("Error:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  {type(exc).__name__}", fg="yellow"), err=True)
        click.echo(click.style(f"  {exc}", fg="white"), err=True)
        cause = exc.__cause__
        if cause is not None:
            click.echo(
                click.style(f"  Caused by {type(cause).__name__}: {cause}", fg="white"),
                err=True,
            )
        raise SystemExit(1) from None


def _report_written(rep, path: Path, created: bool, modified: bool) -> None:
    if created:
        action, colour = "create", "green"
    elif modified:
        action, colour = "update", "yellow"
    else:
        action, colour = "identical", None
    click.echo(f"{click.style(f'{action:>10}', fg=colour, bold=True)}  {_relative(path)}")


def _report_skipped(rep) -> None:
    if rep.disk_path is not None:
        label = click.style(f"{'skip':>10}", dim=True)
        click.echo(f"{label}  {_relative(rep.disk_path)}")


def _relative(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


def _ask_identifier(question: str) -> str:
    answer = questionary.text(
        question,
        validate=lambda x: len(x.strip()) > 0 or "Identifier cannot be empty",
        style=_questionary_style(),
    ).ask()
    if answer is None:
        raise click.Abort()
    return answer.strip()


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the files of a new site.

    Args:
        root: Root directory for the new site. Each configured data source
            then runs its ``setup``.
    """
    for rel_path, content in _SCAFFOLD_FILES.items():
        dest_path = root / rel_path
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_text(content, encoding="utf-8")
    for source in Site(root).data_sources:
        source.setup()
