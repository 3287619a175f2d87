"""CLI entry point for notecore."""

import asyncio
from pathlib import Path

import click

from . import __version__
from . import bridge
from . import convert
from .config import ConfigError, Settings, load_settings
from .converters import MarkupCodec
from .links import LinkResolver, find_backlinks, parse_wiki_links
from .logger import configure_logging
from .models import NoteFile, parse_daily_filename
from .sanitizer import ContentSanitizer
from .tags import aggregate_tags, normalize_tag, note_tags, sort_tags_by_count
from .tasks import index_tasks


def _codec(settings: Settings) -> MarkupCodec:
    return MarkupCodec(
        ContentSanitizer(settings.asset_url_prefixes),
        LinkResolver(settings.preserve_link_aliases),
    )


def _bridge(settings: Settings) -> bridge.ProcessBridge:
    if not settings.bridge_command:
        raise click.ClickException(
            "No bridge command configured. Set bridge_command in the config file "
            "or NOTECORE_BRIDGE_COMMAND."
        )
    return bridge.ProcessBridge(settings.bridge_command)


@click.group()
@click.version_option(version=__version__, prog_name="notecore")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="TOML settings file")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool):
    """notecore - convert and inspect notes stored as Markdown."""
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = {"settings": settings, "codec": _codec(settings)}


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.pass_obj
def decode(obj: dict, source):
    """Convert a Markdown note to editor HTML."""
    click.echo(obj["codec"].decode(source.read()))


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.pass_obj
def encode(obj: dict, source):
    """Convert editor HTML to Markdown for storage."""
    click.echo(obj["codec"].encode(source.read()), nl=False)


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.pass_obj
def sanitize(obj: dict, source):
    """Strip disallowed tags and attributes from HTML."""
    click.echo(obj["codec"].sanitizer.sanitize(source.read()))


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.pass_obj
def tasks(obj: dict, source):
    """Count task items in a note (Markdown or HTML)."""
    status = index_tasks(obj["codec"].decode(source.read()))
    if status.total_tasks == 0:
        click.echo("No tasks.")
        return
    click.echo(f"{status.completed_tasks}/{status.total_tasks} tasks done")
    if status.has_incomplete:
        click.echo(f"{status.total_tasks - status.completed_tasks} open")


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
def links(source):
    """List the wiki links in a note."""
    found = parse_wiki_links(source.read())
    if not found:
        click.echo("No links found.")
        return

    click.echo(f"{'Display':<40} {'Target'}")
    click.echo("-" * 60)
    for link in found:
        display = link.display_text[:38] + ".." if len(link.display_text) > 40 else link.display_text
        click.echo(f"{display:<40} {link.target}")


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("note")
def backlinks(directory: Path, note: str):
    """List notes under DIRECTORY that link to NOTE."""
    contents: dict[str, str] = {}
    info: dict[str, tuple[str, bool]] = {}

    for path in sorted(directory.rglob("*.md")):
        relative = path.relative_to(directory).as_posix()
        try:
            contents[relative] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            click.echo(f"Skipping {relative}: {e}", err=True)
            continue
        info[relative] = (path.stem, parse_daily_filename(path.name) is not None)

    results = find_backlinks(note, contents, info)
    if not results:
        click.echo(f"No notes link to '{note}'.")
        return

    for result in results:
        marker = "daily" if result.is_daily else "note"
        click.echo(f"{marker:<6} {result.source_name:<40} {result.source_path}")
    click.echo(f"\nFound: {len(results)} backlinks")


@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--tag", "-t", "selected", multiple=True, help="Only list notes carrying this tag (repeatable)")
def tags(path: Path, selected: tuple[str, ...]):
    """List the #tags in a note, or count them across the notes under PATH."""
    if path.is_file():
        found = note_tags(path.read_text(encoding="utf-8"))
        click.echo("\n".join(f"#{tag}" for tag in found) if found else "No tags found.")
        return

    contents: dict[str, str] = {}
    for note_path in sorted(path.rglob("*.md")):
        relative = note_path.relative_to(path).as_posix()
        try:
            contents[relative] = note_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            click.echo(f"Skipping {relative}: {e}", err=True)

    if selected:
        wanted = {normalize_tag(tag.lstrip("#")) for tag in selected}
        matches = [name for name, text in contents.items() if wanted <= set(note_tags(text))]
        for name in matches:
            click.echo(name)
        click.echo(f"\nFound: {len(matches)} notes")
        return

    counts = aggregate_tags(contents.values())
    if not counts:
        click.echo("No tags found.")
        return

    click.echo(f"{'Tag':<30} {'Notes'}")
    click.echo("-" * 40)
    for tag, count in sort_tags_by_count(counts):
        click.echo(f"{'#' + tag:<30} {count}")
    click.echo(f"\nTotal: {len(counts)} tags")


@cli.command(name="list")
@click.option("--folder", "-f", help="Filter by folder path")
@click.pass_obj
def list_notes(obj: dict, folder: str | None):
    """List notes through the bridge helper."""
    helper = _bridge(obj["settings"])
    try:
        records = asyncio.run(helper.list_notes())
    except bridge.BridgeError as e:
        raise click.ClickException(str(e))

    notes = [NoteFile.from_dict(record) for record in records]
    if folder:
        notes = [n for n in notes if n.folder_path == folder]

    if not notes:
        click.echo("No notes found.")
        return

    click.echo(f"{'Name':<40} {'Kind':<10} {'Locked'}")
    click.echo("-" * 60)
    for note in notes:
        name = note.name[:38] + ".." if len(note.name) > 40 else note.name
        click.echo(f"{name:<40} {note.kind.value:<10} {'yes' if note.is_locked else ''}")

    click.echo(f"\nTotal: {len(notes)} notes")


@cli.command()
@click.argument("filename")
@click.option("--daily", is_flag=True, help="Read from the daily notes")
@click.option("--weekly", is_flag=True, help="Read from the weekly notes")
@click.option("--html", "as_html", is_flag=True, help="Print editor HTML instead of plain text")
@click.pass_obj
def show(obj: dict, filename: str, daily: bool, weekly: bool, as_html: bool):
    """Show a note's content through the bridge helper."""
    helper = _bridge(obj["settings"])
    try:
        raw = asyncio.run(helper.read_note(filename, is_daily=daily, is_weekly=weekly))
    except bridge.BridgeError as e:
        raise click.ClickException(str(e))

    html = obj["codec"].decode(raw)
    if as_html:
        click.echo(html)
        return

    content = convert.html_to_plaintext(html)
    click.echo(content if content else "(No content)")


if __name__ == "__main__":
    cli()
