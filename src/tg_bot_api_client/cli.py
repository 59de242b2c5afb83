"""CLI entry point for tg-bot-api-client."""

import logging
from pathlib import Path

import click

from tg_bot_api_client.client.core import explore_spec
from tg_bot_api_client.compiler.spec import compile_documentation, dump_spec, load_spec, spec_fingerprint
from tg_bot_api_client.errors import BotApiError, CompileError
from tg_bot_api_client.parser.fetch import DOCS_URL, fetch_documentation, read_etag

logger = logging.getLogger(__name__)

DEFAULT_SPEC_FILE = Path("tg-bot-api-spec.json")


def _etag_file_for(output: Path) -> Path:
    return output.parent / ".tg-bot-api-etag"


def _current_fingerprint(output: Path) -> str | None:
    if not output.exists():
        return None
    try:
        return spec_fingerprint(load_spec(output))
    except CompileError as e:
        logger.warning("Replacing unreadable spec file: %s", e)
        return None


def _write_if_changed(html: str, output: Path) -> bool:
    spec = compile_documentation(html)
    if spec_fingerprint(spec) == _current_fingerprint(output):
        return False
    dump_spec(spec, output)
    click.echo(f"Spec updated: {len(spec.methods)} methods, {len(spec.types)} types -> {output}")
    return True


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug messages.")
def main(verbose: bool):
    """Telegram Bot API client: compile the docs into a spec and explore it."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--url", default=DOCS_URL, show_default=True, help="Documentation page URL.")
@click.option("-o", "--output", default=DEFAULT_SPEC_FILE, type=click.Path(path_type=Path), show_default=True, help="Spec JSON file.")
@click.option("--etag-file", default=None, type=click.Path(path_type=Path), help="Where the page ETag is kept (default: next to the spec file).")
@click.option("--force", is_flag=True, help="Ignore the stored ETag.")
def update_spec(url: str, output: Path, etag_file: Path | None, force: bool):
    """Fetch the documentation and rewrite the spec file if it changed."""
    etag_file = etag_file or _etag_file_for(output)
    try:
        page = fetch_documentation(url, etag=None if force else read_etag(etag_file))
        if page is None:
            click.echo("No changes (not modified).")
            return
        changed = _write_if_changed(page.html, output)
    except BotApiError as e:
        raise click.ClickException(str(e)) from e

    if not changed:
        click.echo("No changes.")
    if page.etag:
        etag_file.parent.mkdir(parents=True, exist_ok=True)
        etag_file.write_text(page.etag, encoding="utf-8")


@main.command(name="compile")
@click.argument("page_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", default=DEFAULT_SPEC_FILE, type=click.Path(path_type=Path), show_default=True, help="Spec JSON file.")
def compile_page(page_path: Path, output: Path):
    """Compile a saved documentation page into a spec."""
    try:
        changed = _write_if_changed(page_path.read_text(encoding="utf-8"), output)
    except BotApiError as e:
        raise click.ClickException(str(e)) from e
    if not changed:
        click.echo("No changes.")


@main.command()
@click.argument("spec_path", type=click.Path(exists=True, path_type=Path))
@click.argument("method", required=False)
def explore(spec_path: Path, method: str | None):
    """List the methods of a spec, or the params of METHOD."""
    try:
        rows = explore_spec(load_spec(spec_path), method)
    except BotApiError as e:
        raise click.ClickException(str(e)) from e

    if method is None:
        for row in rows:
            click.echo(f"{row['name']}: {row['description']}")
        click.echo(f"\nTotal: {len(rows)} methods")
        return

    for row in rows:
        flag = "required" if row["required"] else "optional"
        click.echo(f"{row['name']} ({row['type']}, {flag}): {row['description']}")
