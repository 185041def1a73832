"""
Command-line entry point.

    python main.py scrape https://www.gsmarena.com/some_phone-1234.php --user alice
    python main.py review
    python main.py approve <submission-id>
    python main.py sweep
    python main.py diagnose data/*.html
    python main.py serve --port 8000
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import orjson
import typer

from diagnostics import diagnose_file, print_report
from review import ReviewError
from server import Services, build_services
from settings import get_settings

app = typer.Typer(help="Scrape spec pages into a review queue and promote them into the catalog.")


def _dump(data) -> None:
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def _services() -> Services:
    return build_services(get_settings())


@app.callback()
def configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def scrape(
    url: Annotated[str, typer.Argument(help="Spec page URL")],
    user: Annotated[str, typer.Option(help="Actor recorded as added_by")] = "cli-user",
) -> None:
    """Scrape one page into a pending submission."""

    async def _run():
        services = _services()
        try:
            return await services.coordinator.ingest(url, user)
        finally:
            await services.client.aclose()

    result = asyncio.run(_run())
    _dump(result.model_dump(mode="json"))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def review() -> None:
    """Print the consolidated review queue."""
    entries = _services().reconciler.load_queue()
    for entry in entries:
        s = entry.submission
        line = f"{s.id}  {s.title:<40} images={len(s.image_urls)} added_by={s.added_by}"
        if entry.merged_from:
            line += f"  (latest data from {entry.merged_from})"
        if entry.duplicate_ids:
            line += f"  duplicates={entry.duplicate_ids}"
        typer.echo(line)
    typer.echo(f"{len(entries)} pending")


@app.command()
def approve(submission_id: Annotated[str, typer.Argument(help="Submission id")]) -> None:
    """Promote a pending submission into the catalog."""
    try:
        entry = _services().reconciler.approve(submission_id)
    except ReviewError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    _dump(entry.model_dump(mode="json"))


@app.command()
def sweep() -> None:
    """Finish interrupted promotions and list inconsistent records."""
    _dump(_services().reconciler.sweep().model_dump(mode="json"))


@app.command()
def diagnose(files: Annotated[list[Path], typer.Argument(help="Saved spec page HTML files")]) -> None:
    """Parse saved pages offline and report canonical field coverage."""
    print_report([diagnose_file(f) for f in files])


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("server:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    app()
