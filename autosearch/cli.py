"""
AutoSearch CLI — `autosearch` command.

Commands:
  autosearch run              Run the agent in the foreground
  autosearch start            Fetch topics and start a search session
  autosearch stop-interval    Stop an interval session
  autosearch stop-all         Stop every search and halt scrolling
  autosearch download-logs    Save the activity log to a file
"""

from pathlib import Path

import click
from rich.console import Console

from autosearch import __version__
from autosearch.channel import DOWNLOAD_LOGS, START_SEARCH, STOP_ALL, STOP_INTERVAL, CommandChannel
from autosearch.session import Mode
from autosearch.settings import Settings
from autosearch.store import DOWNLOAD_READY, DurableStore, StoreError
from autosearch.topics import TopicSource

console = Console()


def _settings(state_dir: Path | None, **overrides) -> Settings:
    if state_dir is not None:
        overrides["state_dir"] = state_dir
    return Settings(**overrides)


def _send(settings: Settings, message: dict) -> dict:
    reply = CommandChannel(settings.inbox_dir, settings.reply_timeout).send(message)
    if reply is None:
        console.print("[red]No reply from the agent. Is `autosearch run` running?[/red]")
        raise SystemExit(1)
    return reply


@click.group()
@click.version_option(__version__)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Agent state directory (defaults to $AUTOSEARCH_STATE_DIR).",
)
@click.pass_context
def main(ctx, state_dir):
    """AutoSearch — paced, human-like search automation."""
    ctx.obj = {"state_dir": state_dir}


@main.command("run")
@click.option("--fresh", is_flag=True, help="Discard any interrupted session.")
@click.option("--headless", is_flag=True, help="Run Firefox without a window.")
@click.pass_context
def run_cmd(ctx, fresh, headless):
    """Run the agent in the foreground."""
    from autosearch.main import Agent

    Agent(_settings(ctx.obj["state_dir"], fresh_start=fresh, headless=headless)).run()


@main.command("start")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in Mode]),
    default=Mode.CONTINUOUS.value,
    show_default=True,
)
@click.option("--count", type=click.IntRange(1, 100), default=90, show_default=True)
@click.option(
    "--topics-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON list of topics to use before the web sources.",
)
@click.pass_context
def start_cmd(ctx, mode, count, topics_file):
    """Fetch topics and start a search session."""
    settings = _settings(ctx.obj["state_dir"], topic_count=count, topics_path=topics_file)
    with console.status("Loading topics..."):
        topics = TopicSource(settings).fetch(count)
    reply = _send(settings, {"action": START_SEARCH, "queries": topics, "mode": mode})
    console.print(f"[green]{reply.get('status')} ({len(topics)} searches, {mode} mode)[/green]")


@main.command("stop-interval")
@click.pass_context
def stop_interval_cmd(ctx):
    """Stop an interval session."""
    reply = _send(_settings(ctx.obj["state_dir"]), {"action": STOP_INTERVAL})
    console.print(f"[yellow]{reply.get('status')}[/yellow]")


@main.command("stop-all")
@click.pass_context
def stop_all_cmd(ctx):
    """Stop every search and halt scrolling."""
    reply = _send(_settings(ctx.obj["state_dir"]), {"action": STOP_ALL})
    console.print(f"[yellow]{reply.get('status')}[/yellow]")


@main.command("download-logs")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("app.log"),
    show_default=True,
)
@click.pass_context
def download_logs_cmd(ctx, output):
    """Save the activity log to a file."""
    settings = _settings(ctx.obj["state_dir"])
    reply = _send(settings, {"action": DOWNLOAD_LOGS})
    if reply.get("status") != "Logs download initiated":
        console.print(f"[yellow]{reply.get('status')}[/yellow]")
        return
    try:
        payload = DurableStore(settings.store_path).get([DOWNLOAD_READY]).get(DOWNLOAD_READY)
    except StoreError as e:
        console.print(f"[red]Cannot read log payload: {e}[/red]")
        raise SystemExit(1)
    if not payload or not payload.get("ready"):
        error = (payload or {}).get("error", "No logs available")
        console.print(f"[red]{error}[/red]")
        raise SystemExit(1)
    output.write_text(payload["content"] + "\n")
    console.print(f"[green]Saved logs to {output} ({payload['timestamp']})[/green]")


if __name__ == "__main__":
    main()
