# repochat/cli.py
import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger

from .services.logging import setup_logging
from .config.loader import SECRET_FIELDS, get_config, save_config
from .config.paths import get_user_config_file
from .config.schema import AppConfig
from .core.errors import RepoChatError, TranscriptBusyError
from .core.github_source import GitHubSource, format_size
from .core.indexer import RepositoryIndexer
from .core.models import IndexedRepository, IndexingProgress, TurnState
from .core.orchestrator import CompletionOrchestrator
from .core.session import ChatSession
from .core.token_counter import count_tokens
from .core.tree_reducer import TreeReducer
from . import __version__

app = typer.Typer(help="RepoChat CLI - Ask questions about a GitHub repository.")

CHAT_HELP = "Commands: /prompts, /clear, /new <repo>, /quit. Enter a number to ask a suggested prompt."

def version_callback(value: bool):
    if value:
        print(f"RepoChat CLI Version: {__version__}")
        raise typer.Exit()

@app.callback()
def main_options(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    log_file: bool = typer.Option(True, "--log-file/--no-log-file", help="Also write logs to the user log directory."),
    version: Optional[bool] = typer.Option(None, "--version", callback=version_callback, is_eager=True, help="Show version and exit."),
):
    """ Main callback to set up logging """
    log_level = "DEBUG" if verbose else "WARNING"
    setup_logging(level=log_level, verbose=verbose, log_to_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose

def _print_progress(progress: IndexingProgress):
    typer.echo(f"[{progress.percentage:>3}%] {progress.message}", err=True)

async def _index(config: AppConfig, reference: str, quiet: bool = False) -> IndexedRepository:
    async with GitHubSource(config.github) as source:
        indexer = RepositoryIndexer(source, progress_callback=None if quiet else _print_progress)
        return await indexer.index(reference)

def _index_or_exit(config: AppConfig, reference: str, quiet: bool = False) -> IndexedRepository:
    try:
        return asyncio.run(_index(config, reference, quiet=quiet))
    except RepoChatError as e:
        logger.debug(f"Indexing failed for '{reference}': {e!r}")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

def _summary_lines(indexed: IndexedRepository) -> List[str]:
    repo = indexed.repo
    lines = [
        f"{repo.full_name} ({repo.url})" if repo.url else repo.full_name,
        f"  {repo.description}",
        f"  Language: {repo.language}  Stars: {repo.stars:,}  Forks: {repo.forks:,}",
        f"  Files: {indexed.total_files:,}  Size: {format_size(indexed.total_size)}  Branch: {repo.default_branch}",
    ]
    if indexed.key_files:
        lines.append("  Key files: " + ", ".join(f.path for f in indexed.key_files))
    else:
        lines.append("  Key files: none found")
    return lines

@app.command()
def info(
    repo: str = typer.Argument(..., help="GitHub URL or owner/name."),
):
    """
    Indexes a repository and prints a summary.
    """
    config = get_config()
    indexed = _index_or_exit(config, repo)
    for line in _summary_lines(indexed):
        typer.echo(line)

@app.command()
def context(
    repo: str = typer.Argument(..., help="GitHub URL or owner/name."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the context to this file instead of stdout.", writable=True, resolve_path=True),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Override the outline depth limit."),
):
    """
    Indexes a repository and prints the reduced context sent to the model.
    """
    config = get_config()
    context_config = config.context
    if max_depth is not None:
        context_config = context_config.model_copy(update={"max_depth": max_depth})

    indexed = _index_or_exit(config, repo)
    text = TreeReducer.from_config(context_config).reduce(indexed.file_tree, indexed.key_files,
                                                          total_files=indexed.total_files)
    tokens = count_tokens(text)

    if output:
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(text, encoding='utf-8')
        except OSError as e:
            logger.error(f"Error writing output file: {e}")
            raise typer.Exit(code=1)
        typer.echo(f"Context written to: {output}", err=True)
    else:
        typer.echo(text)
    typer.echo(f"Context size: {len(text):,} chars, ~{tokens:,} tokens", err=True)

@app.command("config")
def show_config(
    save: bool = typer.Option(False, "--save", help="Write the effective settings to the user config file."),
):
    """
    Shows the effective settings. API keys are reported as set or not set, never printed.
    """
    config = get_config()
    config_file = get_user_config_file()
    typer.echo(f"Config file: {config_file}")
    typer.echo(config.model_dump_json(indent=2, exclude=SECRET_FIELDS))
    for label, value in (('OpenAI key', config.openai.api_key), ('Anthropic key', config.anthropic.api_key),
                         ('GitHub token', config.github.token)):
        typer.echo(f"{label}: {'set' if value else 'not set'}")

    if save:
        save_config(config, config_file)
        typer.echo(f"Settings written to: {config_file}", err=True)

def _print_suggested_prompts(config: AppConfig):
    typer.echo("Suggested prompts:")
    for number, prompt in enumerate(config.suggested_prompts, start=1):
        typer.echo(f"  {number}. {prompt}")

def _start_session(config: AppConfig, orchestrator: CompletionOrchestrator, reference: str) -> Optional[ChatSession]:
    try:
        indexed = asyncio.run(_index(config, reference))
    except RepoChatError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        return None
    for line in _summary_lines(indexed):
        typer.echo(line)
    typer.echo(CHAT_HELP)
    _print_suggested_prompts(config)
    return ChatSession(indexed, orchestrator)

def _resolve_input(config: AppConfig, text: str) -> str:
    if text.isdigit():
        number = int(text)
        if 1 <= number <= len(config.suggested_prompts):
            return config.suggested_prompts[number - 1]
    return text

def _ask(session: ChatSession, question: str):
    typer.secho("assistant> ", fg=typer.colors.CYAN, nl=False)
    turn = asyncio.run(session.ask(question, on_token=lambda token: typer.echo(token, nl=False)))
    if turn is None:
        return
    if turn.state == TurnState.ERRORED:
        typer.secho(turn.content, fg=typer.colors.RED)
    else:
        typer.echo("")

@app.command()
def chat(
    repo: str = typer.Argument(..., help="GitHub URL or owner/name."),
    question: Optional[List[str]] = typer.Option(None, "--question", "-q", help="Ask these questions and exit instead of starting an interactive loop."),
):
    """
    Indexes a repository and answers questions about it, streaming replies.
    """
    config = get_config()
    try:
        orchestrator = CompletionOrchestrator(config)
    except RepoChatError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    session = _start_session(config, orchestrator, repo)
    if session is None:
        raise typer.Exit(code=1)

    if question:
        for q in question:
            typer.secho(f"you> {q}", fg=typer.colors.GREEN)
            _ask(session, _resolve_input(config, q))
        return

    while True:
        try:
            text = typer.prompt("you", prompt_suffix="> ").strip()
        except typer.Abort:
            typer.echo("")
            break

        if text in ("/quit", "/exit"):
            break
        if text == "/prompts":
            _print_suggested_prompts(config)
            continue
        if text == "/clear":
            try:
                session.clear()
                typer.echo("Conversation cleared.")
            except TranscriptBusyError as e:
                typer.secho(str(e), fg=typer.colors.YELLOW)
            continue
        if text.startswith("/new"):
            reference = text[len("/new"):].strip()
            if not reference:
                typer.echo("Usage: /new <repo>")
                continue
            new_session = _start_session(config, orchestrator, reference)
            if new_session is not None:
                session = new_session
            continue

        _ask(session, _resolve_input(config, text))
