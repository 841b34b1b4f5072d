"""
zerog-agent: plan a change, then let the agent carry it out with your approval.

Commands: zerog plan, zerog run, zerog config
"""

import queue
import sys
import threading
from typing import List, Optional

import click
from rich.console import Console

from . import __version__
from .config import CONFIG_FIELDS, LOG_DIR, Config
from .context import generate_project_map, resolve_context
from .errors import PayloadParseError
from .llm import LLMAdapter
from .logger import get_logger, setup_command_log, setup_logger
from .models import Action, PlanTask
from .orchestrator import AgentEvent, AgentLoop, EventType
from .planner import Planner, load_plan, save_plan
from .rendering import EventRenderer, confirm_action, render_error, render_plan
from .tools import ToolExecutor

console = Console()
_log = get_logger(__name__)
BANNER = (
    f"[bold #7FA6D9]zerog-agent[/bold #7FA6D9] "
    f"[dim]v{__version__} · plan, approve, apply[/dim]"
)


def _setup(project_dir: str, verbose: bool) -> Config:
    config = Config.load(project_dir)
    setup_logger("zerog_agent", verbose=verbose or config.debug_mode, log_file=LOG_DIR / "agent.log")
    setup_command_log(LOG_DIR / "commands.log")
    return config


def _make_llm(config: Config, model: Optional[str], with_map: bool = True) -> LLMAdapter:
    kwargs = config.get_llm_kwargs()
    if model:
        kwargs["model"] = model
    project_map = generate_project_map(config.project_root) if with_map else None
    return LLMAdapter(project_map=project_map, **kwargs)


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="zerog")
@click.pass_context
def cli(ctx):
    """zerog-agent: tool-calling coding agent with human approval."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("request", nargs=-1, required=True)
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write the plan to this JSON file")
@click.option("--context", "-c", "context_files", multiple=True, help="Attach a file as context")
@click.option("--model", "-m", default=None, help="Model override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def plan(request, output, context_files, model, project_dir, verbose):
    """Break a request down into a task plan."""
    config = _setup(project_dir, verbose)
    llm = _make_llm(config, model)
    items = resolve_context(context_files, config.project_root) if context_files else None
    try:
        with console.status("[dim]Planning...[/dim]"):
            tasks = Planner(llm).create_plan(" ".join(request), items)
    except ConnectionError as e:
        render_error(console, str(e))
        sys.exit(1)

    if not tasks:
        render_error(console, "The model did not return a usable plan.")
        sys.exit(1)
    render_plan(console, tasks)
    if output:
        save_plan(tasks, output)
        console.print(f"[dim]Plan saved to {output}[/dim]")


@cli.command()
@click.argument("request", nargs=-1)
@click.option("--plan-file", "-p", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Run a plan saved by 'zerog plan -o'")
@click.option("--context", "-c", "context_files", multiple=True, help="Attach a file as context")
@click.option("--model", "-m", default=None, help="Model override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--yes", "-y", "auto_confirm", is_flag=True, help="Approve every tool call")
@click.option("--allow-terminal/--no-terminal", default=None, help="Override agent.allow-terminal")
@click.option("--show-reasoning", is_flag=True, help="Print <thinking> segments")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(request, plan_file, context_files, model, project_dir, auto_confirm,
        allow_terminal, show_reasoning, verbose):
    """Execute a plan task by task, asking before every tool call."""
    console.print(BANNER)
    config = _setup(project_dir, verbose)
    if allow_terminal is not None:
        config.allow_terminal = allow_terminal
    llm = _make_llm(config, model)

    if plan_file:
        try:
            tasks = load_plan(plan_file)
        except PayloadParseError as e:
            render_error(console, str(e))
            sys.exit(1)
    elif request:
        items = resolve_context(context_files, config.project_root) if context_files else None
        try:
            with console.status("[dim]Planning...[/dim]"):
                tasks = Planner(llm).create_plan(" ".join(request), items)
        except ConnectionError as e:
            render_error(console, str(e))
            sys.exit(1)
        if not tasks:
            render_error(console, "The model did not return a usable plan.")
            sys.exit(1)
    else:
        raise click.UsageError("Give a REQUEST or --plan-file.")

    render_plan(console, tasks)
    failed = _run_loop(config, llm, tasks, context_files, auto_confirm, show_reasoning)
    console.print()
    render_plan(console, tasks)
    if failed:
        sys.exit(1)


def _run_loop(config: Config, llm: LLMAdapter, tasks: List[PlanTask], context_files,
              auto_confirm: bool, show_reasoning: bool) -> bool:
    """Drive the agent loop on a worker thread; approvals are asked here."""
    executor = ToolExecutor(
        config.project_root,
        blocked_commands=config.blocked_commands,
        command_timeout=config.command_timeout,
        allow_terminal=config.allow_terminal,
    )
    renderer = EventRenderer(console, show_reasoning=show_reasoning)
    requests: "queue.Queue[Action]" = queue.Queue()
    failed = threading.Event()

    def on_event(event: AgentEvent):
        renderer.on_event(event)
        if event.type is EventType.WAITING_FOR_TOOL:
            requests.put(event.action)
        elif event.type is EventType.TASK_FAILED:
            failed.set()

    loop = AgentLoop(
        llm,
        executor,
        on_event=on_event,
        max_iterations=config.max_iterations,
        get_context_items=lambda: resolve_context(context_files, config.project_root),
        on_segment=renderer.on_segment,
    )
    worker = threading.Thread(target=loop.run, args=(tasks,), name="zerog-agent-loop", daemon=True)
    worker.start()

    always = auto_confirm
    try:
        while worker.is_alive():
            try:
                action = requests.get(timeout=0.1)
            except queue.Empty:
                continue
            if always or (config.auto_apply_diff and action.name == "write_file"):
                loop.approve()
                continue
            answer = confirm_action(console, action)
            if answer == "always":
                always = True
            if answer in ("yes", "always"):
                loop.approve()
            else:
                loop.reject()
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping...[/dim]")
        _log.info("Interrupted; stopping agent loop")
        loop.stop()
        worker.join()
    return failed.is_set()


@cli.group("config", invoke_without_command=True)
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.pass_context
def config_cmd(ctx, project_dir):
    """Show or change configuration."""
    ctx.obj = Config.load(project_dir)
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_show)


@config_cmd.command("show")
@click.pass_obj
def config_show(cfg: Config):
    """Show configuration."""
    summary = cfg.summary()
    console.print(f"[dim]source: {summary.pop('source')}[/dim]")
    for key, value in summary.items():
        console.print(f"  [bold]{key}[/bold] = {value!r}", highlight=False)


@config_cmd.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(cfg: Config, key, value):
    """Set KEY (e.g. agent.max-iterations) to VALUE."""
    ok, error = cfg.set_config_value(key, value)
    if not ok:
        render_error(console, f"{key}: {error}")
        sys.exit(1)
    console.print(f"[green]✓[/green] {key} = {cfg.get_config_value(key)!r}  [dim]({cfg.config_source})[/dim]")


@config_cmd.command("reset")
@click.argument("key", type=click.Choice(sorted(CONFIG_FIELDS)))
@click.pass_obj
def config_reset(cfg: Config, key):
    """Reset KEY to its default."""
    cfg.reset_config_value(key)
    console.print(f"[green]✓[/green] {key} = {cfg.get_config_value(key)!r}")


if __name__ == "__main__":
    cli()
