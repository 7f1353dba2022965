import asyncio, json, logging, signal, time
from dataclasses import dataclass
from typing import Any, Coroutine, Optional

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    Progress, BarColumn, TextColumn, TimeElapsedColumn,
    TimeRemainingColumn, MofNCompleteColumn, SpinnerColumn, TaskID
)

from .adapters.changes_jsonl import JSONLChangeLog
from .adapters.result_files import result_file_for
from .adapters.rpc_httpx import HttpxChainReader
from .application.use_cases import ContractVariableTracer
from .config import DEFAULT_CONFIG_PATH, load_trace_config
from .domain.errors import ConfigError, CvtError
from .domain.models import ProgressEvent, SampleResult, WatchOptions

console = Console()


@dataclass
class CliContext:
    rpc: str
    ws: Optional[str]
    chain_id: Optional[int]
    poll_interval: float


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )
    # keep request-level chatter out of the default output
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _make_reader(ctx: CliContext) -> HttpxChainReader:
    return HttpxChainReader(ctx.rpc, ws_url=ctx.ws, poll_interval_s=ctx.poll_interval)


async def _check_chain(reader: HttpxChainReader, expected: Optional[int]) -> None:
    if expected is None:
        return
    actual = await reader.chain_id()
    if actual != expected:
        raise ConfigError(f"RPC endpoint serves chain {actual}, expected --chain-id {expected}")


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except (CvtError, httpx.HTTPError) as e:
        raise click.ClickException(str(e))


def _progress() -> Progress:
    return Progress(SpinnerColumn(),
                    TextColumn("[bold]{task.description}[/]"),
                    BarColumn(),
                    MofNCompleteColumn(),
                    TextColumn("•"),
                    TimeElapsedColumn(),
                    TextColumn("→"),
                    TimeRemainingColumn(),
                    console=console,
                    transient=False,
                    expand=True,
                    )


def _progress_callback(progress: Progress):
    tasks: dict[str, TaskID] = {}

    def on_progress(ev: ProgressEvent) -> None:
        if ev.key not in tasks:
            tasks[ev.key] = progress.add_task(ev.description, total=ev.total)
        progress.update(tasks[ev.key], completed=ev.current)
    return on_progress


def _read_blocks_file(path: str) -> list[int]:
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Cannot read blocks file {path}: {e}")
    if not isinstance(data, list):
        raise click.ClickException(f"Blocks file {path} must hold a JSON array")
    return sorted({int(b) for b in data})


def _print_results(results: list[SampleResult]) -> None:
    console.print("\n================ Tracing Result START ================")
    console.print_json(data=[r.to_json() for r in results])
    console.print("================ Tracing Result END ==================\n")


@click.group()
@click.option("--rpc", "-r", required=True, envvar="CVT_RPC_URL", help="HTTP JSON-RPC endpoint URL")
@click.option("--ws", default=None, envvar="CVT_WS_URL", help="Optional websocket endpoint for live log subscriptions")
@click.option("--chain-id", "-c", type=int, default=None, help="Fail unless the endpoint serves this chain id")
@click.option("--poll-interval", type=float, default=4.0, show_default=True,
              help="Seconds between head polls when watching over HTTP")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.version_option(package_name="cvtrace")
@click.pass_context
def cli(ctx, rpc, ws, chain_id, poll_interval, verbose):
    """cvt — trace and watch a contract variable through the events that can change it."""
    _setup_logging(verbose)
    ctx.obj = CliContext(rpc=rpc, ws=ws, chain_id=chain_id, poll_interval=poll_interval)


@cli.command("trace")
@click.option("--config", "-f", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True,
              help="Path to the configuration JSON file")
@click.option("--output", "-o", default="", help="Write results here (.json or .parquet) instead of printing")
@click.option("--blocks-file", default="", help="JSON array of block numbers to sample instead of scanning logs")
@click.pass_obj
def trace_cmd(obj: CliContext, config_path, output, blocks_file):
    """Historical trace: scan event logs, read the variable at each block, keep the changes."""
    async def run() -> list[SampleResult]:
        reader = _make_reader(obj)
        try:
            await _check_chain(reader, obj.chain_id)
            config = await load_trace_config(config_path, reader, need_span=not blocks_file)
            logging.getLogger("cvtrace").debug(
                "contract=%s method=%s span=[%s, %s)", config.address, config.method.signature,
                config.from_block, config.to_block,
            )
            tracer = ContractVariableTracer(reader)
            with _progress() as progress:
                on_progress = _progress_callback(progress)
                if blocks_file:
                    return await tracer.trace_from_blocks(config, _read_blocks_file(blocks_file), on_progress)
                return await tracer.trace_from_scratch(config, on_progress)
        finally:
            await reader.aclose()

    console.print("🚀 Starting contract variable trace...")
    t0 = time.time()
    results = _run(run())
    if output:
        path = result_file_for(output).write_results(results)
        console.print(f"Saved results to [bold]{path}[/]")
    else:
        _print_results(results)
    console.print(f"[bold]done[/]: traced {len(results)} data points in {time.time() - t0:.2f}s")


@cli.command("blocks")
@click.option("--config", "-f", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True)
@click.option("--output", "-o", default="", help="Write the block numbers to this JSON file")
@click.pass_obj
def blocks_cmd(obj: CliContext, config_path, output):
    """List the blocks where the variable may have changed (input for `trace --blocks-file`)."""
    async def run() -> list[int]:
        reader = _make_reader(obj)
        try:
            await _check_chain(reader, obj.chain_id)
            config = await load_trace_config(config_path, reader)
            with _progress() as progress:
                return await ContractVariableTracer(reader).collect_block_numbers(
                    config, _progress_callback(progress)
                )
        finally:
            await reader.aclose()

    blocks = _run(run())
    if output:
        with open(output, "w") as f:
            json.dump(blocks, f)
        console.print(f"Saved {len(blocks)} block numbers to [bold]{output}[/]")
    else:
        console.print_json(data=blocks)


@cli.command("watch")
@click.option("--config", "-f", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True)
@click.option("--max-retries", type=int, default=3, show_default=True, help="Read retries per log before giving up")
@click.option("--jsonl-out", default="", help="Append every change to this JSONL file")
@click.pass_obj
def watch_cmd(obj: CliContext, config_path, max_retries, jsonl_out):
    """Live mode: re-read the variable on every matching log and report value changes."""
    sink = JSONLChangeLog(jsonl_out) if jsonl_out else None

    async def on_change(current: SampleResult, previous: Optional[SampleResult]) -> None:
        before = previous.value if previous is not None else "-"
        console.print(f"[bold]#{current.block_number}[/] [yellow]{before}[/] → [green]{current.value}[/]")
        if sink is not None:
            await sink.append(current, previous)

    def on_error(err: Exception) -> None:
        console.print(f"[red]{type(err).__name__}[/]: {err}")

    def on_reconnect() -> None:
        console.print("[cyan]subscription re-established[/]")

    async def run() -> None:
        reader = _make_reader(obj)
        try:
            await _check_chain(reader, obj.chain_id)
            config = await load_trace_config(config_path, reader, need_span=False)
            options = WatchOptions(on_error=on_error, max_retries=max_retries, on_reconnect=on_reconnect)
            watcher = await ContractVariableTracer(reader).watch(config, on_change, options)
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, watcher.stop)
                except NotImplementedError:
                    pass
            console.print("👀 Watching for changes, Ctrl-C to stop")
            await watcher.wait_stopped()
        finally:
            await reader.aclose()

    _run(run())


if __name__ == "__main__":
    cli()
