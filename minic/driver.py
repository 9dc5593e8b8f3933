from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import vfs
from .compiler import build, preprocess
from .config import DEFAULT_OPTIONS, LoggingConfig, RunOptions, configure_logging
from .errors import ErrorReason, ExecutionCancelled, RecursionLimitExceeded, VfsError
from .interp import Interpreter
from .parser import parse_program
from .runtime import CancellationToken, Number, OutputSink, RuntimeContext
from .vfs import FileSystemNode

logger = logging.getLogger(__name__)


async def run(
    artifact: FileSystemNode,
    sink: OutputSink,
    options: RunOptions | None = None,
    cancel: CancellationToken | None = None,
) -> Optional[Number]:
    """
    Execute a linked artifact, writing program output to `sink`.

    Returns main's return value, or None when the program could not run to
    completion (invalid artifact, no main, cancellation, runaway recursion).
    Every failure is reported through the sink; nothing is raised.
    """
    metadata = artifact.metadata
    if metadata is None or not metadata.is_binary or not metadata.source:
        logger.warning("refusing to run %s: not an executable", artifact.name)
        sink("Error: Not a valid executable format\n")
        return None
    ctx = RuntimeContext(sink=sink, options=options or DEFAULT_OPTIONS, cancel=cancel or CancellationToken())
    program = parse_program(preprocess(metadata.source))
    if "main" not in program.functions:
        ctx.emit("Error: no main function found\n")
        return None
    interpreter = Interpreter(program, ctx)
    logger.info("running %s (%d functions)", artifact.name, len(program.functions))
    try:
        status = await interpreter.call("main")
    except ExecutionCancelled:
        logger.info("run of %s cancelled", artifact.name)
        ctx.emit("^C\n")
        return None
    except RecursionLimitExceeded as exc:
        logger.warning("run of %s aborted: %s", artifact.name, exc)
        ctx.emit("Error: maximum recursion depth exceeded\n")
        return None
    logger.info("%s exited with %s", artifact.name, status)
    return status


async def run_source(
    source: str,
    sink: OutputSink,
    options: RunOptions | None = None,
    cancel: CancellationToken | None = None,
) -> Optional[Number]:
    return await run(build(source).artifact, sink, options=options, cancel=cancel)


async def run_path(
    tree: FileSystemNode,
    cwd: Sequence[str],
    path: str,
    sink: OutputSink,
    options: RunOptions | None = None,
    cancel: CancellationToken | None = None,
) -> Optional[Number]:
    """Run the artifact stored at `path` in the filesystem, as `./a.out` would."""
    node = vfs.lookup(tree, vfs.resolve(cwd, path))
    if node is None or node.is_dir:
        reason = ErrorReason.NOT_FOUND if node is None else ErrorReason.IS_A_DIRECTORY
        sink(VfsError(reason=reason, command="sh", operand=path).format_human() + "\n")
        return None
    return await run(node, sink, options=options, cancel=cancel)


def run_sync(artifact: FileSystemNode, sink: OutputSink, options: RunOptions | None = None) -> Optional[Number]:
    return asyncio.run(run(artifact, sink, options=options))


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="minic", description="minic: toy C compiler and interpreter")
    ap.add_argument("--log-level", default="WARNING", help="Logging level for diagnostics on stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    run_p = sub.add_parser("run", help="Compile a C source file and interpret it")
    run_p.add_argument("source", type=Path, help="C source file")
    run_p.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_OPTIONS.max_loop_iterations,
        help="Iterations allowed per loop before it is reported as infinite",
    )
    run_p.add_argument(
        "--max-depth",
        type=int,
        default=DEFAULT_OPTIONS.max_call_depth,
        help="Nested function calls allowed before the run is aborted",
    )
    run_p.add_argument(
        "--yield-delay",
        type=float,
        default=DEFAULT_OPTIONS.yield_delay,
        help="Seconds to pause at every yield point",
    )

    build_p = sub.add_parser("build", help="Run the mock toolchain and print its stages")
    build_p.add_argument("source", type=Path, help="C source file")
    build_p.add_argument("--emit-asm", action="store_true", help="Print the generated assembly text")
    build_p.add_argument("--emit-hex", action="store_true", help="Print the assembled object code")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(LoggingConfig(level=args.log_level))
    try:
        source = args.source.read_text()
    except OSError as exc:
        print(f"minic: {args.source}: {exc.strerror}", file=sys.stderr)
        return 1

    if args.cmd == "build":
        result = build(source)
        if args.emit_asm:
            print(result.assembly)
        if args.emit_hex:
            print(result.object_code)
        if not (args.emit_asm or args.emit_hex):
            print(f"built {result.artifact.name} from {args.source}")
        return 0

    options = RunOptions(
        max_loop_iterations=args.max_iterations,
        max_call_depth=args.max_depth,
        yield_delay=args.yield_delay,
    )
    status = asyncio.run(run_source(source, _write_stdout, options=options))
    if status is None or not math.isfinite(status):
        return 1
    return int(status) & 0xFF


if __name__ == "__main__":
    raise SystemExit(main())
