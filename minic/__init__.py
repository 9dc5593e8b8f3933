from __future__ import annotations

from .compiler import BuildResult, assemble, build, compile, compile_file, link, preprocess
from .config import RunOptions
from .driver import run, run_path, run_source, run_sync
from .runtime import CancellationToken
from .vfs import FileSystemNode, NodeKind, NodeMetadata, lookup, resolve

__all__ = [
    "BuildResult",
    "CancellationToken",
    "FileSystemNode",
    "NodeKind",
    "NodeMetadata",
    "RunOptions",
    "assemble",
    "build",
    "compile",
    "compile_file",
    "link",
    "lookup",
    "preprocess",
    "resolve",
    "run",
    "run_path",
    "run_source",
    "run_sync",
]
