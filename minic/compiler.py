"""
The mock C toolchain: preprocess -> compile -> assemble -> link.

Only preprocessing and linking matter to execution; the assembly text and
hex object stream exist so the terminal has something to show.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from . import vfs
from .errors import VfsError
from .vfs import FileSystemNode, NodeMetadata, VfsResult

logger = logging.getLogger(__name__)

_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

EXECUTABLE_CONTENT = "ELF... (binary data)"


def preprocess(source: str) -> str:
    source = _LINE_COMMENT.sub("", source)
    return _BLOCK_COMMENT.sub("", source).strip()


def compile(source: str) -> str:  # noqa: A001 - mirrors the toolchain stage name
    commentary = "\n".join(f"    # {line}" for line in source.split("\n"))
    return (
        "\n"
        '    .file   "main.c"\n'
        "    .text\n"
        "    .globl  main\n"
        "    .type   main, @function\n"
        "main:\n"
        "    pushq   %rbp\n"
        "    movq    %rsp, %rbp\n"
        "    # Mock assembly for:\n"
        f"{commentary}\n"
        "    popq    %rbp\n"
        "    ret\n"
    )


def assemble(asm: str) -> str:
    return " ".join(format(ord(ch), "x") for ch in asm)


def link(source: str, name: str = "a.out") -> FileSystemNode:
    return FileSystemNode.file(
        name,
        EXECUTABLE_CONTENT,
        metadata=NodeMetadata(executable=True, is_binary=True, source=source),
    )


@dataclass(frozen=True)
class BuildResult:
    preprocessed: str
    assembly: str
    object_code: str
    artifact: FileSystemNode


def build(source: str, output_name: str = "a.out") -> BuildResult:
    preprocessed = preprocess(source)
    assembly = compile(preprocessed)
    object_code = assemble(assembly)
    artifact = link(preprocessed, output_name)
    logger.debug(
        "built %s: %d source chars, %d asm lines", output_name, len(preprocessed), assembly.count("\n")
    )
    return BuildResult(preprocessed=preprocessed, assembly=assembly, object_code=object_code, artifact=artifact)


def compile_file(tree: FileSystemNode, cwd: Sequence[str], source_path: str, output_path: str = "a.out") -> VfsResult:
    """Read `source_path` from the tree, build it and install the artifact at `output_path`."""
    read = vfs.cat(tree, cwd, source_path)
    if read.error is not None:
        error = VfsError(reason=read.error.reason, command="gcc", operand=source_path)
        return VfsResult(tree=tree, error=error)
    result = build(read.value or "")
    return vfs.install(tree, cwd, output_path, result.artifact, command="gcc")
