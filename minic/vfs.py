"""
In-memory virtual filesystem.

The tree is owned top-down (no parent links). Every mutating operation
deep-copies the tree, edits the copy and hands it back, so a caller holding
an older snapshot never observes the change. Errors are returned as
`VfsError` values inside the result objects; nothing here raises for a
user-level mistake.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from .errors import ErrorReason, VfsError

logger = logging.getLogger(__name__)

HOME: Tuple[str, ...] = ("home", "guest")

T = TypeVar("T")


class NodeKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class NodeMetadata:
    executable: bool = False
    is_binary: bool = False
    source: Optional[str] = None


@dataclass
class FileSystemNode:
    name: str
    kind: NodeKind
    content: Optional[str] = None
    children: Optional[Dict[str, "FileSystemNode"]] = None
    metadata: Optional[NodeMetadata] = None

    def __post_init__(self) -> None:
        if self.kind is NodeKind.DIRECTORY:
            if self.content is not None:
                raise ValueError(f"directory '{self.name}' cannot carry content")
            if self.children is None:
                self.children = {}
        else:
            if self.children is not None:
                raise ValueError(f"file '{self.name}' cannot have children")
            if self.content is None:
                self.content = ""

    @classmethod
    def directory(cls, name: str, children: Sequence["FileSystemNode"] = ()) -> "FileSystemNode":
        return cls(name=name, kind=NodeKind.DIRECTORY, children={child.name: child for child in children})

    @classmethod
    def file(cls, name: str, content: str = "", metadata: NodeMetadata | None = None) -> "FileSystemNode":
        return cls(name=name, kind=NodeKind.FILE, content=content, metadata=metadata)

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    def clone(self) -> "FileSystemNode":
        return copy.deepcopy(self)


@dataclass(frozen=True)
class VfsResult:
    """Outcome of a mutation: the new snapshot, or the unchanged one plus an error."""

    tree: FileSystemNode
    error: Optional[VfsError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[VfsError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def default_tree() -> FileSystemNode:
    return FileSystemNode.directory(
        "root",
        [
            FileSystemNode.directory(
                "home",
                [
                    FileSystemNode.directory(
                        "guest",
                        [
                            FileSystemNode.file(
                                "readme.txt",
                                "Welcome to the terminal.\nThis is a simulated environment.\n\n"
                                "Try commands like:\n- ls\n- cd\n- mkdir\n- touch\n- nano",
                            ),
                            FileSystemNode.file(
                                "secrets.txt", "TOP SECRET\n----------------\nThe password is: password123"
                            ),
                            FileSystemNode.file("todo.list", "- Buy milk\n- Hack the mainframe\n- Sleep"),
                            FileSystemNode.directory("projects"),
                        ],
                    )
                ],
            ),
            FileSystemNode.directory(
                "bin",
                [
                    FileSystemNode.file("echo", "Binary file"),
                    FileSystemNode.file("ls", "Binary file"),
                    FileSystemNode.file("cat", "Binary file"),
                ],
            ),
            FileSystemNode.directory(
                "etc",
                [
                    FileSystemNode.file("hosts", "127.0.0.1 localhost"),
                    FileSystemNode.file(
                        "passwd",
                        "root:x:0:0:root:/root:/bin/bash\nguest:x:1000:1000:guest:/home/guest:/bin/bash",
                    ),
                ],
            ),
            FileSystemNode.directory(
                "var",
                [FileSystemNode.directory("log", [FileSystemNode.file("syslog", "System booted successfully.")])],
            ),
        ],
    )


def lookup(tree: FileSystemNode, segments: Sequence[str]) -> Optional[FileSystemNode]:
    node = tree
    for segment in segments:
        if not node.is_dir:
            return None
        child = node.children.get(segment)
        if child is None:
            return None
        node = child
    return node


def resolve(cwd: Sequence[str], path: str) -> List[str]:
    """Fold `path` against `cwd` into canonical segments; existence is not checked."""
    if path == "/":
        return []
    if path == "~":
        return list(HOME)
    segments = [] if path.startswith("/") else list(cwd)
    for part in path.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if segments:
                segments.pop()
        elif part == "~":
            segments = list(HOME)
        else:
            segments.append(part)
    return segments


def format_path(segments: Sequence[str]) -> str:
    return "/" + "/".join(segments)


def _clone_at(tree: FileSystemNode, parent_segments: Sequence[str]) -> Tuple[FileSystemNode, FileSystemNode]:
    clone = tree.clone()
    parent = lookup(clone, parent_segments)
    if parent is None or not parent.is_dir:
        # callers validate the parent against the original tree first
        raise RuntimeError(f"no directory at {format_path(parent_segments)} in cloned tree")
    return clone, parent


def _parent_dir(tree: FileSystemNode, segments: Sequence[str]) -> Optional[FileSystemNode]:
    parent = lookup(tree, segments[:-1])
    if parent is None or not parent.is_dir:
        return None
    return parent


def _fail(tree: FileSystemNode, reason: ErrorReason, command: str, operand: str, action: str | None = None, detail: str | None = None) -> VfsResult:
    error = VfsError(reason=reason, command=command, operand=operand, action=action, detail=detail)
    logger.debug("vfs %s failed: %s", command, error)
    return VfsResult(tree=tree, error=error)


def mkdir(tree: FileSystemNode, cwd: Sequence[str], path: str) -> VfsResult:
    action = "cannot create directory"
    segments = resolve(cwd, path)
    if not segments:
        return _fail(tree, ErrorReason.ALREADY_EXISTS, "mkdir", path, action)
    parent = _parent_dir(tree, segments)
    if parent is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "mkdir", path, action)
    name = segments[-1]
    if name in parent.children:
        return _fail(tree, ErrorReason.ALREADY_EXISTS, "mkdir", path, action)
    clone, new_parent = _clone_at(tree, segments[:-1])
    new_parent.children[name] = FileSystemNode.directory(name)
    return VfsResult(tree=clone)


def touch(tree: FileSystemNode, cwd: Sequence[str], path: str) -> VfsResult:
    """Create an empty file; an existing node is left untouched."""
    segments = resolve(cwd, path)
    if lookup(tree, segments) is not None:
        return VfsResult(tree=tree)
    parent = _parent_dir(tree, segments)
    if parent is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "touch", path, "cannot touch")
    name = segments[-1]
    clone, new_parent = _clone_at(tree, segments[:-1])
    new_parent.children[name] = FileSystemNode.file(name)
    return VfsResult(tree=clone)


def rm(tree: FileSystemNode, cwd: Sequence[str], path: str, recursive: bool = False) -> VfsResult:
    action = "cannot remove"
    segments = resolve(cwd, path)
    if not segments:
        return _fail(tree, ErrorReason.INVALID, "rm", path, action, detail="refusing to remove the root directory")
    node = lookup(tree, segments)
    if node is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "rm", path, action)
    if node.is_dir and not recursive:
        return _fail(tree, ErrorReason.IS_A_DIRECTORY, "rm", path, action)
    clone, parent = _clone_at(tree, segments[:-1])
    del parent.children[segments[-1]]
    return VfsResult(tree=clone)


def install(tree: FileSystemNode, cwd: Sequence[str], path: str, node: FileSystemNode, command: str = "install") -> VfsResult:
    """Place a copy of `node` at `path`, replacing an existing file of that name."""
    action = "cannot write"
    segments = resolve(cwd, path)
    if not segments:
        return _fail(tree, ErrorReason.IS_A_DIRECTORY, command, path, action)
    parent = _parent_dir(tree, segments)
    if parent is None:
        return _fail(tree, ErrorReason.NOT_FOUND, command, path, action)
    name = segments[-1]
    existing = parent.children.get(name)
    if existing is not None and existing.is_dir:
        return _fail(tree, ErrorReason.IS_A_DIRECTORY, command, path, action)
    clone, new_parent = _clone_at(tree, segments[:-1])
    installed = node.clone()
    installed.name = name
    new_parent.children[name] = installed
    return VfsResult(tree=clone)


def write_file(tree: FileSystemNode, cwd: Sequence[str], path: str, content: str) -> VfsResult:
    # install() renames the node to the target's base name
    return install(tree, cwd, path, FileSystemNode.file(path, content), command="write")


def _copy_target(tree: FileSystemNode, src: Sequence[str], dst: List[str]) -> List[str]:
    target = lookup(tree, dst)
    if target is not None and target.is_dir and src:
        return dst + [src[-1]]
    return dst


def _is_within(segments: Sequence[str], ancestor: Sequence[str]) -> bool:
    return list(segments[: len(ancestor)]) == list(ancestor)


def cp(tree: FileSystemNode, cwd: Sequence[str], src: str, dst: str) -> VfsResult:
    src_segments = resolve(cwd, src)
    node = lookup(tree, src_segments)
    if node is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "cp", src, "cannot stat")
    dst_segments = _copy_target(tree, src_segments, resolve(cwd, dst))
    if dst_segments == src_segments:
        return _fail(tree, ErrorReason.INVALID, "cp", src, "cannot copy", detail="source and destination are the same")
    if not src_segments or _is_within(dst_segments, src_segments):
        return _fail(
            tree, ErrorReason.INVALID, "cp", src, "cannot copy", detail="cannot copy a directory into itself"
        )
    parent = _parent_dir(tree, dst_segments) if dst_segments else None
    if parent is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "cp", dst, "cannot create regular file")
    name = dst_segments[-1]
    existing = parent.children.get(name)
    if existing is not None and existing.is_dir:
        return _fail(tree, ErrorReason.IS_A_DIRECTORY, "cp", dst, "cannot overwrite directory")
    clone, new_parent = _clone_at(tree, dst_segments[:-1])
    duplicate = node.clone()
    duplicate.name = name
    new_parent.children[name] = duplicate
    return VfsResult(tree=clone)


def mv(tree: FileSystemNode, cwd: Sequence[str], src: str, dst: str) -> VfsResult:
    src_segments = resolve(cwd, src)
    if lookup(tree, src_segments) is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "mv", src, "cannot stat")
    dst_segments = _copy_target(tree, src_segments, resolve(cwd, dst))
    if dst_segments == src_segments:
        return VfsResult(tree=tree)
    if not src_segments or _is_within(dst_segments, src_segments):
        return _fail(
            tree,
            ErrorReason.INVALID,
            "mv",
            src,
            "cannot move",
            detail="cannot move a directory into a subdirectory of itself",
        )
    parent = _parent_dir(tree, dst_segments) if dst_segments else None
    if parent is None:
        return _fail(tree, ErrorReason.NOT_FOUND, "mv", dst, f"cannot move '{src}' to")
    name = dst_segments[-1]
    existing = parent.children.get(name)
    if existing is not None and existing.is_dir:
        return _fail(tree, ErrorReason.IS_A_DIRECTORY, "mv", dst, "cannot overwrite directory")
    clone = tree.clone()
    src_parent = lookup(clone, src_segments[:-1])
    moved = src_parent.children.pop(src_segments[-1])
    moved.name = name
    lookup(clone, dst_segments[:-1]).children[name] = moved
    return VfsResult(tree=clone)


def cat(tree: FileSystemNode, cwd: Sequence[str], path: str) -> ReadResult[str]:
    node = lookup(tree, resolve(cwd, path))
    if node is None:
        return ReadResult(error=VfsError(ErrorReason.NOT_FOUND, "cat", path))
    if node.is_dir:
        return ReadResult(error=VfsError(ErrorReason.IS_A_DIRECTORY, "cat", path))
    return ReadResult(value=node.content or "")


def ls(tree: FileSystemNode, cwd: Sequence[str], path: str | None = None) -> ReadResult[List[str]]:
    segments = resolve(cwd, path) if path else list(cwd)
    node = lookup(tree, segments)
    if node is None:
        return ReadResult(error=VfsError(ErrorReason.NOT_FOUND, "ls", path or ".", "cannot access"))
    if not node.is_dir:
        return ReadResult(value=[node.name])
    return ReadResult(value=[name + "/" if child.is_dir else name for name, child in node.children.items()])


def change_dir(tree: FileSystemNode, cwd: Sequence[str], path: str | None = None) -> ReadResult[List[str]]:
    segments = resolve(cwd, path) if path else list(HOME)
    node = lookup(tree, segments)
    if node is None:
        return ReadResult(error=VfsError(ErrorReason.NOT_FOUND, "cd", path or "~"))
    if not node.is_dir:
        return ReadResult(error=VfsError(ErrorReason.NOT_A_DIRECTORY, "cd", path or "~"))
    return ReadResult(value=segments)


def complete(tree: FileSystemNode, cwd: Sequence[str], word: str) -> List[str]:
    """Tab-completion candidates for `word`; directories end with '/'."""
    if "/" in word:
        directory, _, stem = word.rpartition("/")
        search = resolve(cwd, directory or "/")
        lead = directory + "/"
    else:
        search, lead, stem = list(cwd), "", word
    node = lookup(tree, search)
    if node is None or not node.is_dir:
        return []
    return [
        lead + name + ("/" if child.is_dir else "")
        for name, child in node.children.items()
        if name.startswith(stem)
    ]
