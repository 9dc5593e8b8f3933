from __future__ import annotations

import pytest

from minic import vfs
from minic.errors import ErrorReason
from minic.vfs import FileSystemNode, NodeKind, NodeMetadata


@pytest.mark.parametrize(
    "cwd, path, expected",
    [
        (["home", "guest"], "/", []),
        (["etc"], "~", ["home", "guest"]),
        (["home", "guest"], "projects", ["home", "guest", "projects"]),
        (["home", "guest"], "./projects/.", ["home", "guest", "projects"]),
        (["home", "guest"], "..", ["home"]),
        ([], "../../..", []),
        (["home", "guest"], "/etc//hosts", ["etc", "hosts"]),
        (["var"], "log/~/projects", ["home", "guest", "projects"]),
        (["home"], "missing/deeper", ["home", "missing", "deeper"]),
    ],
)
def test_resolve(cwd, path, expected):
    assert vfs.resolve(cwd, path) == expected


@pytest.mark.parametrize("path", [".", "..", "~", "./a/../b", "~/../../x/./y", "/..", "a/b/../../.."])
def test_resolve_never_leaves_relative_tokens(path):
    for cwd in ([], ["home", "guest"], ["var", "log"]):
        segments = vfs.resolve(cwd, path)
        assert not {".", "..", "~"} & set(segments)


def test_resolve_does_not_mutate_cwd():
    cwd = ["home", "guest"]
    vfs.resolve(cwd, "..")
    assert cwd == ["home", "guest"]


def test_lookup_dot_is_current_directory(tree, home):
    assert vfs.lookup(tree, vfs.resolve(home, ".")) is vfs.lookup(tree, home)


def test_lookup_stops_at_missing_segment_and_files(tree):
    assert vfs.lookup(tree, []) is tree
    assert vfs.lookup(tree, ["nope"]) is None
    assert vfs.lookup(tree, ["etc", "hosts", "deeper"]) is None
    assert vfs.lookup(tree, ["etc", "hosts"]).content == "127.0.0.1 localhost"


def test_node_kind_invariants():
    directory = FileSystemNode.directory("d")
    assert directory.kind is NodeKind.DIRECTORY and directory.children == {} and directory.content is None
    file_node = FileSystemNode.file("f")
    assert file_node.content == "" and file_node.children is None
    with pytest.raises(ValueError):
        FileSystemNode(name="bad", kind=NodeKind.FILE, children={})
    with pytest.raises(ValueError):
        FileSystemNode(name="bad", kind=NodeKind.DIRECTORY, content="x")


def test_default_tree_keys_match_names(tree):
    def check(node):
        if node.is_dir:
            for key, child in node.children.items():
                assert key == child.name
                check(child)

    assert tree.name == "root" and tree.is_dir
    check(tree)


def test_mkdir_then_rm_restores_tree(tree, home):
    original = tree.clone()
    made = vfs.mkdir(tree, home, "x")
    assert made.ok
    assert vfs.lookup(made.tree, home + ["x"]).is_dir
    removed = vfs.rm(made.tree, home, "x", recursive=True)
    assert removed.ok
    assert removed.tree == original


def test_mutations_do_not_touch_the_input_snapshot(tree, home):
    before = tree.clone()
    result = vfs.mkdir(tree, home, "fresh")
    assert result.tree is not tree
    assert tree == before
    assert vfs.lookup(tree, home + ["fresh"]) is None


def test_mkdir_errors(tree, home):
    exists = vfs.mkdir(tree, home, "projects")
    assert exists.error.reason is ErrorReason.ALREADY_EXISTS
    assert exists.tree is tree
    assert str(exists.error) == "mkdir: cannot create directory 'projects': File exists"

    missing = vfs.mkdir(tree, home, "nowhere/child")
    assert missing.error.reason is ErrorReason.NOT_FOUND
    assert missing.error.format_human() == "mkdir: cannot create directory 'nowhere/child': No such file or directory"

    under_file = vfs.mkdir(tree, home, "readme.txt/child")
    assert under_file.error.reason is ErrorReason.NOT_FOUND


def test_touch_creates_empty_file_and_keeps_existing(tree, home):
    created = vfs.touch(tree, home, "notes.txt")
    assert vfs.cat(created.tree, home, "notes.txt").value == ""
    again = vfs.touch(created.tree, home, "readme.txt")
    assert again.ok
    assert vfs.cat(again.tree, home, "readme.txt").value.startswith("Welcome")
    assert vfs.touch(tree, home, "/nope/file").error.reason is ErrorReason.NOT_FOUND


def test_rm_rules(tree, home):
    directory = vfs.rm(tree, home, "projects")
    assert directory.error.reason is ErrorReason.IS_A_DIRECTORY
    assert str(directory.error) == "rm: cannot remove 'projects': Is a directory"
    assert vfs.rm(tree, home, "ghost").error.reason is ErrorReason.NOT_FOUND
    assert vfs.rm(tree, home, "/", recursive=True).error.reason is ErrorReason.INVALID
    gone = vfs.rm(tree, home, "todo.list")
    assert gone.ok and vfs.lookup(gone.tree, home + ["todo.list"]) is None


def test_cat_errors(tree, home):
    assert str(vfs.cat(tree, home, "projects").error) == "cat: projects: Is a directory"
    assert str(vfs.cat(tree, home, "nope").error) == "cat: nope: No such file or directory"


def test_cp_copies_content_and_isolates(tree, home):
    copied = vfs.cp(tree, home, "todo.list", "todo.bak")
    assert copied.ok
    assert vfs.cat(copied.tree, home, "todo.bak").value == vfs.cat(tree, home, "todo.list").value

    edited = vfs.write_file(copied.tree, home, "todo.list", "changed")
    assert vfs.cat(edited.tree, home, "todo.list").value == "changed"
    assert vfs.cat(edited.tree, home, "todo.bak").value == "- Buy milk\n- Hack the mainframe\n- Sleep"


def test_cp_into_directory_uses_source_name(tree, home):
    copied = vfs.cp(tree, home, "readme.txt", "projects")
    node = vfs.lookup(copied.tree, home + ["projects", "readme.txt"])
    assert node is not None and node.name == "readme.txt"
    assert vfs.lookup(copied.tree, home + ["projects"]).is_dir


def test_cp_keeps_metadata(tree, home):
    artifact = FileSystemNode.file("a.out", "ELF", NodeMetadata(executable=True, is_binary=True, source="int main(){}"))
    installed = vfs.install(tree, home, "a.out", artifact)
    copied = vfs.cp(installed.tree, home, "a.out", "b.out")
    node = vfs.lookup(copied.tree, home + ["b.out"])
    assert node.metadata == NodeMetadata(executable=True, is_binary=True, source="int main(){}")
    assert node.metadata is not vfs.lookup(copied.tree, home + ["a.out"]).metadata


def test_cp_errors(tree, home):
    assert str(vfs.cp(tree, home, "ghost", "x").error) == "cp: cannot stat 'ghost': No such file or directory"
    assert vfs.cp(tree, home, "readme.txt", "/missing/x").error.reason is ErrorReason.NOT_FOUND
    assert vfs.cp(tree, home, "/home", "/home/guest/projects").error.reason is ErrorReason.INVALID
    assert vfs.cp(tree, home, "readme.txt", "readme.txt").error.reason is ErrorReason.INVALID


def test_mv_moves_and_renames(tree, home):
    moved = vfs.mv(tree, home, "secrets.txt", "projects")
    assert moved.ok
    assert vfs.lookup(moved.tree, home + ["secrets.txt"]) is None
    assert vfs.lookup(moved.tree, home + ["projects", "secrets.txt"]).content.startswith("TOP SECRET")

    renamed = vfs.mv(moved.tree, home, "projects", "work")
    work = vfs.lookup(renamed.tree, home + ["work"])
    assert work.name == "work" and "secrets.txt" in work.children
    assert vfs.lookup(tree, home + ["secrets.txt"]) is not None


def test_mv_errors(tree, home):
    assert vfs.mv(tree, home, "ghost", "x").error.reason is ErrorReason.NOT_FOUND
    missing = vfs.mv(tree, home, "readme.txt", "/missing/x")
    assert str(missing.error) == "mv: cannot move 'readme.txt' to '/missing/x': No such file or directory"
    assert vfs.mv(tree, [], "home", "home/guest/projects").error.reason is ErrorReason.INVALID
    assert vfs.mv(tree, home, "readme.txt", "readme.txt").tree is tree


def test_write_file_rejects_directories(tree, home):
    assert vfs.write_file(tree, home, "projects", "x").error.reason is ErrorReason.IS_A_DIRECTORY
    written = vfs.write_file(tree, home, "projects/main.c", "int main() { return 0; }")
    assert vfs.lookup(written.tree, home + ["projects", "main.c"]).name == "main.c"


def test_ls_and_change_dir(tree, home):
    assert vfs.ls(tree, home).value == ["readme.txt", "secrets.txt", "todo.list", "projects/"]
    assert vfs.ls(tree, home, "readme.txt").value == ["readme.txt"]
    assert str(vfs.ls(tree, home, "ghost").error) == "ls: cannot access 'ghost': No such file or directory"
    assert vfs.change_dir(tree, home, "/var/log").value == ["var", "log"]
    assert vfs.change_dir(tree, ["etc"]).value == ["home", "guest"]
    assert vfs.change_dir(tree, home, "readme.txt").error.reason is ErrorReason.NOT_A_DIRECTORY
    assert vfs.format_path([]) == "/"
    assert vfs.format_path(["home", "guest"]) == "/home/guest"


def test_complete(tree, home):
    assert vfs.complete(tree, home, "re") == ["readme.txt"]
    assert vfs.complete(tree, home, "pro") == ["projects/"]
    assert sorted(vfs.complete(tree, home, "")) == ["projects/", "readme.txt", "secrets.txt", "todo.list"]
    assert vfs.complete(tree, home, "/et") == ["/etc/"]
    assert vfs.complete(tree, home, "/etc/ho") == ["/etc/hosts"]
    assert vfs.complete(tree, home, "missing/x") == []


def test_clone_at_rejects_missing_parent(tree):
    with pytest.raises(RuntimeError):
        vfs._clone_at(tree, ["home", "guest", "readme.txt"])
