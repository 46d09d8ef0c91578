from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from tree_md import file_manipulation
from tree_md.config import ContentsMode, IgnoreMode, Language, MatchSpec, TruncateType
from tree_md.exceptions import BinaryFileError, ContentReadError
from tree_md.file_manipulation import (
    apply_budget,
    build_tree_from_paths,
    build_tree_lines,
    load_contents,
    probe_file,
    read_text,
    read_text_prefix,
    walk_tree,
)
from tree_md.selection import RepoBoundaryGuard, SelectionEngine


def _write(path: Path, text: str = "x\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _walk(root: Path, **kwargs: object) -> file_manipulation.TreeNode:
    engine = SelectionEngine.compile(MatchSpec(ignore_mode=IgnoreMode.NEVER, **kwargs), root)
    return walk_tree(root, engine, guard=RepoBoundaryGuard(root))


@pytest.mark.unit
def test_walk_tree_orders_directories_first(tmp_path: Path) -> None:
    _write(tmp_path / "b.txt")
    _write(tmp_path / "a.txt")
    _write(tmp_path / "src" / "main.rs")
    _write(tmp_path / "docs" / "index.md")

    tree = _walk(tmp_path)

    assert [child.name for child in tree.children] == ["docs", "src", "a.txt", "b.txt"]
    assert [node.rel for node in tree.iter_files()] == ["docs/index.md", "src/main.rs", "a.txt", "b.txt"]


@pytest.mark.unit
def test_walk_tree_drops_directories_left_empty(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "main.rs")
    _write(tmp_path / "docs" / "guide.md")
    (tmp_path / "empty").mkdir()

    tree = _walk(tmp_path, include_glob=["*.rs"])

    assert [child.name for child in tree.children] == ["src"]
    assert tree.find("docs") is None
    assert tree.find("src/main.rs") is not None


@pytest.mark.unit
def test_walk_tree_skips_hidden_entries_unless_asked(tmp_path: Path) -> None:
    _write(tmp_path / ".github" / "ci.yml")
    _write(tmp_path / ".editorconfig")
    _write(tmp_path / "main.rs")
    engine = SelectionEngine.compile(MatchSpec(ignore_mode=IgnoreMode.NEVER), tmp_path)

    hidden = walk_tree(tmp_path, engine)
    shown = walk_tree(tmp_path, engine, show_hidden=True)

    assert [n.rel for n in hidden.iter_files()] == ["main.rs"]
    assert [n.rel for n in shown.iter_files()] == [".github/ci.yml", ".editorconfig", "main.rs"]


@pytest.mark.unit
def test_walk_tree_prunes_nested_repositories(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    _write(tmp_path / "src" / "lib.rs")
    nested = tmp_path / "third_party" / "dep"
    (nested / ".git").mkdir(parents=True)
    _write(nested / "secret_sauce.rs")

    tree = _walk(tmp_path)

    assert [n.rel for n in tree.iter_files()] == ["src/lib.rs"]


@pytest.mark.unit
def test_walk_tree_prunes_excluded_directories_without_listing_them(
    tmp_path: Path,
    mocker: MockerFixture,
) -> None:
    _write(tmp_path / "src" / "main.rs")
    _write(tmp_path / "tests" / "it.rs")
    scandir = mocker.spy(file_manipulation.os, "scandir")

    tree = _walk(tmp_path, exclude_glob=["tests"])

    scanned = [Path(call.args[0]).name for call in scandir.call_args_list]
    assert "tests" not in scanned
    assert [n.rel for n in tree.iter_files()] == ["src/main.rs"]


@pytest.mark.unit
def test_walk_tree_does_not_follow_directory_symlinks(tmp_path: Path) -> None:
    _write(tmp_path / "real" / "a.rs")
    (tmp_path / "link").symlink_to(tmp_path / "real", target_is_directory=True)

    tree = _walk(tmp_path)

    assert [n.rel for n in tree.iter_files()] == ["real/a.rs"]


@pytest.mark.unit
def test_build_tree_lines(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "main.rs")
    _write(tmp_path / "src" / "lib.rs")
    _write(tmp_path / "Cargo.toml")

    lines = build_tree_lines(_walk(tmp_path))

    assert lines == [
        f"{tmp_path.resolve().name}/",
        "├── src/",
        "│   ├── lib.rs",
        "│   └── main.rs",
        "└── Cargo.toml",
    ]


@pytest.mark.unit
def test_probe_file_detects_binary(tmp_path: Path) -> None:
    binary = tmp_path / "blob.bin"
    binary.write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR")
    text = _write(tmp_path / "notes.txt", "héllo\n")

    assert probe_file(binary).is_binary
    assert not probe_file(text).is_binary
    assert probe_file(text).is_utf8


@pytest.mark.unit
def test_probe_file_counts_control_characters(tmp_path: Path) -> None:
    noisy = tmp_path / "noisy.dat"
    noisy.write_bytes(b"ab" + b"\x01" * 5 + b"cdefghij\tk\n")

    assert probe_file(noisy).is_binary


@pytest.mark.unit
def test_read_text_errors(tmp_path: Path) -> None:
    binary = tmp_path / "blob.bin"
    binary.write_bytes(b"abc\x00def")
    latin = tmp_path / "latin.txt"
    latin.write_bytes("caf\xe9\n".encode("latin-1"))

    with pytest.raises(BinaryFileError) as exc_info:
        read_text(binary)
    assert exc_info.value.size == 7

    with pytest.raises(ContentReadError, match="not valid UTF-8"):
        read_text(latin)

    with pytest.raises(ContentReadError):
        read_text(tmp_path / "missing.txt")


@pytest.mark.unit
def test_read_text_prefix_by_lines(tmp_path: Path) -> None:
    path = _write(tmp_path / "a.txt", "1\n2\n3\n4\n5\n")

    text, info = read_text_prefix(path, max_lines=2)

    assert text == "1\n2\n"
    assert info.truncate_type is TruncateType.LINES
    assert (info.shown_lines, info.total_lines, info.omitted_lines) == (2, 5, 3)


@pytest.mark.unit
def test_read_text_prefix_by_bytes_respects_characters(tmp_path: Path) -> None:
    path = _write(tmp_path / "a.txt", "ééé\n")

    text, info = read_text_prefix(path, max_bytes=3)

    assert text == "é"
    assert info.truncate_type is TruncateType.BYTES
    assert info.shown_bytes == 2
    assert info.total_bytes == 7


@pytest.mark.unit
def test_read_text_prefix_both_limits(tmp_path: Path) -> None:
    path = _write(tmp_path / "a.txt", "one\ntwo\nthree\n")

    text, info = read_text_prefix(path, max_bytes=6, max_lines=2)

    assert text == "one\ntw"
    assert info.truncate_type is TruncateType.BOTH


@pytest.mark.unit
def test_read_text_prefix_untouched_when_within_limits(tmp_path: Path) -> None:
    path = _write(tmp_path / "a.txt", "short\n")

    text, info = read_text_prefix(path, max_bytes=100, max_lines=10)

    assert text == "short\n"
    assert not info.truncated


@pytest.mark.unit
def test_load_contents_records_failures(tmp_path: Path) -> None:
    _write(tmp_path / "main.rs", "fn main() {}\n")
    (tmp_path / "logo.bin").write_bytes(b"\x00" * 2048)
    (tmp_path / "latin.txt").write_bytes(b"caf\xe9\n")

    contents = load_contents(_walk(tmp_path))
    by_rel = {c.rel: c for c in contents}

    assert by_rel["main.rs"].text == "fn main() {}\n"
    assert by_rel["main.rs"].language is Language.RUST
    assert by_rel["logo.bin"].binary_size == 2048
    assert by_rel["logo.bin"].text is None
    assert by_rel["latin.txt"].error == "File is not valid UTF-8 text"
    assert not by_rel["latin.txt"].readable


@pytest.mark.unit
def test_apply_budget_uses_one_line_count_for_all_files(tmp_path: Path) -> None:
    _write(tmp_path / "a.txt", "aaaa\nbbbb\ncccc")
    _write(tmp_path / "b.txt", "dddd\neeee\nffff")
    (tmp_path / "c.bin").write_bytes(b"\x00\x01")

    contents, decision = apply_budget(load_contents(_walk(tmp_path)), 20)

    assert decision.strategy is ContentsMode.HEAD
    assert decision.value == 2
    texts = {c.rel: c.text for c in contents}
    assert texts == {"a.txt": "aaaa\nbbbb", "b.txt": "dddd\neeee", "c.bin": None}
    assert all(c.budgeted for c in contents if c.text is not None)
    assert sum(len(c.text) for c in contents if c.text is not None) <= 20



@pytest.mark.unit
def test_walk_tree_stops_at_max_depth(tmp_path: Path) -> None:
    _write(tmp_path / "root.txt")
    _write(tmp_path / "L1" / "file1.txt")
    _write(tmp_path / "L1" / "L2" / "file2.txt")
    _write(tmp_path / "L1" / "L2" / "L3" / "file3.txt")
    engine = SelectionEngine.compile(MatchSpec(ignore_mode=IgnoreMode.NEVER), tmp_path)

    one = walk_tree(tmp_path, engine, max_depth=1)
    two = walk_tree(tmp_path, engine, max_depth=2)

    assert build_tree_lines(one)[1:] == ["├── L1/", "└── root.txt"]
    assert [n.rel for n in two.iter_files()] == ["L1/file1.txt", "root.txt"]
    assert two.find("L1/L2") is not None
    assert two.find("L1/L2").children == []


@pytest.mark.unit
def test_build_tree_from_paths(tmp_path: Path) -> None:
    paths = [
        _write(tmp_path / "src" / "main.rs"),
        _write(tmp_path / "README.md"),
        _write(tmp_path / "src" / "lib" / "mod.rs"),
    ]

    tree = build_tree_from_paths(tmp_path, [p.resolve() for p in paths])

    assert build_tree_lines(tree)[1:] == [
        "├── src/",
        "│   ├── lib/",
        "│   │   └── mod.rs",
        "│   └── main.rs",
        "└── README.md",
    ]


@pytest.mark.unit
def test_build_tree_from_paths_skips_outside_paths(tmp_path: Path) -> None:
    inside = _write(tmp_path / "root" / "a.rs").resolve()
    outside = _write(tmp_path / "other" / "b.rs").resolve()

    tree = build_tree_from_paths(tmp_path / "root", [inside, outside])

    assert [n.rel for n in tree.iter_files()] == ["a.rs"]


@pytest.mark.unit
def test_read_text_stops_after_probe_for_non_utf8(tmp_path: Path, mocker: MockerFixture) -> None:
    latin = tmp_path / "latin.txt"
    latin.write_bytes(b"caf\xe9 au lait\n")
    read_bytes = mocker.spy(Path, "read_bytes")

    with pytest.raises(ContentReadError, match="not valid UTF-8"):
        read_text(latin)

    read_bytes.assert_not_called()


@pytest.mark.unit
def test_read_text_prefix_counts_only_newlines(tmp_path: Path) -> None:
    path = tmp_path / "a.txt"
    path.write_bytes(b"one\rstill one\x0c\ntwo\nthree\n")

    text, info = read_text_prefix(path, max_lines=1)

    assert text == "one\rstill one\x0c\n"
    assert (info.shown_lines, info.total_lines, info.omitted_lines) == (1, 3, 2)
