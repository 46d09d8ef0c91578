import io
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from tree_md import cli
from tree_md.config import ContentsMode


def _project(root: Path) -> Path:
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "src" / "main.rs").write_text("fn main() {\n    println!(\"hi\");\n}\n", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    return root


@pytest.mark.integration
def test_main_writes_output_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _project(tmp_path / "demo")
    output = tmp_path / "out.md"

    exit_code = cli.main([str(repo), "--output", str(output)])

    assert exit_code == 0
    text = output.read_text(encoding="utf-8")
    assert "├── src/" in text
    assert "main.rs" in text
    assert f"Wrote {output} files=2" in capsys.readouterr().out


@pytest.mark.integration
def test_main_prints_to_stdout_by_default(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _project(tmp_path / "demo")

    exit_code = cli.main([str(repo), "-c"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert out.startswith("# demo\n")
    assert "```rust\nfn main() {" in out


@pytest.mark.integration
def test_main_applies_budget_with_requested_strategy(tmp_path: Path, mocker: MockerFixture) -> None:
    repo = _project(tmp_path / "demo")
    spy = mocker.spy(cli, "apply_budget")

    exit_code = cli.main([str(repo), "-c", "--max-chars", "30", "--contents-mode", "nest", "-o", str(tmp_path / "o")])

    assert exit_code == 0
    spy.assert_called_once()
    assert spy.call_args.args[1] == 30
    assert spy.call_args.args[2] is ContentsMode.NEST


@pytest.mark.integration
def test_max_chars_requires_contents(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path), "--max-chars", "100"])

    assert exc_info.value.code == 2
    assert "--max-chars requires -c/--contents" in capsys.readouterr().err


@pytest.mark.integration
def test_max_chars_excludes_per_file_limits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path), "-c", "--max-chars", "100", "--max-lines", "5"])

    assert exc_info.value.code == 2


@pytest.mark.integration
def test_invalid_pattern_exits_with_usage_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main([str(tmp_path), "-I", "src/[oops"])

    assert exit_code == 2
    assert "error: invalid pattern 'src/[oops':" in capsys.readouterr().err


@pytest.mark.integration
def test_bad_config_file_is_a_usage_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = tmp_path / "tree-md.yaml"
    config.write_text("- not a mapping\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path), "--config", str(config)])

    assert exc_info.value.code == 2
    assert "cannot load config file" in capsys.readouterr().err


@pytest.mark.integration
def test_config_file_is_overridden_by_flags(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _project(tmp_path / "demo")
    config = tmp_path / "tree-md.yaml"
    config.write_text("include_glob: ['*.md']\n", encoding="utf-8")

    cli.main([str(repo), "--config", str(config)])
    from_config = capsys.readouterr().out
    cli.main([str(repo), "--config", str(config), "-I", "*.rs"])
    from_flags = capsys.readouterr().out

    assert "README.md" in from_config
    assert "main.rs" not in from_config
    assert "main.rs" in from_flags
    assert "README.md" not in from_flags


@pytest.mark.integration
def test_log_file_reconfigures_logging(tmp_path: Path, mocker: MockerFixture) -> None:
    repo = _project(tmp_path / "demo")
    setup = mocker.patch.object(cli, "setup_logging")

    cli.main([str(repo), "--log-file", str(tmp_path / "run.log"), "-o", str(tmp_path / "o.md")])

    setup.assert_called_once_with(str(tmp_path / "run.log"))


@pytest.mark.integration
def test_missing_root_is_an_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main([str(tmp_path / "nope")])

    assert exit_code == 1
    assert "not a directory" in capsys.readouterr().err


@pytest.mark.integration
@pytest.mark.parametrize(
    ("stdin", "args", "code", "message"),
    [
        ("src\n", [], 3, "--expand-dirs was not given"),
        ("missing.rs\n", [], 4, "no valid files"),
        ("README.md\n", ["--restrict-root", "src"], 2, "not within restrict-root"),
    ],
)
def test_stdin_path_list_errors(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    stdin: str,
    args: list[str],
    code: int,
    message: str,
) -> None:
    repo = _project(tmp_path / "demo")
    monkeypatch.chdir(repo)
    monkeypatch.setattr("sys.stdin", io.StringIO(stdin))

    exit_code = cli.main([str(repo), "--stdin", *args])

    assert exit_code == code
    assert message in capsys.readouterr().err


@pytest.mark.integration
@pytest.mark.parametrize(
    "args",
    [["--expand-dirs"], ["--null"], ["--stdin", "-L", "2"]],
)
def test_path_input_flag_combinations_are_usage_errors(tmp_path: Path, args: list[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([str(tmp_path), *args])

    assert exc_info.value.code == 2


@pytest.mark.integration
def test_level_is_passed_to_the_walker(tmp_path: Path, mocker: MockerFixture) -> None:
    repo = _project(tmp_path / "demo")
    spy = mocker.spy(cli, "walk_tree")

    cli.main([str(repo), "-L", "1", "-o", str(tmp_path / "o.md")])

    assert spy.call_args.kwargs["max_depth"] == 1
