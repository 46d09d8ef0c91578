from pathlib import Path

import pytest
from pydantic import ValidationError

from tree_md.config import ContentsMode, IgnoreMode
from tree_md.exceptions import ConfigFileError
from tree_md.settings import Settings, load_config_file, load_env_settings


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.root == Path.cwd()
    assert settings.use_gitignore is IgnoreMode.AUTO
    assert settings.contents_mode is ContentsMode.HEAD
    assert settings.max_chars is None
    assert not settings.unsafe


@pytest.mark.unit
def test_match_spec_maps_flags() -> None:
    settings = Settings(
        include_glob=["*.rs"],
        exclude_glob=["tests/**"],
        include_ext=["go,py"],
        use_gitignore="never",
        unsafe=True,
        ignore_case=True,
    )

    spec = settings.match_spec()

    assert spec.include_glob == ("*.rs",)
    assert spec.exclude_glob == ("tests/**",)
    assert spec.include_ext == (".go", ".py")
    assert spec.ignore_mode is IgnoreMode.NEVER
    assert not spec.use_safety
    assert not spec.case_sensitive


@pytest.mark.unit
def test_settings_rejects_negative_budget() -> None:
    with pytest.raises(ValidationError):
        Settings(max_chars=-1)


@pytest.mark.unit
def test_env_settings_from_dotenv_and_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("TREE_MD_MAX_CHARS=500\nTREE_MD_UNSAFE=true\nOTHER=1\n", encoding="utf-8")
    monkeypatch.setenv("TREE_MD_MAX_CHARS", "900")
    monkeypatch.setenv("TREE_MD_NOT_A_FIELD", "x")

    values = load_env_settings(env_file)

    assert values == {"max_chars": "900", "unsafe": "true"}


@pytest.mark.unit
def test_config_file_values(tmp_path: Path) -> None:
    config = tmp_path / "tree-md.yaml"
    config.write_text("include-glob:\n  - '*.rs'\nmax_lines: 40\n", encoding="utf-8")

    assert load_config_file(config) == {"include_glob": ["*.rs"], "max_lines": 40}


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "reason"),
    [("- a\n- b\n", "mapping"), ("colour: blue\n", "unknown keys: colour"), ("a: [1\n", "invalid YAML")],
)
def test_config_file_errors(tmp_path: Path, text: str, reason: str) -> None:
    config = tmp_path / "bad.yaml"
    config.write_text(text, encoding="utf-8")

    with pytest.raises(ConfigFileError, match=reason):
        load_config_file(config)


@pytest.mark.unit
def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError):
        load_config_file(tmp_path / "missing.yaml")


@pytest.mark.unit
def test_load_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "tree-md.yaml"
    config.write_text("max_chars: 2000\ncontents_mode: nest\n", encoding="utf-8")
    monkeypatch.setenv("TREE_MD_MAX_CHARS", "100")
    monkeypatch.setenv("TREE_MD_CONTENTS", "1")
    monkeypatch.setenv("TREE_MD_MAX_LINES", "7")

    settings = Settings.load({"config": config, "contents_mode": "head"}, env_file=None)

    assert settings.max_chars == 2000
    assert settings.contents
    assert settings.max_lines == 7
    assert settings.contents_mode is ContentsMode.HEAD


@pytest.mark.unit
def test_load_config_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "tree-md.yaml"
    config.write_text("unsafe: true\n", encoding="utf-8")
    monkeypatch.setenv("TREE_MD_CONFIG", str(config))

    settings = Settings.load({}, env_file=None)

    assert settings.unsafe


@pytest.mark.unit
def test_include_ext_keeps_user_case() -> None:
    settings = Settings(include_ext=["RS, .Go"])

    assert settings.match_spec().include_ext == (".RS", ".Go")
