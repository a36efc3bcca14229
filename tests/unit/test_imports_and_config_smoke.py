import json
from datetime import timedelta
from pathlib import Path

import pytest

from schema_designer import Config, DesignerOptions, load_config
from schema_designer.config import ConfigError


def test_package_imports() -> None:
    """Importing the package should expose main APIs."""

    assert callable(load_config)
    assert Config is not None


def test_default_configuration() -> None:
    """Defaults should populate expected values when no overrides provided."""

    cfg = load_config(argv=[], environ={})

    assert cfg.document_path is None
    assert cfg.enable_stdio is True
    assert cfg.enable_http is False
    assert cfg.http_host == "127.0.0.1"
    assert cfg.http_port == 8766
    assert cfg.max_depth == 100
    assert cfg.shutdown_timeout == timedelta(seconds=5)
    assert cfg.designer_options() == DesignerOptions()


def test_cli_overrides_take_precedence(tmp_path: Path) -> None:
    """CLI arguments should override defaults and environment values."""

    argv = [
        "--document-path",
        str(tmp_path / "page.json"),
        "--history-limit",
        "5",
        "--paste-target",
        "root",
    ]

    cfg = load_config(argv=argv, environ={"SCHEMA_DESIGNER_HISTORY_LIMIT": "50"})

    assert cfg.document_path == (tmp_path / "page.json").resolve()
    assert cfg.history_limit == 5
    assert cfg.paste_target == "root"


def test_env_overrides() -> None:
    """Environment variables should override defaults."""

    environ = {
        "SCHEMA_DESIGNER_ENABLE_STDIO": "false",
        "SCHEMA_DESIGNER_CHILDREN_KEY": "children",
        "SCHEMA_DESIGNER_SNAP_TO_GRID": "off",
        "SCHEMA_DESIGNER_LOG_LEVEL": "debug",
    }

    cfg = load_config(argv=[], environ=environ)

    assert cfg.enable_stdio is False
    assert cfg.children_key == "children"
    assert cfg.snap_to_grid is False
    assert cfg.log_level == "DEBUG"


def test_json_config_file(tmp_path: Path) -> None:
    """A JSON config file should be merged into the configuration."""

    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps({"grid_size": 8, "enable_http": True, "drop_split": 0.3, "unknown_key": 1}),
        encoding="utf-8",
    )

    cfg = load_config(argv=["--config-file", str(config_file)], environ={"SCHEMA_DESIGNER_GRID_SIZE": "16"})

    assert cfg.grid_size == 16
    assert cfg.enable_http is True
    assert cfg.drop_split == 0.3


@pytest.mark.parametrize(
    "argv",
    [
        ["--max-depth", "not-a-number"],
        ["--max-depth", "500"],
        ["--drop-split", "1.5"],
        ["--paste-target", "cursor"],
        ["--children-key", "kids"],
        ["--enable-metrics", "true"],
        ["--enable-stdio", "maybe"],
        ["--shutdown-timeout", "soon"],
        ["--log-level", "chatty"],
    ],
)
def test_invalid_values_raise(argv: list[str]) -> None:
    """Invalid values should trigger configuration errors."""

    with pytest.raises(ConfigError):
        load_config(argv=argv, environ={})


def test_metrics_path_must_differ_from_http_path() -> None:
    with pytest.raises(ConfigError):
        load_config(
            argv=["--enable-http", "true", "--enable-metrics", "true", "--metrics-path", "/mcp"],
            environ={},
        )
