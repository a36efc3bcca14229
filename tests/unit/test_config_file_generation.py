import json
from pathlib import Path

from schema_designer import load_config


def test_config_file_created_when_missing(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "server" / "config.json"
    document_path = tmp_path / "docs" / "page.json"

    cfg = load_config(
        argv=[
            "--config-file",
            str(config_path),
            "--document-path",
            str(document_path),
            "--enable-http",
            "false",
            "--shutdown-timeout",
            "2m",
        ],
        environ={},
    )

    assert config_path.exists()
    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["document_path"] == str(document_path.resolve())
    assert data["enable_http"] is False
    # durations are stored as strings
    assert data["shutdown_timeout"] == "120s"
    assert cfg.enable_http is False


def test_config_file_not_overwritten_when_present(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "config.json"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    original_content = json.dumps({"grid_size": 10})
    config_path.write_text(original_content, encoding="utf-8")

    cfg = load_config(argv=["--config-file", str(config_path), "--grid-size", "4"], environ={})

    assert config_path.read_text(encoding="utf-8") == original_content
    assert cfg.grid_size == 4


def test_written_config_round_trips(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"

    first = load_config(argv=["--config-file", str(config_path), "--id-length", "12"], environ={})
    second = load_config(argv=["--config-file", str(config_path)], environ={})

    assert second == first
