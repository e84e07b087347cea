from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tarball_serve.interfaces.cli.app import EXIT_ALREADY_EXISTS, create_cli
from tarball_serve.runtime.dependencies import CONFIG_ROOT_VARIABLE

runner = CliRunner()

REPO_CONFIGS = Path(__file__).resolve().parents[3] / "configs"


@pytest.fixture()
def buckets_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    config_root = tmp_path / "project"
    shutil.copytree(REPO_CONFIGS, config_root / "configs")
    buckets = tmp_path / "buckets"
    (config_root / "configs" / "envs" / "test" / "app.yaml").write_text(
        "storage:\n"
        "  backend: filesystem\n"
        f"  root: {buckets}\n"
        "  public_url: http://objects.test\n"
        "\n"
        "metrics:\n"
        "  provider: noop\n",
        encoding="utf-8",
    )
    monkeypatch.setenv(CONFIG_ROOT_VARIABLE, str(config_root))
    monkeypatch.setenv("SERVICE_ENV", "test")
    return buckets


def _archive(tmp_path: Path, name: str, content: bytes = b"archive") -> Path:
    path = tmp_path / "upload" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def test_publish_create_then_list_and_show(buckets_root: Path, tmp_path: Path) -> None:
    app = create_cli()

    first = runner.invoke(app, ["publish", "releases", "rel", str(_archive(tmp_path, "v1.tar.xz")), "--create"])
    second = runner.invoke(app, ["publish", "releases", "rel", str(_archive(tmp_path, "v2.tar.xz"))])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert "Updating channel rel from v1 to v2" in second.output
    assert json.loads((buckets_root / "releases" / "rel.json").read_text()) == {
        "latest": "v2",
        "file_extension": ".tar.xz",
        "previous": ["v1"],
    }

    listed = runner.invoke(app, ["list-channels", "releases"])
    assert listed.exit_code == 0, listed.output
    assert listed.output.split() == ["rel"]

    shown = runner.invoke(app, ["show-channel", "releases", "rel"])
    assert shown.exit_code == 0, shown.output
    assert "latest: v2.tar.xz" in shown.output
    assert "previous: v1.tar.xz" in shown.output


def test_publish_existing_key_exits_with_already_exists(buckets_root: Path, tmp_path: Path) -> None:
    app = create_cli()
    archive = _archive(tmp_path, "v1.tar.xz", b"original")
    runner.invoke(app, ["publish", "releases", "rel", str(archive), "--create"])

    archive.write_bytes(b"replacement")
    result = runner.invoke(app, ["publish", "releases", "rel", str(archive)])

    assert result.exit_code == EXIT_ALREADY_EXISTS
    assert (buckets_root / "releases" / "v1.tar.xz").read_bytes() == b"original"


def test_publish_to_unknown_channel_fails(buckets_root: Path, tmp_path: Path) -> None:
    app = create_cli()
    runner.invoke(app, ["publish", "releases", "rel", str(_archive(tmp_path, "v1.tar.xz")), "--create"])

    result = runner.invoke(app, ["publish", "releases", "beta", str(_archive(tmp_path, "b1.tar.xz"))])

    assert result.exit_code == 1
    assert not (buckets_root / "releases" / "b1.tar.xz").exists()


def test_publish_with_custom_extension(buckets_root: Path, tmp_path: Path) -> None:
    app = create_cli()

    result = runner.invoke(
        app,
        ["publish", "releases", "iso", str(_archive(tmp_path, "i1.iso")), "--create", "--file-extension", ".iso"],
    )

    assert result.exit_code == 0, result.output
    assert json.loads((buckets_root / "releases" / "iso.json").read_text())["file_extension"] == ".iso"


def test_show_unknown_channel_fails(buckets_root: Path, tmp_path: Path) -> None:
    app = create_cli()
    runner.invoke(app, ["publish", "releases", "rel", str(_archive(tmp_path, "v1.tar.xz")), "--create"])

    result = runner.invoke(app, ["show-channel", "releases", "beta"])

    assert result.exit_code == 1


def test_unknown_environment_is_configuration_error(buckets_root: Path) -> None:
    app = create_cli()

    result = runner.invoke(app, ["list-channels", "releases", "--env", "staging"])

    assert result.exit_code == 1
