from __future__ import annotations

import pytest

from tarball_serve.domain import DEFAULT_FILE_EXTENSION, Catalog, ChannelConfig, ChannelSnapshot


def test_channel_config_defaults_to_tar_xz() -> None:
    config = ChannelConfig(latest="v1")

    assert config.file_extension == DEFAULT_FILE_EXTENSION == ".tar.xz"
    assert config.permanent_key == "v1.tar.xz"


def test_channel_config_rejects_extension_without_period() -> None:
    with pytest.raises(ValueError):
        ChannelConfig(latest="v1", file_extension="iso")


def test_channel_without_latest_has_no_permanent_key() -> None:
    assert ChannelConfig().permanent_key is None


def test_advance_keeps_extension_and_records_previous() -> None:
    config = ChannelConfig(latest="v1", file_extension=".iso")

    advanced = config.advance("v2")

    assert advanced.latest == "v2"
    assert advanced.file_extension == ".iso"
    assert advanced.previous == ("v1",)
    assert config.latest == "v1"


def test_catalog_with_channel_is_a_new_value() -> None:
    catalog = Catalog(channels=frozenset({"rel"}))

    extended = catalog.with_channel("beta")

    assert "beta" in extended
    assert "beta" not in catalog


def test_snapshot_matches_file_name_against_channel_extension() -> None:
    snapshot = ChannelSnapshot(
        channels={
            "rel": ChannelConfig(latest="v1"),
            "nixos-24.05": ChannelConfig(latest="n1"),
            "installer": ChannelConfig(latest="i1", file_extension=".iso"),
        }
    )

    assert snapshot.match_file_name("rel.tar.xz")[0] == "rel"
    assert snapshot.match_file_name("nixos-24.05.tar.xz")[0] == "nixos-24.05"
    assert snapshot.match_file_name("installer.iso")[0] == "installer"
    assert snapshot.match_file_name("installer.tar.xz") is None
    assert snapshot.match_file_name("rel.tar.gz") is None
    assert snapshot.match_file_name("unknown.tar.xz") is None
    assert snapshot.match_file_name("rel") is None


def test_snapshot_channels_are_read_only() -> None:
    source = {"rel": ChannelConfig(latest="v1")}
    snapshot = ChannelSnapshot(channels=source)

    source["other"] = ChannelConfig(latest="x")

    assert "other" not in snapshot.channels
    with pytest.raises(TypeError):
        snapshot.channels["rel"] = ChannelConfig(latest="v2")  # type: ignore[index]
