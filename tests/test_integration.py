"""Tests for the .desktop file store, the writer and the desktop database refresh."""

import os
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from appimagesetup import integration
from appimagesetup.appimage_utils import Bundle
from appimagesetup.errors import DescriptorNotFoundError, DescriptorWriteError
from appimagesetup.integration import (DescriptorStore, DescriptorWriter, escape_exec_argument,
                                       remove_installed_icon, split_exec, unescape_value)


# --- DescriptorStore ---

def test_filename_and_identifier_round_trip(setup_config):
    store = DescriptorStore(setup_config)
    assert store.filename_for("Foo") == "appimage-Foo.desktop"
    assert store.identifier_of("appimage-Foo.desktop") == "Foo"
    assert store.identifier_of("/x/y/appimage-Foo-bar.desktop") == "Foo-bar"
    assert store.identifier_of("other-Foo.desktop") is None
    assert store.identifier_of("appimage-Foo.txt") is None


def test_enumerate_only_lists_prefixed_files(setup_config, desktop_dir):
    for name in ["appimage-B.desktop", "appimage-A.desktop", "firefox.desktop", "appimage-C.txt"]:
        (desktop_dir / name).write_text("[Desktop Entry]\n")
    (desktop_dir / "appimage-Dir.desktop").mkdir()

    store = DescriptorStore(setup_config)
    assert store.enumerate() == ["appimage-A.desktop", "appimage-B.desktop"]
    assert store.identifiers() == {"A", "B"}


def test_enumerate_missing_directory_is_empty(setup_config):
    assert DescriptorStore(setup_config).enumerate() == []


def test_write_creates_directory_and_sets_exec_bit(setup_config):
    store = DescriptorStore(setup_config)
    path = store.write("Foo", "[Desktop Entry]\nName=Foo\n")
    assert path == os.path.join(setup_config.desktop_dir, "appimage-Foo.desktop")
    assert Path(path).read_text() == "[Desktop Entry]\nName=Foo\n"
    assert os.stat(path).st_mode & 0o111 == 0o111


def test_write_overwrites(setup_config):
    store = DescriptorStore(setup_config)
    store.write("Foo", "old\n")
    path = store.write("Foo", "new\n")
    assert Path(path).read_text() == "new\n"


def test_write_failure_is_fatal(home):
    from appimagesetup.config import SetupConfig

    blocker = home / "not-a-dir"
    blocker.write_text("")
    config = SetupConfig(app_dir=str(home / "apps"), desktop_dir=str(blocker), icon_dir=str(home / "icons"))
    with pytest.raises(DescriptorWriteError):
        DescriptorStore(config).write("Foo", "x")


def test_find_prefers_exact_match(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foo-extra.desktop").write_text("extra")
    (desktop_dir / "appimage-Foo.desktop").write_text("exact")
    store = DescriptorStore(setup_config)
    assert store.read("Foo") == "exact"


def test_find_falls_back_to_prefix_glob(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foobar.desktop").write_text("foobar")
    (desktop_dir / "appimage-Fooz.desktop").write_text("fooz")
    assert DescriptorStore(setup_config).read("Foo") == "foobar"


def test_find_escapes_glob_characters(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foo.desktop").write_text("x")
    with pytest.raises(DescriptorNotFoundError):
        DescriptorStore(setup_config).find("F[o]o")


def test_read_missing_raises_not_found(setup_config):
    with pytest.raises(DescriptorNotFoundError) as excinfo:
        DescriptorStore(setup_config).read("Nope")
    assert excinfo.value.name == "Nope"


def test_delete(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foo.desktop").write_text("x")
    store = DescriptorStore(setup_config)
    assert store.delete("Foo") is True
    assert not (desktop_dir / "appimage-Foo.desktop").exists()
    assert store.delete("Foo") is False


def test_parse_reads_exec_target_and_icon(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foo.desktop").write_text(
        "[Desktop Entry]\n"
        "Name=Foo\n"
        'Exec="/home/me/my apps/Foo-1.2.AppImage" %U\n'
        "Icon=Foo-1.2\n"
        "Categories=Utility;\n"
    )
    entry = DescriptorStore(setup_config).parse("Foo")
    assert entry["name"] == "Foo"
    assert entry["target"] == "/home/me/my apps/Foo-1.2.AppImage"
    assert entry["icon"] == "Foo-1.2"


def test_parse_without_icon_and_missing_file(setup_config, desktop_dir):
    (desktop_dir / "appimage-Foo.desktop").write_text(
        "[Desktop Entry]\nName=Foo\nExec=\"/a/Foo.AppImage\" %U\n# Icon= (no icon found)\n"
    )
    store = DescriptorStore(setup_config)
    assert store.parse("Foo")["icon"] is None
    assert store.parse("Bar") is None


# --- Exec= quoting ---

def test_escape_exec_argument_leaves_ordinary_paths_plain():
    assert escape_exec_argument("/home/me/my apps/Foo-1.2.AppImage") == '"/home/me/my apps/Foo-1.2.AppImage"'


@pytest.mark.parametrize(
    "path, expected",
    [
        ('/a/say "hi".AppImage', '"/a/say \\\\"hi\\\\".AppImage"'),
        ("/a/$HOME`id`.AppImage", '"/a/\\\\$HOME\\\\`id\\\\`.AppImage"'),
        ("/a/back\\slash.AppImage", '"/a/back\\\\\\\\slash.AppImage"'),
        ("/a/100%.AppImage", '"/a/100%%.AppImage"'),
    ],
)
def test_escape_exec_argument_special_characters(path, expected):
    assert escape_exec_argument(path) == expected


def test_split_exec_handles_quotes_and_field_codes():
    assert split_exec('"/a/my \\"app\\"" --flag %U') == ['/a/my "app"', "--flag", "%U"]
    assert split_exec("/a/100%%.AppImage") == ["/a/100%.AppImage"]


def test_unescape_value():
    assert unescape_value("a\\sb\\tc\\\\d\\q") == "a b\tc\\d\\q"


def test_exec_with_special_characters_parses_back_to_the_bundle(setup_config, make_bundle, home):
    path = make_bundle('Foo-"x" $HOME `tick` back\\slash 100%.AppImage', directory=home / 'my "apps"')
    bundle = Bundle(str(path))
    DescriptorWriter(setup_config).write(bundle)

    content = (Path(setup_config.desktop_dir) / "appimage-Foo.desktop").read_text()
    assert "100%%" in content
    assert DescriptorStore(setup_config).parse("Foo")["target"] == str(path)


# --- DescriptorWriter ---

EXPECTED_NO_ICON = (
    "[Desktop Entry]\n"
    "Name=Foo\n"
    'Exec="{path}" %U\n'
    "# Icon= (no icon found)\n"
    "Terminal=false\n"
    "Type=Application\n"
    "Categories=Utility;\n"
    "StartupNotify=true\n"
)


def test_writer_without_icon(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("Foo-1.2.AppImage")))
    path = DescriptorWriter(setup_config).write(bundle)
    assert os.path.basename(path) == "appimage-Foo.desktop"
    assert Path(path).read_text() == EXPECTED_NO_ICON.format(path=bundle.path)
    assert not os.path.exists(setup_config.icon_dir)


def test_writer_copies_icon_and_references_base_name(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("Foo-1.2.AppImage")))
    make_bundle("Foo-1.2.png", content="png-bytes")
    path = DescriptorWriter(setup_config).write(bundle)

    content = Path(path).read_text()
    assert "Icon=Foo-1.2\n" in content
    assert "# Icon=" not in content
    copied = Path(setup_config.icon_dir) / "Foo-1.2.png"
    assert copied.read_text() == "png-bytes"
    assert (Path(setup_config.app_dir) / "Foo-1.2.png").exists()


def test_writer_icon_priority(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("Foo-1.2.AppImage")))
    make_bundle("Foo-1.2.jpg")
    make_bundle("Foo-1.2.svg")
    writer = DescriptorWriter(setup_config)
    assert writer.find_icon(bundle) == os.path.join(setup_config.app_dir, "Foo-1.2.svg")
    writer.write(bundle)
    assert sorted(os.listdir(setup_config.icon_dir)) == ["Foo-1.2.svg"]


def test_writer_looks_for_icon_next_to_bundle(setup_config, make_bundle, home):
    bundle = Bundle(str(make_bundle("Foo-1.2.AppImage", directory=home / "elsewhere")))
    make_bundle("Foo-1.2.png")  # in the app dir, not next to the bundle
    assert DescriptorWriter(setup_config).find_icon(bundle) is None


def test_writer_is_idempotent(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("Foo-1.2.AppImage")))
    make_bundle("Foo-1.2.png")
    writer = DescriptorWriter(setup_config)
    first = Path(writer.write(bundle)).read_bytes()
    second = Path(writer.write(bundle)).read_bytes()
    assert first == second


def test_writer_skips_empty_identifier(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("-odd.AppImage")))
    assert DescriptorWriter(setup_config).write(bundle) is None
    assert not os.path.exists(setup_config.desktop_dir)


def test_writer_icon_copy_failure_is_fatal(setup_config, make_bundle):
    bundle = Bundle(str(make_bundle("Foo.AppImage")))
    make_bundle("Foo.png")
    Path(setup_config.icon_dir).parent.mkdir(parents=True)
    Path(setup_config.icon_dir).write_text("blocker")
    with pytest.raises(DescriptorWriteError):
        DescriptorWriter(setup_config).write(bundle)


def test_remove_installed_icon(setup_config):
    icon_dir = Path(setup_config.icon_dir)
    icon_dir.mkdir(parents=True)
    (icon_dir / "Foo-1.2.png").write_text("x")
    (icon_dir / "Foo-1.2.svg").write_text("x")
    (icon_dir / "Other.png").write_text("x")
    removed = remove_installed_icon(str(icon_dir), "Foo-1.2", setup_config.icon_extensions)
    assert sorted(os.path.basename(p) for p in removed) == ["Foo-1.2.png", "Foo-1.2.svg"]
    assert os.listdir(icon_dir) == ["Other.png"]
    assert remove_installed_icon(str(icon_dir), "../Other", setup_config.icon_extensions) == []


# --- update_desktop_database ---

def test_update_desktop_database_runs_tool(desktop_dir):
    completed = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
    with patch("appimagesetup.integration.shutil.which", return_value="/usr/bin/update-desktop-database"), \
            patch("appimagesetup.integration.subprocess.run", return_value=completed) as run:
        assert integration.update_desktop_database(str(desktop_dir)) is True
    run.assert_called_once()
    assert run.call_args[0][0] == ["update-desktop-database", str(desktop_dir)]


def test_update_desktop_database_missing_tool(desktop_dir):
    with patch("appimagesetup.integration.shutil.which", return_value=None), \
            patch("appimagesetup.integration.subprocess.run") as run:
        assert integration.update_desktop_database(str(desktop_dir)) is False
    run.assert_not_called()


def test_update_desktop_database_failure_is_reported(desktop_dir):
    completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="boom")
    with patch("appimagesetup.integration.shutil.which", return_value="/usr/bin/update-desktop-database"), \
            patch("appimagesetup.integration.subprocess.run", return_value=completed):
        assert integration.update_desktop_database(str(desktop_dir)) is False


def test_update_desktop_database_invalid_directory(tmp_path):
    assert integration.update_desktop_database(str(tmp_path / "missing")) is False
