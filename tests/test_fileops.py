import errno
import os

import pytest

from photovault.core import fileops
from photovault.core.errors import Conflict, InvalidInput, IOFailure
from photovault.core.fileops import (
    io_guard, move_path, relative_label, sanitize_name, unique_target, validate_filename, validate_folder_name,
)


@pytest.mark.parametrize("raw, clean", [
    ("Trips", "Trips"),
    ('a/b\\c:d*e?f"g<h>i|j', "a_b_c_d_e_f_g_h_i_j"),
    ("  Spaced  ", "Spaced"),
])
def test_validate_folder_name_sanitizes(raw, clean):
    assert validate_folder_name(raw) == clean


@pytest.mark.parametrize("bad", ["", "   ", ".", "..", ".hidden", "_Trash", "_Sort Later", "a\x01b"])
def test_validate_folder_name_rejects(bad):
    with pytest.raises(InvalidInput):
        validate_folder_name(bad)


@pytest.mark.parametrize("bad", ["", "a/b.jpg", "a\\b.jpg", ".."])
def test_validate_filename_rejects(bad):
    with pytest.raises(InvalidInput):
        validate_filename(bad)


def test_sanitize_keeps_unicode():
    assert sanitize_name("Ürlaub 2024") == "Ürlaub 2024"


def test_unique_target_counts_up(tmp_path):
    assert unique_target(tmp_path, "a.jpg") == tmp_path / "a.jpg"
    (tmp_path / "a.jpg").write_bytes(b"1")
    assert unique_target(tmp_path, "a.jpg") == tmp_path / "a (1).jpg"
    (tmp_path / "a (1).jpg").write_bytes(b"2")
    assert unique_target(tmp_path, "a.jpg") == tmp_path / "a (2).jpg"


def test_unique_target_without_extension(tmp_path):
    (tmp_path / "README").write_bytes(b"x")
    assert unique_target(tmp_path, "README") == tmp_path / "README (1)"


def test_move_path_refuses_existing_destination(tmp_path):
    src, dst = tmp_path / "a.jpg", tmp_path / "b.jpg"
    src.write_bytes(b"a")
    dst.write_bytes(b"b")

    with pytest.raises(Conflict):
        move_path(src, dst)
    assert src.read_bytes() == b"a"


def _cross_device(src, dst):
    raise OSError(errno.EXDEV, "Invalid cross-device link")


def test_move_path_falls_back_to_copy_for_files(tmp_path, monkeypatch):
    monkeypatch.setattr(fileops.os, "rename", _cross_device)
    src = tmp_path / "a.jpg"
    src.write_bytes(b"data")

    move_path(src, tmp_path / "out.jpg")

    assert not src.exists()
    assert (tmp_path / "out.jpg").read_bytes() == b"data"


def test_move_path_falls_back_to_copy_for_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(fileops.os, "rename", _cross_device)
    src = tmp_path / "Travel"
    (src / "sub").mkdir(parents=True)
    (src / "sub" / "a.jpg").write_bytes(b"data")

    move_path(src, tmp_path / "Moved")

    assert not src.exists()
    assert (tmp_path / "Moved" / "sub" / "a.jpg").read_bytes() == b"data"


def test_move_path_other_errors_propagate(tmp_path):
    with pytest.raises(FileNotFoundError):
        move_path(tmp_path / "missing.jpg", tmp_path / "b.jpg")


def test_io_guard_wraps_os_errors(tmp_path):
    with pytest.raises(IOFailure) as exc:
        with io_guard("Cannot read"):
            os.listdir(tmp_path / "missing")
    assert isinstance(exc.value.__cause__, FileNotFoundError)

    with pytest.raises(Conflict):
        with io_guard("Cannot create"):
            os.mkdir(tmp_path)


def test_relative_label(tmp_path):
    assert relative_label(tmp_path / "Travel" / "a.jpg", tmp_path) == "/Travel/a.jpg"
    assert relative_label("/elsewhere/x", tmp_path) == "/elsewhere/x"
