"""
Tests for zip packaging of file contents
"""

import io
import zipfile

from camel_gateway.app.services.archive import build_zip_archive, safe_archive_name


def test_archive_contains_every_file():
    data = build_zip_archive([("a.nc", "G0 X0"), ("b.nc", "G1 Y1")])
    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        assert zipf.namelist() == ["a.nc", "b.nc"]
        assert zipf.read("a.nc") == b"G0 X0"


def test_duplicate_and_nested_names_are_flattened():
    data = build_zip_archive([("../x/a.nc", "1"), ("a.nc", "2"), ("", "3")])
    with zipfile.ZipFile(io.BytesIO(data)) as zipf:
        assert zipf.namelist() == ["a.nc", "a (1).nc", "unnamed"]


def test_safe_archive_name_strips_directories():
    assert safe_archive_name("C:\\tmp\\part.nc") == "part.nc"
    assert safe_archive_name("/etc/passwd") == "passwd"
