"""
Tests for extension checks and format dispatch.

Run with: python -m pytest tests/test_formats.py -v
"""

import pytest

from photostamp import ALLOWED_EXTENSIONS, UnsupportedFormatError, WatermarkError, is_allowed_extension
from photostamp.core.formats import format_for_extension, format_for_path


@pytest.mark.parametrize("ext", [".jpg", ".jpeg", ".png", ".JPG", ".JPEG", ".PNG", ".Jpeg", ".pNg"])
def test_allowed_extensions(ext):
    assert is_allowed_extension(ext) is True


@pytest.mark.parametrize("ext", [".gif", ".bmp", ".webp", ".jpgx", ".jp", ".", ".tiff", ".png.bak"])
def test_other_extensions_rejected(ext):
    assert is_allowed_extension(ext) is False


@pytest.mark.parametrize("ext", ["", "jpg", "png", " .png"])
def test_malformed_extension_is_contract_violation(ext):
    with pytest.raises(ValueError):
        is_allowed_extension(ext)


def test_allow_list_is_immutable():
    assert ALLOWED_EXTENSIONS == {".jpg", ".jpeg", ".png"}
    with pytest.raises(AttributeError):
        ALLOWED_EXTENSIONS.add(".gif")


def test_format_dispatch():
    assert format_for_extension(".jpg") == "JPEG"
    assert format_for_extension(".JPEG") == "JPEG"
    assert format_for_extension(".Png") == "PNG"
    assert format_for_path("photos/cat.JPG") == "JPEG"


def test_unsupported_format_error():
    with pytest.raises(UnsupportedFormatError) as excinfo:
        format_for_extension(".gif")

    err = excinfo.value
    assert err.ext == ".gif"
    assert isinstance(err, WatermarkError)
    assert isinstance(err, ValueError)


def test_path_without_extension_is_unsupported():
    with pytest.raises(UnsupportedFormatError):
        format_for_path("photos/README")
