import pytest

from sitescan.platform.utils.url_validator import normalize_url, validate_url


@pytest.mark.parametrize("raw, expected", [
    ("example.com", "https://example.com"),
    ("  https://example.com/  ", "https://example.com"),
    ("http://example.com/path/", "http://example.com/path"),
    ("example.com:8080", "https://example.com:8080"),
])
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


def test_validate_url_accepts_bare_domain():
    assert validate_url("example.com") == (True, "https://example.com", "")


@pytest.mark.parametrize("raw, error", [
    ("", "URL cannot be empty"),
    ("   ", "URL cannot be empty"),
    ("ftp://example.com", "Invalid URL scheme: ftp (must be http or https)"),
    ("https://", "Invalid URL format: missing domain"),
])
def test_validate_url_rejects(raw, error):
    ok, _, message = validate_url(raw)
    assert ok is False
    assert message == error
