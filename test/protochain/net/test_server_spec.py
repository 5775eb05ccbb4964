import pytest

from protochain.net import server_spec


@pytest.mark.parametrize(
    "spec,default_scheme,out",
    [
        ("example.com", "https", ("https", ("example.com", 443))),
        ("http://example.com", "https", ("http", ("example.com", 80))),
        ("localhost:8000", "https", ("https", ("localhost", 8000))),
        ("localhost:8002", "http", ("http", ("localhost", 8002))),
        ("http://127.0.0.1", "https", ("http", ("127.0.0.1", 80))),
        ("http://[::1]", "https", ("http", ("::1", 80))),
        ("https://[::1]/", "https", ("https", ("::1", 443))),
        ("http://[::1]:8080", "https", ("http", ("::1", 8080))),
    ],
)
def test_parse(spec, default_scheme, out):
    assert server_spec.parse(spec, default_scheme) == out


def test_parse_err():
    with pytest.raises(ValueError, match="Invalid server specification"):
        server_spec.parse(":", "https")

    with pytest.raises(ValueError, match="Invalid server specification"):
        server_spec.parse("https://example.com/path", "https")

    with pytest.raises(ValueError, match="Invalid server scheme"):
        server_spec.parse("ftp://example.com", "https")

    with pytest.raises(ValueError, match="Invalid hostname"):
        server_spec.parse("$$$", "https")

    with pytest.raises(ValueError, match="Invalid port"):
        server_spec.parse("example.com:999999", "https")


@pytest.mark.parametrize(
    "spec,out",
    [
        (("https", ("localhost", 8001)), "https://localhost:8001"),
        (("http", ("::1", 8002)), "http://[::1]:8002"),
    ],
)
def test_unparse(spec, out):
    assert server_spec.unparse(spec) == out
    assert server_spec.parse(out) == spec
