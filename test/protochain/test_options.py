import pytest

from protochain import exceptions
from protochain.hops import Role
from protochain.options import Options


def test_defaults():
    opts = Options()
    opts.validate()
    assert [opts.port(role) for role in Role] == [8000, 8001, 8002, 8003]
    assert opts.trust_file == "server.crt"
    assert opts.downstream(Role.ORIGIN) is None
    assert opts.downstream(Role.RELAY) == "https://127.0.0.1:8000"
    assert opts.downstream(Role.EDGE) == "https://127.0.0.1:8001"
    assert opts.downstream(Role.PRESENTER) == "http://127.0.0.1:8002"


def test_downstream_wildcard():
    opts = Options(listen_host="0.0.0.0")
    assert opts.downstream(Role.RELAY) == "https://localhost:8000"


def test_downstream_explicit():
    opts = Options(relay_upstream="origin.example:9000", edge_upstream="http://[::1]:1234")
    assert opts.downstream(Role.RELAY) == "https://origin.example:9000"
    assert opts.downstream(Role.EDGE) == "http://[::1]:1234"


def test_trust_file():
    assert Options(cafile="ca.pem").trust_file == "ca.pem"


def test_update():
    opts = Options()
    opts.update(origin_port=9000, verbosity="debug")
    assert opts.origin_port == 9000
    assert opts.verbosity == "debug"
    with pytest.raises(exceptions.ConfigurationError, match="Unknown options: bar, foo"):
        opts.update(foo=1, bar=2)


@pytest.mark.parametrize("kwargs, err", [
    (dict(listen_host="not a host"), "Invalid listen host"),
    (dict(relay_port=-1), "Invalid proxy port"),
    (dict(presenter_port=70000), "Invalid ui port"),
    (dict(edge_upstream="ftp://localhost:21"), "Invalid client upstream"),
    (dict(timeout=0), "Invalid timeout"),
    (dict(verbosity="loud"), "Invalid verbosity"),
])
def test_validate(kwargs, err):
    opts = Options(**kwargs)
    with pytest.raises(exceptions.ConfigurationError, match=err):
        opts.validate()
