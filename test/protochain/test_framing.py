import pytest
from hypothesis import given
from hypothesis import strategies as st

from protochain import exceptions
from protochain import framing
from protochain.models import ProtocolObservation


def test_encode():
    body = framing.encode(ProtocolObservation("HTTP/2.0"), b'{"protocol":"HTTP/1.1"}')
    assert body == b'{"protocol":"HTTP/2.0"}~~boundary~~{"protocol":"HTTP/1.1"}'


def test_decode():
    relay, origin = framing.decode(b'{"protocol":"HTTP/2.0"}~~boundary~~{"protocol":"HTTP/1.1"}')
    assert relay == ProtocolObservation("HTTP/2.0")
    assert origin == ProtocolObservation("HTTP/1.1")


@pytest.mark.parametrize("body", [
    b'{"protocol":"HTTP/2.0"}{"protocol":"HTTP/1.1"}',
    b"",
    b'{"protocol":"HTTP/2.0"}~~boundary~~{"protocol":"HTTP/1.1"}~~boundary~~',
    b"~~boundary~~~~boundary~~",
    b'{"protocol":"HTTP/2.0"}~~boundary~~',
    b'~~boundary~~{"protocol":"HTTP/1.1"}',
    b'{"protocol":"HTTP/2.0"}~~boundary~~origin unavailable',
])
def test_decode_malformed(body):
    with pytest.raises(exceptions.ProtocolDecodeError):
        framing.decode(body)


def test_sentinel_in_tag():
    with pytest.raises(exceptions.ProtocolDecodeError, match="sentinel"):
        framing.encode_prefix(ProtocolObservation("HTTP/~~boundary~~"))


@given(
    relay=st.text().filter(lambda s: "~~boundary~~" not in s),
    origin=st.text().filter(lambda s: "~~boundary~~" not in s),
)
def test_decode_inverts_encode(relay, origin):
    body = framing.encode(ProtocolObservation(relay), ProtocolObservation(origin).to_json())
    assert framing.decode(body) == (ProtocolObservation(relay), ProtocolObservation(origin))
