"""
Framing of the Relay's response body.

A Relay answers with its own observation, a fixed sentinel, and then the
Origin's body, byte for byte:

    {"protocol":"HTTP/2.0"}~~boundary~~{"protocol":"HTTP/1.1"}

The sentinel is in-band, so the decoder is strict: exactly one occurrence is
accepted, anything else is a broken chain.
"""

from protochain import exceptions
from protochain.models import ProtocolObservation

SENTINEL = b"~~boundary~~"


def encode_prefix(observation: ProtocolObservation) -> bytes:
    tag = observation.to_json()
    if SENTINEL in tag:
        raise exceptions.ProtocolDecodeError(
            f"Observation {observation.request_protocol!r} contains the relay sentinel."
        )
    return tag + SENTINEL


def encode(observation: ProtocolObservation, forwarded: bytes) -> bytes:
    return encode_prefix(observation) + forwarded


def split(body: bytes) -> tuple[bytes, bytes]:
    segments = body.split(SENTINEL)
    if len(segments) < 2:
        raise exceptions.ProtocolDecodeError("Relay body has no sentinel.")
    if len(segments) > 2:
        raise exceptions.ProtocolDecodeError(
            f"Relay body has {len(segments) - 1} sentinels, expected exactly one."
        )
    return segments[0], segments[1]


def decode(body: bytes) -> tuple[ProtocolObservation, ProtocolObservation]:
    """
    Split a Relay body into the Relay's own observation and the Origin's.

    *Raises:*
     - ProtocolDecodeError, if the sentinel is missing or repeated, or either segment is malformed.
    """
    relay_segment, origin_segment = split(body)
    return (
        ProtocolObservation.from_json(relay_segment),
        ProtocolObservation.from_json(origin_segment),
    )
