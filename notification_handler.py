# Author: Omi Shrestha

import math
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from sensor_models import MoistureState, Reading


class DecodeError(ValueError):
    """Raised when a notification payload matches no known wire format."""


@dataclass(frozen=True)
class WireFormat:
    """A payload format: predicate deciding if it applies, parser producing fields"""
    name: str
    matches: Callable[[str], bool]
    parse: Callable[[str], Tuple[MoistureState, Optional[float]]]


def parse_moisture(token: str) -> MoistureState:
    return MoistureState.from_token(token)


def parse_temperature(text: Optional[str]) -> Optional[float]:
    """Parse a temperature field; None when missing or not a finite number."""
    if text is None:
        return None
    try:
        value = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _parse_keyed(msg):
    # Format 1: "MOISTURE:<token>;TEMP:<number>"
    fields = {}
    for part in msg.split(';'):
        if ':' not in part:
            continue
        key, value = part.split(':', 1)
        fields[key.strip().upper()] = value.strip()

    if 'MOISTURE' not in fields:
        raise DecodeError(f"keyed payload without MOISTURE field: {msg!r}")
    return parse_moisture(fields['MOISTURE']), parse_temperature(fields.get('TEMP'))


def _parse_positional(msg):
    # Format 2: "<token>,<number>"
    parts = msg.split(',')
    return parse_moisture(parts[0]), parse_temperature(parts[1])


# Tried in order; the first format whose predicate matches decodes the payload
WIRE_FORMATS = (
    WireFormat("keyed", lambda msg: "MOISTURE" in msg, _parse_keyed),
    WireFormat("positional", lambda msg: "," in msg, _parse_positional),
)


def decode(data: Union[bytes, bytearray, str], observed_at: float, formats=WIRE_FORMATS) -> Reading:
    """
    Decode a raw notification payload into a Reading.

    Args:
        data: Raw notification value (UTF-8 bytes, or already decoded text)
        observed_at: Arrival timestamp assigned by the receiver
        formats: Ordered wire formats to try

    Raises:
        DecodeError: Payload is not UTF-8, or matches no format
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            msg = bytes(data).decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecodeError(f"payload is not UTF-8: {bytes(data).hex()}") from e
    else:
        msg = data
    msg = msg.strip().strip('\x00').strip()

    for wire_format in formats:
        if wire_format.matches(msg):
            moisture, temperature = wire_format.parse(msg)
            return Reading(
                observed_at=observed_at,
                moisture_state=moisture,
                temperature_celsius=temperature,
                raw=msg,
            )

    raise DecodeError(f"unrecognized format: {msg!r}")
