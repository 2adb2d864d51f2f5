import pytest

from notification_handler import (
    WIRE_FORMATS,
    DecodeError,
    WireFormat,
    decode,
    parse_temperature,
)
from sensor_models import MoistureState

NOW = 1_700_000_000.0


def test_keyed_payload() -> None:
    reading = decode(b"MOISTURE:Wet;TEMP:24.3", observed_at=NOW)

    assert reading.moisture_state is MoistureState.WET
    assert reading.temperature_celsius == pytest.approx(24.3)
    assert reading.observed_at == NOW
    assert reading.raw == "MOISTURE:Wet;TEMP:24.3"


def test_positional_payload() -> None:
    reading = decode(b"dry,19", observed_at=NOW)

    assert reading.moisture_state is MoistureState.DRY
    assert reading.temperature_celsius == 19.0


def test_garbage_is_rejected() -> None:
    with pytest.raises(DecodeError):
        decode(b"garbage", observed_at=NOW)


@pytest.mark.parametrize(
    "token, expected",
    [
        ("wet", MoistureState.WET),
        ("WET", MoistureState.WET),
        ("Dry", MoistureState.DRY),
        ("mIxEd", MoistureState.MIXED),
        ("soggy", MoistureState.UNKNOWN),
        ("", MoistureState.UNKNOWN),
    ],
)
def test_moisture_tokens_are_case_normalized(token: str, expected: MoistureState) -> None:
    assert decode(f"MOISTURE:{token};TEMP:20".encode(), NOW).moisture_state is expected
    assert decode(f"{token},20".encode(), NOW).moisture_state is expected


def test_keyed_keys_and_whitespace_are_lenient() -> None:
    reading = decode(b"  MOISTURE: mixed ; temp : -3.5 \r\n", observed_at=NOW)

    assert reading.moisture_state is MoistureState.MIXED
    assert reading.temperature_celsius == -3.5


def test_unparseable_temperature_is_absent_not_zero() -> None:
    reading = decode(b"MOISTURE:dry;TEMP:n/a", observed_at=NOW)

    assert reading.moisture_state is MoistureState.DRY
    assert reading.temperature_celsius is None


def test_missing_temperature_field_is_absent() -> None:
    assert decode(b"MOISTURE:wet", NOW).temperature_celsius is None
    assert decode(b"wet,", NOW).temperature_celsius is None


def test_zero_temperature_is_kept() -> None:
    assert decode(b"dry,0", NOW).temperature_celsius == 0.0


@pytest.mark.parametrize("text", ["nan", "inf", "-inf", "abc", ""])
def test_non_finite_temperatures_are_absent(text: str) -> None:
    assert parse_temperature(text) is None


def test_keyed_payload_without_moisture_field_is_rejected() -> None:
    with pytest.raises(DecodeError):
        decode(b"MOISTURE;TEMP:20", observed_at=NOW)


def test_keyed_form_takes_precedence_over_comma() -> None:
    reading = decode(b"MOISTURE:wet;TEMP:21,5", observed_at=NOW)

    assert reading.moisture_state is MoistureState.WET
    assert reading.temperature_celsius is None


def test_invalid_utf8_is_rejected() -> None:
    with pytest.raises(DecodeError):
        decode(b"\xff\xfe,20", observed_at=NOW)


def test_nul_padding_is_stripped() -> None:
    reading = decode(b"wet,22.5\x00\x00", observed_at=NOW)

    assert reading.temperature_celsius == 22.5


def test_text_payloads_are_accepted() -> None:
    assert decode("mixed,18", NOW).moisture_state is MoistureState.MIXED


def test_extra_formats_can_be_appended() -> None:
    semicolon = WireFormat(
        "semicolon",
        lambda msg: ";" in msg,
        lambda msg: (MoistureState.from_token(msg.split(";")[0]), parse_temperature(msg.split(";")[1])),
    )

    reading = decode(b"wet;30", NOW, formats=WIRE_FORMATS + (semicolon,))

    assert reading.moisture_state is MoistureState.WET
    assert reading.temperature_celsius == 30.0
