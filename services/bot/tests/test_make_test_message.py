from services.bot.application.handle_inbound_message import MEASUREMENT_PATTERN
from services.bot.make_test_message import SAMPLE_MEASUREMENT, build_test_message


def test_message_wraps_decryptable_payload(codec):
    message = build_test_message(codec, SAMPLE_MEASUREMENT)

    match = MEASUREMENT_PATTERN.match(message)
    assert match is not None
    assert codec.decrypt(match.group(1)) == SAMPLE_MEASUREMENT
