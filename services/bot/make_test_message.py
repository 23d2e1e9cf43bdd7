"""Print a ``sehat_bmi<...>`` message to paste into the WhatsApp chat.

    python -m services.bot.make_test_message --height 172 --weight 70.4 --bmi 23.8
"""

from __future__ import annotations

import argparse
from typing import Any, Mapping

from sehat.payload.codec import PayloadCodec

from services.bot.config import load_encryption_key

SAMPLE_MEASUREMENT = {
    "height": 170.5,
    "weight": 65.2,
    "bmi": 22.45,
    "machineId": "SEHAT-PRO-007",
}


def build_test_message(codec: PayloadCodec, payload: Mapping[str, Any]) -> str:
    return f"sehat_bmi<{codec.encrypt(dict(payload))}>"


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--height", type=float, default=SAMPLE_MEASUREMENT["height"])
    parser.add_argument("--weight", type=float, default=SAMPLE_MEASUREMENT["weight"])
    parser.add_argument("--bmi", type=float, default=SAMPLE_MEASUREMENT["bmi"])
    parser.add_argument("--machine-id", default=SAMPLE_MEASUREMENT["machineId"])
    args = parser.parse_args()

    codec = PayloadCodec.from_hex(load_encryption_key())
    payload = {
        "height": args.height,
        "weight": args.weight,
        "bmi": args.bmi,
        "machineId": args.machine_id,
    }
    print(build_test_message(codec, payload))


if __name__ == "__main__":
    main()
