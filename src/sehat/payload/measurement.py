from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOGGER = logging.getLogger(__name__)


class Measurement(BaseModel):
    """Reading taken by a kiosk: height (cm), weight (kg), BMI and device id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    height: float = Field(gt=0)
    weight: float = Field(gt=0)
    bmi: float = Field(gt=0)
    machine_id: str = Field(alias="machineId", min_length=1)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_measurement(data: Any) -> Measurement | None:
    if not isinstance(data, dict):
        return None
    try:
        return Measurement.model_validate(data)
    except ValidationError as exc:
        LOGGER.warning(
            "Measurement payload rejected: %s error(s)", exc.error_count()
        )
        return None
