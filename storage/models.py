from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ValidationInfo, field_validator


@dataclass(frozen=True)
class AuthAttempt:
    """One failed SSH authentication pulled out of the log."""

    ip: str
    username: Optional[str]
    host: str
    timestamp: datetime
    source_path: Optional[str] = None


@dataclass
class FileCheckpoint:
    """
    Persisted tail position for one watched file.

    epoch_date: timestamp of the file's first line when it was last judged new.
    last_line: raw text of the last line streamed; None until a pass commits.
    last_line_occurrence: which occurrence of that text (1-based) it was.
    """

    file_id: str
    epoch_date: datetime
    last_line: Optional[str] = None
    last_line_occurrence: int = 1


class GeoInfo(BaseModel):
    """Geolocation record, shaped like the provider's JSON document."""

    ip: str
    country_code: str = ""
    country_name: str = ""
    region_code: str = ""
    region_name: str = ""
    city: str = ""
    zip_code: str = ""
    time_zone: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    metro_code: int = 0

    @field_validator(
        "country_code", "country_name", "region_code", "region_name", "city",
        "zip_code", "time_zone", "latitude", "longitude", "metro_code",
        mode="before",
    )
    @classmethod
    def null_to_default(cls, value, info: ValidationInfo):
        # providers send null for fields they have nothing for
        if value is None:
            return cls.model_fields[info.field_name].default
        return value
