from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Location(BaseModel):
    id: str
    tenant_id: Optional[str] = None
    name: str = ""
    city: Optional[str] = None
    # Jours en anglais minuscules ("monday", ...), comme stockés côté salon
    opening_days: List[str] = Field(default_factory=list)
    # "HH:MM" ou "HH:MM:SS"; None => jour fermé
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None


class ExistingBooking(BaseModel):
    start: datetime
    end: Optional[datetime] = None


class LocationSchedule(BaseModel):
    location: Location
    bookings: List[ExistingBooking] = Field(default_factory=list)


class AvailabilityDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    is_open: bool
    has_capacity: bool


class AvailabilitySlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_time: time
    end_time: time
    remaining_capacity: int

    @property
    def label(self) -> str:
        return self.start_time.strftime("%H:%M")
