from pydantic import BaseModel, ConfigDict, Field
from typing import List

class ForecastDay(BaseModel):
    day: str         # Mon, Tue, ...
    high: int        # °F
    low: int         # °F
    condition: str   # lowercase keyword: "clear", "rain", ...

class WeatherSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: str
    temperature: int                           # °F, rounded
    condition: str
    humidity: int                              # %
    wind_speed: int = Field(alias="windSpeed")  # mph, rounded
    forecast: List[ForecastDay] = Field(default_factory=list)
