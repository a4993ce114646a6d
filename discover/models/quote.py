from pydantic import BaseModel, ConfigDict, Field
from typing import List, Union

# int stays int on the wire, so the static payload serializes exactly as documented
Number = Union[int, float]

class Quote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    name: str
    price: Number
    change: Number = 0.0
    change_percent: Number = Field(0.0, alias="changePercent")

class MarketSnapshot(BaseModel):
    indices: List[Quote]
    crypto: List[Quote]   # BTC plus VIX, as the widget shows them together
