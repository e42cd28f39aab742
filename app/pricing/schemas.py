from pydantic import BaseModel, Field


class PriceRange(BaseModel):
    min: float
    max: float

    model_config = {"extra": "forbid"}


class PriceAnalysis(BaseModel):
    averagePrice: float
    priceRange: PriceRange
    marketAnalysis: str
    recommendations: list[str]
    confidence: float = Field(ge=0, le=1)
    sources: list[str]

    model_config = {"extra": "forbid"}
