from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str


class PredictionItem(BaseModel):
    class_label: str
    probability: float


class PredictResponse(BaseModel):
    prediction: list[PredictionItem]


class ErrorResponse(BaseModel):
    error: str
