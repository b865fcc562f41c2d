"""Base model configuration for all Greenrun data structures."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Immutable model; unknown fields sent by the service are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")
