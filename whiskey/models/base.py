"""Base model for data exchanged with worker processes."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Immutable model; everything on the wire is built from these."""

    model_config = ConfigDict(frozen=True)
