from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class NCFSequenceOut(BaseModel):
    id: UUID
    type: str
    current_value: int
    updated_at: datetime

    class Config:
        from_attributes = True


class NCFSequenceUpdate(BaseModel):
    current_value: int = Field(..., ge=0, description="Último número emitido")
