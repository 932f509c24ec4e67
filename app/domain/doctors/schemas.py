"""Doctor domain schemas"""

from typing import Optional

from pydantic import BaseModel


class SpecialtyResponse(BaseModel):
    id: int
    name: str


class DoctorResponse(BaseModel):
    id: int
    firstName: str
    lastName: str
    email: str
    licenseNumber: Optional[str] = None
    specialties: list[SpecialtyResponse] = []
