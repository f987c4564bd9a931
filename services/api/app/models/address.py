from __future__ import annotations

from pydantic import BaseModel, Field

PHONE_PATTERN = r"^\+?[\d\s\-()]{10,20}$"
POSTAL_CODE_PATTERN = r"^[1-9][0-9]{5}$"


class AddressInput(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    line1: str = Field(..., min_length=1, max_length=200)
    line2: str | None = Field(default=None, max_length=200)
    city: str = Field(..., min_length=1, max_length=80)
    state: str = Field(..., min_length=1, max_length=80)
    postal_code: str = Field(..., pattern=POSTAL_CODE_PATTERN)
    country: str = "India"

    def one_line(self) -> str:
        parts = [self.full_name, self.line1, self.line2, self.city, f"{self.state} {self.postal_code}"]
        return ", ".join(p for p in parts if p) + f" (Phone: {self.phone})"


class AddressCreate(AddressInput):
    is_default: bool = False


class AddressOut(AddressInput):
    id: str
    owner_id: str
    is_default: bool
    created_at: str
