"""Donation eligibility result contract."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EligibilityResult(BaseModel):
    """Outcome of the donation cooldown check."""
    eligible: bool = Field(..., description="Whether the donor may donate now")
    days_remaining: int = Field(0, ge=0, description="Whole days left in the cooldown")
    percentage: float = Field(100.0, ge=0.0, le=100.0, description="Recovery progress for a progress bar")
    next_eligible_date: Optional[datetime] = Field(None, description="last donation + cooldown")
    message: Optional[str] = Field(None, description="User-facing explanation when not eligible")
    cooldown_days: int = Field(..., description="Cooldown applied for the donor's gender")
