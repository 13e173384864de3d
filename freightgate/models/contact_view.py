"""
freightgate/models/contact_view.py

Contact-view ledger models.
"""

from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict


class ContactViewEvent(BaseModel):
    """
    One charged contact reveal.

    (driver_id, freight_id, month_key) is unique; events are never mutated.
    """
    model_config = ConfigDict(frozen=True)

    driver_id: str
    freight_id: str
    company_id: Optional[str] = None
    month_key: str
    viewed_at: datetime


class ContactViewResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    recorded: bool
    already_viewed: bool


class ContactViewUsage(BaseModel):
    """Monthly usage summary for a driver (remaining is "unlimited" or a count)."""
    model_config = ConfigDict(frozen=True)

    driver_id: str
    month_key: str
    used: int
    limit: Union[int, str]
    remaining: Union[int, str]
