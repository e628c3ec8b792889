from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional

class TaskProof(BaseModel):
    screenshot_ref: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = None

class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

class ReviewRequest(BaseModel):
    decision: ReviewDecision
    notes: Optional[str] = None
