from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from .common import QualityModel


class Progress(QualityModel):
    step_index: int
    total_steps: int
    percent: int


class Milestone(QualityModel):
    id: str
    title: str
    description: str
    status: Literal["complete", "current", "pending"]
    date: Optional[datetime] = None


class MilestoneView(QualityModel):
    milestones: List[Milestone]
    current_milestone_id: str
    progress: Progress
