from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AirworthinessStatusEnum(str, enum.Enum):
    FULL = "FULL"
    CONDITIONAL = "CONDITIONAL"
    GROUNDED = "GROUNDED"


class FindingSeverityEnum(str, enum.Enum):
    ADVISORY = "ADVISORY"
    CONDITIONAL = "CONDITIONAL"
    GROUNDING = "GROUNDING"


class AirworthinessFinding(BaseModel):
    severity: FindingSeverityEnum
    kind: str
    entity_type: str
    entity_id: str
    message: str


class AirworthinessReport(BaseModel):
    entity_type: str
    entity_id: str
    status: AirworthinessStatusEnum
    evaluated_at: datetime
    findings: List[AirworthinessFinding] = Field(default_factory=list)
    aircraft_id: Optional[str] = None

    @property
    def is_airworthy(self) -> bool:
        return self.status != AirworthinessStatusEnum.GROUNDED

    @property
    def grounding_findings(self) -> List[AirworthinessFinding]:
        return [finding for finding in self.findings if finding.severity == FindingSeverityEnum.GROUNDING]
