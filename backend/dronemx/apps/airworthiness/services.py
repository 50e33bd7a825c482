# backend/dronemx/apps/airworthiness/services.py
#
# Airworthiness projection. Recomputed on every call from the ledger, the
# projected schedules and open pilot reports; nothing here is persisted.
#
# GROUNDED     : installed LLP past a limit, installed component flagged
#                unairworthy, OVERDUE schedule on a CRITICAL or RII trigger,
#                unresolved AOG / CRITICAL pilot report, aircraft AOG/RETIRED.
# CONDITIONAL  : only MEDIUM/HIGH items outstanding.
# FULL         : nothing outstanding (LOW items are reported as advisories).

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ...utils.timeutils import as_utc, utcnow
from ..fleet import models as fleet_models
from ..fleet import services as fleet_services
from ..flight import models as flight_models
from ..flight import services as flight_services
from ..maintenance_program import models as program_models
from ..maintenance_program import schemas as program_schemas
from ..maintenance_program import service as schedule_service
from .schemas import (
    AirworthinessFinding,
    AirworthinessReport,
    AirworthinessStatusEnum,
    FindingSeverityEnum,
)

logger = logging.getLogger(__name__)

_NON_BLOCKING_SEVERITIES = {flight_models.PilotReportSeverityEnum.MEDIUM, flight_models.PilotReportSeverityEnum.HIGH}


def _rollup(findings: Iterable[AirworthinessFinding]) -> AirworthinessStatusEnum:
    severities = {finding.severity for finding in findings}
    if FindingSeverityEnum.GROUNDING in severities:
        return AirworthinessStatusEnum.GROUNDED
    if FindingSeverityEnum.CONDITIONAL in severities:
        return AirworthinessStatusEnum.CONDITIONAL
    return AirworthinessStatusEnum.FULL


def _component_findings(component: fleet_models.Component) -> List[AirworthinessFinding]:
    findings: List[AirworthinessFinding] = []
    for limit in component.exceeded_limits():
        findings.append(
            AirworthinessFinding(
                severity=FindingSeverityEnum.GROUNDING,
                kind="life_limit_exceeded",
                entity_type="component",
                entity_id=component.id,
                message=f"{component.serial_number} exceeds {limit}.",
            )
        )
    if component.is_terminal:
        findings.append(
            AirworthinessFinding(
                severity=FindingSeverityEnum.GROUNDING,
                kind="component_status",
                entity_type="component",
                entity_id=component.id,
                message=f"{component.serial_number} is {component.status.value}.",
            )
        )
    elif not component.is_airworthy:
        findings.append(
            AirworthinessFinding(
                severity=FindingSeverityEnum.GROUNDING,
                kind="component_unairworthy",
                entity_type="component",
                entity_id=component.id,
                message=f"{component.serial_number} is flagged not airworthy.",
            )
        )
    return findings


def _schedule_finding(row: program_schemas.DueScheduleRead) -> Optional[AirworthinessFinding]:
    if row.status not in program_models.OUTSTANDING_STATUSES:
        return None
    overdue = row.status == program_models.ScheduleStatusEnum.OVERDUE
    if overdue and (row.priority == program_models.PriorityEnum.CRITICAL or row.is_rii):
        severity = FindingSeverityEnum.GROUNDING
    elif row.priority == program_models.PriorityEnum.LOW:
        severity = FindingSeverityEnum.ADVISORY
    else:
        # CRITICAL items that are only DUE or under way land here too.
        severity = FindingSeverityEnum.CONDITIONAL
    return AirworthinessFinding(
        severity=severity,
        kind=f"schedule_{row.status.value.lower()}",
        entity_type="maintenance_schedule",
        entity_id=row.schedule_id,
        message=f"{row.trigger_name} ({row.priority.value}) is {row.status.value}.",
    )


def _pilot_report_finding(report: flight_models.PilotReport) -> AirworthinessFinding:
    if report.is_grounding:
        severity = FindingSeverityEnum.GROUNDING
    elif report.severity in _NON_BLOCKING_SEVERITIES:
        severity = FindingSeverityEnum.CONDITIONAL
    else:
        severity = FindingSeverityEnum.ADVISORY
    return AirworthinessFinding(
        severity=severity,
        kind="pilot_report_open",
        entity_type="pilot_report",
        entity_id=report.id,
        message=f"{report.title} ({report.severity.value}) is unresolved.",
    )


def aircraft_airworthiness(
    db: Session,
    aircraft_id: str,
    as_of: Optional[datetime] = None,
) -> AirworthinessReport:
    as_of = as_utc(as_of) or utcnow()
    aircraft = fleet_services.get_aircraft(db, aircraft_id)
    findings: List[AirworthinessFinding] = []

    if aircraft.status in (fleet_models.AircraftStatusEnum.AOG, fleet_models.AircraftStatusEnum.RETIRED):
        findings.append(
            AirworthinessFinding(
                severity=FindingSeverityEnum.GROUNDING,
                kind="aircraft_status",
                entity_type="aircraft",
                entity_id=aircraft.id,
                message=f"Aircraft is {aircraft.status.value}.",
            )
        )

    for segment in fleet_services.open_installations_for_aircraft(db, aircraft.id):
        findings.extend(_component_findings(segment.component))

    for row in schedule_service.project_aircraft_schedules(db, aircraft.id, as_of=as_of):
        finding = _schedule_finding(row)
        if finding is not None:
            findings.append(finding)

    for report in flight_services.list_unresolved_pilot_reports(db, aircraft.id):
        findings.append(_pilot_report_finding(report))

    report = AirworthinessReport(
        entity_type="aircraft",
        entity_id=aircraft.id,
        aircraft_id=aircraft.id,
        status=_rollup(findings),
        evaluated_at=as_of,
        findings=findings,
    )
    if report.status == AirworthinessStatusEnum.GROUNDED:
        logger.info(
            "Aircraft grounded",
            extra={"aircraft_id": aircraft.id, "reasons": [finding.kind for finding in report.grounding_findings]},
        )
    return report


def component_airworthiness(
    db: Session,
    component_id: str,
    as_of: Optional[datetime] = None,
) -> AirworthinessReport:
    """The component's own limits and flags plus schedules currently tracking it."""
    as_of = as_utc(as_of) or utcnow()
    component = fleet_services.get_component(db, component_id)
    findings = _component_findings(component)

    segment = fleet_services._current_segment(db, component.id)
    aircraft_id = segment.aircraft_id if segment else None
    if aircraft_id:
        for row in schedule_service.project_aircraft_schedules(db, aircraft_id, as_of=as_of):
            if row.tracked_component_id != component.id:
                continue
            finding = _schedule_finding(row)
            if finding is not None:
                findings.append(finding)

    return AirworthinessReport(
        entity_type="component",
        entity_id=component.id,
        aircraft_id=aircraft_id,
        status=_rollup(findings),
        evaluated_at=as_of,
        findings=findings,
    )
