"""
Reporting Service — periods and sections.

Period and section CRUD is plain record-keeping around the governance
core; it exists so that workflow, access and lineage have something to
govern.  Creation is audited like every other mutation.
"""

import logging

from esg_governance.models.reporting import ReportingPeriod, ReportSection
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import field_change
from esg_governance.utils.helpers import date_only

logger = logging.getLogger(__name__)


def create_period(
    name: str,
    start_date: str | None,
    end_date: str | None,
    created_by: str,
    created_by_name: str,
) -> tuple[ReportingPeriod, None] | tuple[None, dict]:
    name = (name or "").strip()
    if not name:
        return None, {"error": "Period name is required.", "status": 400}
    try:
        start, end = date_only(start_date), date_only(end_date)
    except ValueError:
        return None, {"error": "Period dates must be ISO-8601 (YYYY-MM-DD).", "status": 400}
    # YYYY-MM-DD strings order chronologically
    if start and end and start > end:
        return None, {"error": "Period start date must be before its end date.", "status": 400}

    store = get_store()
    with store.lock:
        period = store.periods.add(ReportingPeriod(
            name=name, start_date=start, end_date=end,
        ))
        audit_service.append_entry(
            user_id=created_by,
            user_name=created_by_name,
            action="create",
            entity_type="ReportingPeriod",
            entity_id=period.id,
            changes=[
                field_change("name", None, name),
                field_change("start_date", None, start),
                field_change("end_date", None, end),
            ],
        )
        store.commit()

    logger.info("Created reporting period", extra={"period_id": period.id})
    return period, None


def create_section(
    period_id: str,
    title: str,
    created_by: str,
    created_by_name: str,
    *,
    catalog_code: str | None = None,
    category: str | None = None,
    description: str | None = None,
    owner_id: str | None = None,
) -> tuple[ReportSection, None] | tuple[None, dict]:
    title = (title or "").strip()
    if not title:
        return None, {"error": "Section title is required.", "status": 400}

    store = get_store()
    with store.lock:
        if store.periods.get(period_id) is None:
            return None, {"error": f"Reporting period {period_id} not found.", "status": 404}
        if owner_id and store.users.get(owner_id) is None:
            return None, {"error": f"Owner {owner_id} not found.", "status": 400}

        section = store.sections.add(ReportSection(
            period_id=period_id,
            title=title,
            catalog_code=catalog_code,
            category=category,
            description=description,
            owner_id=owner_id,
            status="draft",
            version_number=1,
        ))
        audit_service.append_entry(
            user_id=created_by,
            user_name=created_by_name,
            action="create",
            entity_type="ReportSection",
            entity_id=section.id,
            changes=[
                field_change("title", None, title),
                field_change("owner_id", None, owner_id),
                field_change("status", None, "draft"),
            ],
        )
        store.commit()

    logger.info("Created section", extra={"section_id": section.id, "period_id": period_id})
    return section, None


def get_section(section_id: str) -> ReportSection | None:
    return get_store().sections.get(section_id)


def list_sections(period_id: str | None = None) -> list[ReportSection]:
    store = get_store()
    with store.lock:
        return store.sections.for_period(period_id)
