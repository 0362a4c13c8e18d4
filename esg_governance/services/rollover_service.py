"""
Rollover Service — carry a period's structure (and optionally its values)
into a new successor period.

Rollover is the only writer of data point lineage links.  For every data
point copied, the six lineage fields are set together on the new row
before it is flushed:

    source_period_id, source_period_name, source_data_point_id,
    rollover_timestamp, rollover_performed_by, rollover_performed_by_name

Sections are matched across periods by ``catalog_code``; copies start over
as editable drafts at version 1.
"""

import logging

from esg_governance.models.reporting import DataPoint, ReportingPeriod, ReportSection
from esg_governance.repositories import get_store
from esg_governance.services import audit_service
from esg_governance.services.change_differ import field_change
from esg_governance.utils.helpers import date_only, utcnow

logger = logging.getLogger(__name__)

# Content fields carried into the successor data point
_COPIED_FIELDS = (
    "type",
    "classification",
    "title",
    "content",
    "value",
    "unit",
    "owner_id",
    "source",
    "information_type",
    "assumptions",
    "completeness_status",
)


def _copy_data_point(data_point: DataPoint, section_id: str, source_period, performed_by, performed_by_name, now):
    values = {name: getattr(data_point, name) for name in _COPIED_FIELDS}
    return DataPoint(
        section_id=section_id,
        review_status="draft",
        source_period_id=source_period.id,
        source_period_name=source_period.name,
        source_data_point_id=data_point.id,
        rollover_timestamp=now,
        rollover_performed_by=performed_by,
        rollover_performed_by_name=performed_by_name,
        **values,
    )


def rollover_period(
    source_period_id: str,
    name: str,
    start_date: str | None,
    end_date: str | None,
    performed_by: str,
    performed_by_name: str,
    copy_data_values: bool = True,
) -> tuple[dict, None] | tuple[None, dict]:
    """Create a successor period from *source_period_id*.

    Args:
        copy_data_values: When False only sections are copied (structure
                          rollover); no lineage links are created.

    Returns:
        ({"period": {...}, "sections_copied": n, "data_points_copied": n,
          "section_map": {old_id: new_id}, "data_point_map": {old_id: new_id}}, None)
        (None, {"error": ..., "status": int}) on failure.
    """
    name = (name or "").strip()
    if not name:
        return None, {"error": "Target period name is required.", "status": 400}
    try:
        start = date_only(start_date)
        end = date_only(end_date)
    except ValueError:
        return None, {"error": "Period dates must be ISO-8601 (YYYY-MM-DD).", "status": 400}
    if start and end and start > end:
        return None, {"error": "Period start date must be before its end date.", "status": 400}

    store = get_store()
    with store.lock:
        source = store.periods.get(source_period_id)
        if source is None:
            return None, {"error": f"Reporting period {source_period_id} not found.", "status": 404}

        now = utcnow()
        target = store.periods.add(ReportingPeriod(
            name=name,
            start_date=start,
            end_date=end,
            source_period_id=source.id,
        ))

        section_map, data_point_map = {}, {}
        for section in store.sections.for_period(source.id):
            copy = store.sections.add(ReportSection(
                period_id=target.id,
                title=section.title,
                catalog_code=section.catalog_code,
                category=section.category,
                description=section.description,
                owner_id=section.owner_id,
                status="draft",
                version_number=1,
            ))
            section_map[section.id] = copy.id
            if not copy_data_values:
                continue
            for data_point in store.data_points.for_section(section.id):
                new_dp = store.data_points.add(_copy_data_point(
                    data_point, copy.id, source, performed_by, performed_by_name, now,
                ))
                data_point_map[data_point.id] = new_dp.id

        audit_service.append_entry(
            user_id=performed_by,
            user_name=performed_by_name,
            action="rollover",
            entity_type="ReportingPeriod",
            entity_id=target.id,
            change_note=f"Rolled over from '{source.name}'",
            changes=[
                field_change("source_period_id", None, source.id),
                field_change("name", None, name),
                field_change("sections_copied", None, len(section_map)),
                field_change("data_points_copied", None, len(data_point_map)),
            ],
        )
        store.commit()

    logger.info(
        "Rolled over period: %d section(s), %d data point(s)",
        len(section_map), len(data_point_map),
        extra={"period_id": target.id, "user_id": performed_by},
    )
    return {
        "period": target.to_dict(),
        "sections_copied": len(section_map),
        "data_points_copied": len(data_point_map),
        "section_map": section_map,
        "data_point_map": data_point_map,
    }, None
