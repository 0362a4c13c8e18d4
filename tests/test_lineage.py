"""
Tests: period rollover and cross-period lineage.

Covers:
  - rollover copies sections (and optionally data points) into a new period
  - lineage fields are all set together, only by rollover
  - lineage walks back to the origin, nearest ancestor first
  - depth cap, cycles and dangling links
"""

from esg_governance.models import db
from esg_governance.models.audit import AuditLogEntry
from esg_governance.services import data_point_service, lineage_service, reporting_service, rollover_service


def _seed_period(name="FY2024"):
    period, _ = reporting_service.create_period(name, "2024-01-01", "2024-12-31", "user-2", "Admin User")
    section, _ = reporting_service.create_section(
        period.id, "Climate change", "user-2", "Admin User", catalog_code="ENV-001",
    )
    dp, err = data_point_service.create_data_point(
        section.id,
        {"title": "Scope 1 emissions", "content": "Direct emissions", "source": "Invoices", "value": "1200"},
        "user-3",
        "John Smith",
    )
    assert err is None, err
    return period, section, dp


def _rollover(period_id, name, **kw):
    result, err = rollover_service.rollover_period(
        period_id, name, kw.pop("start_date", None), kw.pop("end_date", None), "user-2", "Admin User", **kw,
    )
    assert err is None, err
    return result


# ── Rollover ─────────────────────────────────────────────────────────────────


def test_rollover_copies_sections_and_data_points():
    period, section, dp = _seed_period()

    result = _rollover(period.id, "FY2025", start_date="2025-01-01", end_date="2025-12-31")

    assert result["sections_copied"] == 1
    assert result["data_points_copied"] == 1
    assert result["period"]["source_period_id"] == period.id
    new_section = reporting_service.get_section(result["section_map"][section.id])
    assert new_section.status == "draft"
    assert new_section.version_number == 1
    assert new_section.catalog_code == "ENV-001"


def test_rolled_over_data_point_has_all_lineage_fields():
    period, _, dp = _seed_period()

    result = _rollover(period.id, "FY2025")
    copy = data_point_service.get_data_point(result["data_point_map"][dp.id])

    assert copy.is_rolled_over is True
    assert copy.value == "1200"
    assert copy.review_status == "draft"
    assert copy.source_data_point_id == dp.id
    assert copy.source_period_id == period.id
    assert copy.source_period_name == "FY2024"
    assert copy.rollover_timestamp is not None
    assert copy.rollover_performed_by == "user-2"
    assert copy.rollover_performed_by_name == "Admin User"


def test_original_data_points_have_no_lineage():
    _, _, dp = _seed_period()
    assert dp.is_rolled_over is False
    assert dp.source_period_id is None
    assert dp.rollover_timestamp is None


def test_structure_only_rollover_creates_no_links():
    period, _, _ = _seed_period()

    result = _rollover(period.id, "FY2025", copy_data_values=False)

    assert result["sections_copied"] == 1
    assert result["data_points_copied"] == 0
    assert result["data_point_map"] == {}


def test_rollover_is_audited():
    period, _, _ = _seed_period()
    result = _rollover(period.id, "FY2025")

    entry = AuditLogEntry.query.filter_by(action="rollover").one()

    assert entry.entity_type == "ReportingPeriod"
    assert entry.entity_id == result["period"]["id"]
    assert entry.change_for("data_points_copied")["new_value"] == "1"


def test_rollover_stores_calendar_dates():
    period, _, _ = _seed_period()

    result = _rollover(period.id, "FY2025", start_date="2025-01-01T00:00:00", end_date="2025-12-31T23:59:59Z")

    assert result["period"]["start_date"] == "2025-01-01"
    assert result["period"]["end_date"] == "2025-12-31"


def test_rollover_validation():
    period, _, _ = _seed_period()
    _, err = rollover_service.rollover_period("nope", "FY2025", None, None, "user-2", "Admin User")
    assert err["status"] == 404
    _, err = rollover_service.rollover_period(period.id, "", None, None, "user-2", "Admin User")
    assert err["status"] == 400
    _, err = rollover_service.rollover_period(
        period.id, "FY2025", "2025-12-31", "2025-01-01", "user-2", "Admin User",
    )
    assert err["status"] == 400


# ── Lineage ──────────────────────────────────────────────────────────────────


def test_lineage_of_original_has_no_history():
    _, _, dp = _seed_period()

    lineage = lineage_service.get_cross_period_lineage(dp.id)

    assert lineage["total_periods"] == 1
    assert lineage["previous_versions"] == []
    assert lineage["has_more_history"] is False
    assert lineage["current_version"]["period_name"] == "FY2024"
    assert lineage["current_version"]["is_rolled_over"] is False


def test_lineage_walks_back_to_origin_nearest_first():
    period_24, _, dp_24 = _seed_period()
    r25 = _rollover(period_24.id, "FY2025")
    dp_25 = r25["data_point_map"][dp_24.id]
    data_point_service.update_data_point(dp_25, {"value": "1100"}, "user-3", "John Smith")
    r26 = _rollover(r25["period"]["id"], "FY2026")
    dp_26 = r26["data_point_map"][dp_25]

    lineage = lineage_service.get_cross_period_lineage(dp_26)

    assert lineage["total_periods"] == 3
    assert [v["data_point_id"] for v in lineage["previous_versions"]] == [dp_25, dp_24.id]
    assert [v["period_name"] for v in lineage["previous_versions"]] == ["FY2025", "FY2024"]
    assert [v["value"] for v in lineage["previous_versions"]] == ["1100", "1200"]
    assert [v["is_rolled_over"] for v in lineage["previous_versions"]] == [True, False]
    assert lineage["current_version"]["value"] == "1100"
    assert lineage["current_version"]["rollover_performed_by_name"] == "Admin User"
    assert lineage["has_more_history"] is False


def test_depth_cap_reports_more_history(app):
    period, _, dp = _seed_period()
    r25 = _rollover(period.id, "FY2025")
    r26 = _rollover(r25["period"]["id"], "FY2026")
    dp_26 = r26["data_point_map"][r25["data_point_map"][dp.id]]

    capped = lineage_service.get_cross_period_lineage(dp_26, max_depth=1)
    assert len(capped["previous_versions"]) == 1
    assert capped["has_more_history"] is True

    app.config["LINEAGE_MAX_DEPTH"] = 2
    try:
        configured = lineage_service.get_cross_period_lineage(dp_26)
    finally:
        app.config["LINEAGE_MAX_DEPTH"] = None
    assert len(configured["previous_versions"]) == 2
    assert configured["has_more_history"] is False


def test_cycle_terminates_walk():
    period, _, dp = _seed_period()
    r25 = _rollover(period.id, "FY2025")
    copy = data_point_service.get_data_point(r25["data_point_map"][dp.id])
    dp.source_data_point_id = copy.id
    db.session.commit()

    lineage = lineage_service.get_cross_period_lineage(copy.id)

    assert [v["data_point_id"] for v in lineage["previous_versions"]] == [dp.id]
    assert lineage["total_periods"] == 2


def test_dangling_link_terminates_walk():
    period, _, dp = _seed_period()
    r25 = _rollover(period.id, "FY2025")
    copy = data_point_service.get_data_point(r25["data_point_map"][dp.id])
    copy.source_data_point_id = "deleted-dp"
    db.session.commit()

    lineage = lineage_service.get_cross_period_lineage(copy.id)

    assert lineage["previous_versions"] == []
    assert lineage["current_version"]["is_rolled_over"] is True


def test_lineage_of_unknown_data_point_is_none():
    assert lineage_service.get_cross_period_lineage("nope") is None
