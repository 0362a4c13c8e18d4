"""
Reporting Models — periods, sections, section versions, data points.

Only the workflow- and lineage-relevant shape of the reporting domain is
modelled here.  Section ``status``/``version_number`` are owned by
section_workflow_service; data point lineage columns are written only by
rollover_service.
"""

import json
import uuid
from datetime import datetime, timezone

from esg_governance.models import db
from esg_governance.utils.helpers import iso


def _uuid() -> str:
    return str(uuid.uuid4())


# ── Constants ────────────────────────────────────────────────────────────────

SECTION_STATUSES = ("draft", "submitted-for-approval", "approved", "changes-requested")
EDITABLE_SECTION_STATUSES = frozenset({"draft", "changes-requested"})

INFORMATION_TYPES = ("fact", "estimate", "declaration", "plan")
COMPLETENESS_STATUSES = ("missing", "incomplete", "complete", "not applicable")
REVIEW_STATUSES = ("draft", "ready-for-review", "approved", "changes-requested")


# ═══════════════════════════════════════════════════════════════
# 1. REPORTING PERIODS
# ═══════════════════════════════════════════════════════════════
class ReportingPeriod(db.Model):
    __tablename__ = "reporting_periods"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.String(10), nullable=True)
    end_date = db.Column(db.String(10), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active")
    # Set when the period was produced by a rollover
    source_period_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    sections = db.relationship("ReportSection", back_populates="period", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "status": self.status,
            "source_period_id": self.source_period_id,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<ReportingPeriod {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. REPORT SECTIONS
# ═══════════════════════════════════════════════════════════════
class ReportSection(db.Model):
    __tablename__ = "report_sections"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    period_id = db.Column(
        db.String(64), db.ForeignKey("reporting_periods.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(300), nullable=False)
    # Stable across periods, e.g. ENV-001
    catalog_code = db.Column(db.String(30), nullable=True)
    category = db.Column(db.String(30), nullable=True)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(db.String(64), nullable=True)

    # Workflow
    status = db.Column(db.String(30), nullable=False, default="draft")
    version_number = db.Column(db.Integer, nullable=False, default=1)
    submitted_for_approval_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_for_approval_by = db.Column(db.String(64), nullable=True)
    submitted_for_approval_by_name = db.Column(db.String(200), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(64), nullable=True)
    approved_by_name = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    period = db.relationship("ReportingPeriod", back_populates="sections")
    data_points = db.relationship("DataPoint", back_populates="section", lazy="dynamic")
    versions = db.relationship(
        "SectionVersion", back_populates="section", lazy="dynamic",
        order_by="SectionVersion.id",
    )

    @property
    def is_locked(self) -> bool:
        return self.status not in EDITABLE_SECTION_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "period_id": self.period_id,
            "title": self.title,
            "catalog_code": self.catalog_code,
            "category": self.category,
            "description": self.description,
            "owner_id": self.owner_id,
            "status": self.status,
            "version_number": self.version_number,
            "is_locked": self.is_locked,
            "submitted_for_approval_at": iso(self.submitted_for_approval_at),
            "submitted_for_approval_by": self.submitted_for_approval_by,
            "submitted_for_approval_by_name": self.submitted_for_approval_by_name,
            "approved_at": iso(self.approved_at),
            "approved_by": self.approved_by,
            "approved_by_name": self.approved_by_name,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ReportSection {self.id}: {self.title} [{self.status} v{self.version_number}]>"


# ═══════════════════════════════════════════════════════════════
# 3. SECTION VERSIONS (approval snapshots)
# ═══════════════════════════════════════════════════════════════
class SectionVersion(db.Model):
    """Immutable snapshot of a section and its data points, captured on approval."""

    __tablename__ = "section_versions"

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(
        db.String(64), db.ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False
    )
    version_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(30), nullable=False, default="approved")
    title = db.Column(db.String(300), nullable=False)
    snapshot_json = db.Column(db.Text, nullable=False, default="{}")
    approved_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    approved_by = db.Column(db.String(64), nullable=False)
    approved_by_name = db.Column(db.String(200), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("section_id", "version_number", name="uq_section_version"),
    )

    section = db.relationship("ReportSection", back_populates="versions")

    @property
    def snapshot(self) -> dict:
        try:
            return json.loads(self.snapshot_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "version_number": self.version_number,
            "status": self.status,
            "title": self.title,
            "snapshot": self.snapshot,
            "approved_at": iso(self.approved_at),
            "approved_by": self.approved_by,
            "approved_by_name": self.approved_by_name,
        }

    def __repr__(self):
        return f"<SectionVersion {self.section_id} v{self.version_number}>"


# ═══════════════════════════════════════════════════════════════
# 4. DATA POINTS
# ═══════════════════════════════════════════════════════════════
class DataPoint(db.Model):
    __tablename__ = "data_points"

    id = db.Column(db.String(64), primary_key=True, default=_uuid)
    section_id = db.Column(
        db.String(64), db.ForeignKey("report_sections.id", ondelete="CASCADE"), nullable=False
    )
    type = db.Column(db.String(30), nullable=False, default="narrative")
    classification = db.Column(db.String(50), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    value = db.Column(db.String(200), nullable=True)
    unit = db.Column(db.String(50), nullable=True)
    owner_id = db.Column(db.String(64), nullable=True)
    source = db.Column(db.String(300), nullable=False, default="")
    information_type = db.Column(db.String(20), nullable=False, default="fact")
    assumptions = db.Column(db.Text, nullable=True)
    completeness_status = db.Column(db.String(20), nullable=False, default="incomplete")
    review_status = db.Column(db.String(30), nullable=False, default="draft")
    deadline = db.Column(db.String(10), nullable=True)

    # Review trail
    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    change_request_comments = db.Column(db.Text, nullable=True)

    # Lineage: populated only by rollover
    source_period_id = db.Column(db.String(64), nullable=True)
    source_period_name = db.Column(db.String(200), nullable=True)
    source_data_point_id = db.Column(db.String(64), nullable=True, index=True)
    rollover_timestamp = db.Column(db.DateTime(timezone=True), nullable=True)
    rollover_performed_by = db.Column(db.String(64), nullable=True)
    rollover_performed_by_name = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    section = db.relationship("ReportSection", back_populates="data_points")

    @property
    def is_rolled_over(self) -> bool:
        return self.source_data_point_id is not None

    def to_dict(self):
        return {
            "id": self.id,
            "section_id": self.section_id,
            "type": self.type,
            "classification": self.classification,
            "title": self.title,
            "content": self.content,
            "value": self.value,
            "unit": self.unit,
            "owner_id": self.owner_id,
            "source": self.source,
            "information_type": self.information_type,
            "assumptions": self.assumptions,
            "completeness_status": self.completeness_status,
            "review_status": self.review_status,
            "deadline": self.deadline,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": iso(self.reviewed_at),
            "change_request_comments": self.change_request_comments,
            "source_period_id": self.source_period_id,
            "source_period_name": self.source_period_name,
            "source_data_point_id": self.source_data_point_id,
            "rollover_timestamp": iso(self.rollover_timestamp),
            "rollover_performed_by": self.rollover_performed_by,
            "rollover_performed_by_name": self.rollover_performed_by_name,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<DataPoint {self.id}: {self.title}>"
