# src/medichat/models/dashboard.py
import uuid
from sqlalchemy import Column, DateTime, String, Uuid, JSON, UniqueConstraint
from medichat.db.database import Base
from medichat.utils.datetime_utils import utc_now


class PatientDailyDashboard(Base):
    """At most one generated summary per patient and calendar day; regeneration overwrites it"""

    __tablename__ = "patient_daily_dashboards"
    __table_args__ = (UniqueConstraint("patient_id", "date", name="uq_dashboard_patient_date"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    model = Column(String(128), nullable=False)
    dashboard_json = Column(JSON, nullable=False)
    status = Column(String(32), nullable=False, default="generated")

    created_at = Column(DateTime(timezone=True), default=utc_now)
