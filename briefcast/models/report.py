"""
Source report model.

Reports are written by the report generation side of the system; the
podcast pipeline only reads them.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, JSON

from briefcast.models.podcast import Base


REPORT_STATUS_COMPLETED = 'completed'


class Report(Base):
    """A generated text report that a podcast can be made from."""
    __tablename__ = 'reports'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    workflow_type = Column(String(50), nullable=True)
    generated_content = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_completed(self) -> bool:
        return (self.status or '').lower() == REPORT_STATUS_COMPLETED

    def __repr__(self):
        return f'<Report {self.id} status={self.status}>'
