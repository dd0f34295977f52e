"""
Deal model — pipeline opportunity with its latest prediction embedded.
"""
import math

from sqlalchemy import Column, Integer, Float, Text, DateTime, JSON
from sqlalchemy.sql import func

from crmscore.database import Base
from crmscore.scoring.types import as_utc


def _iso(value):
    return value.isoformat() if value else None


class Deal(Base):
    __tablename__ = 'deals'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    company = Column(Text, nullable=True)
    value = Column(Float, nullable=False, default=0.0)
    currency = Column(Text, nullable=False, default='USD')
    stage = Column(Text, nullable=False, default='qualification', index=True)
    status = Column(Text, nullable=False, default='open', index=True)
    probability = Column(Integer, nullable=False, default=10)
    expected_close_date = Column(DateTime(timezone=True), nullable=True)
    assigned_to = Column(Text, nullable=True)
    engagement = Column(JSON, default=dict)
    activities = Column(JSON, default=list)

    deal_score = Column(Integer, nullable=False, default=0)
    ai_prediction = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    @property
    def weighted_value(self):
        return (self.value or 0.0) * ((self.probability or 0) / 100)

    def days_until_close(self, now):
        close = as_utc(self.expected_close_date)
        if close is None:
            return None
        return math.ceil((close - as_utc(now)).total_seconds() / 86400)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'company': self.company,
            'value': self.value,
            'currency': self.currency,
            'stage': self.stage,
            'status': self.status,
            'probability': self.probability,
            'weighted_value': self.weighted_value,
            'expected_close_date': _iso(self.expected_close_date),
            'assigned_to': self.assigned_to,
            'engagement': self.engagement or {},
            'activity_count': len(self.activities or []),
            'deal_score': self.deal_score,
            'ai_prediction': self.ai_prediction,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
