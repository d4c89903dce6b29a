"""
Lead model — one scraped business listing, mirroring the hosted `leads` table.
"""
import uuid

from sqlalchemy import Column, Integer, Float, Text, DateTime, Index
from sqlalchemy.sql import func

from leadintel.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_name = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    website = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)  # two-letter code
    service_type = Column(Text, nullable=True)  # raw category as scraped
    rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=True)
    google_maps_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('ix_leads_city_state', 'city', 'state'),
        Index('ix_leads_service_type', 'service_type'),
    )

    def to_dict(self, columns=None):
        """Row as the REST API returns it; `columns` limits the keys like `select=`."""
        data = {
            'id': self.id,
            'company_name': self.company_name,
            'phone': self.phone,
            'email': self.email,
            'website': self.website,
            'city': self.city,
            'state': self.state,
            'service_type': self.service_type,
            'rating': self.rating,
            'review_count': self.review_count,
            'google_maps_url': self.google_maps_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if columns is None or '*' in columns:
            return data
        return {key: data[key] for key in columns if key in data}
