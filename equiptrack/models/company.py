from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, new_id, utc_timestamp


class Company(Base):
    __tablename__ = "companies"

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False, default=utc_timestamp)


class User(Base):
    """A member of a company; only the fields lifecycle attribution needs."""

    __tablename__ = "users"

    id = Column(Text, primary_key=True, default=new_id)
    company_id = Column(Text, ForeignKey("companies.id"), nullable=True, index=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False, default=utc_timestamp)

    company = relationship("Company", lazy="joined")
