from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class FormModel(Base):
    __tablename__ = "forms"

    id = Column(String, primary_key=True)
    owner_id = Column(String, index=True)
    title = Column(String)
    description = Column(Text, nullable=True)
    slug = Column(String, unique=True, index=True)
    is_published = Column(Integer, default=0)
    expires_at = Column(DateTime, nullable=True)
    fields_json = Column(Text)
    settings_json = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class SubmissionModel(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    form_id = Column(String, index=True)
    data_json = Column(Text)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    submitted_at = Column(DateTime)


class AnalyticsModel(Base):
    __tablename__ = "form_analytics"

    form_id = Column(String, primary_key=True)
    views = Column(Integer, default=0, nullable=False)
    submissions = Column(Integer, default=0, nullable=False)
    conversion_rate = Column(Float, default=0.0, nullable=False)
    average_completion_time = Column(Integer, nullable=True)
    updated_at = Column(DateTime)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    plan = Column(String, default="free")
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
