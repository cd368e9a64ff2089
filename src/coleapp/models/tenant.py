"""Per-tenant schema models -- tables replicated into each tenant's schema.

These models use the placeholder schema="tenant" via TenantBase.metadata.
At runtime, schema_translate_map remaps "tenant" to the actual tenant schema
(e.g., "tenant_colegio_sur"). The canonical copy lives in the template schema
and is replicated table by table by the SchemaProvisioner.

Primary keys are client-generated UUIDs so replicated tables never share a
sequence with the template.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.coleapp.core.database import TenantBase


class _Identified:
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Organization ────────────────────────────────────────────────────────────


class School(_Identified, TenantBase):
    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    campuses: Mapped[list[Campus]] = relationship(back_populates="school")


class Campus(_Identified, TenantBase):
    __tablename__ = "campuses"

    school_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.schools.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_main: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))

    school: Mapped[School] = relationship(back_populates="campuses")


class Location(_Identified, TenantBase):
    __tablename__ = "locations"

    campus_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.campuses.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)


# ── People ──────────────────────────────────────────────────────────────────


class Person(_Identified, TenantBase):
    """Identity shared by students, parents, and teachers."""

    __tablename__ = "persons"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    document_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)  # auth provider uid


class Student(_Identified, TenantBase):
    __tablename__ = "students"

    person_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))
    campus_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.campuses.id"))
    enrollment_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))


class Parent(_Identified, TenantBase):
    __tablename__ = "parents"

    person_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))
    occupation: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Teacher(_Identified, TenantBase):
    __tablename__ = "teachers"

    person_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))
    campus_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.campuses.id"))
    specialty: Mapped[str | None] = mapped_column(String(100), nullable=True)


class SchoolClass(_Identified, TenantBase):
    __tablename__ = "classes"

    campus_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.campuses.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    school_year: Mapped[int | None] = mapped_column(Integer, nullable=True)


class FamilyRelationship(_Identified, TenantBase):
    __tablename__ = "family_relationships"
    __table_args__ = (
        UniqueConstraint("student_id", "parent_id", name="uq_family_student_parent"),
        {"schema": "tenant"},
    )

    student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.students.id", ondelete="CASCADE"))
    parent_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.parents.id", ondelete="CASCADE"))
    relationship_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_primary_contact: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    can_pick_up: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))


class StudentClass(_Identified, TenantBase):
    __tablename__ = "student_classes"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", name="uq_student_class"),
        {"schema": "tenant"},
    )

    student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.students.id", ondelete="CASCADE"))
    class_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.classes.id", ondelete="CASCADE"))


class TeacherClass(_Identified, TenantBase):
    __tablename__ = "teacher_classes"
    __table_args__ = (
        UniqueConstraint("teacher_id", "class_id", name="uq_teacher_class"),
        {"schema": "tenant"},
    )

    teacher_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.teachers.id", ondelete="CASCADE"))
    class_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.classes.id", ondelete="CASCADE"))
    subject: Mapped[str | None] = mapped_column(String(100), nullable=True)


# ── Communication ───────────────────────────────────────────────────────────


class News(_Identified, TenantBase):
    __tablename__ = "news"

    campus_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tenant.campuses.id"), nullable=True)
    author_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class NewsTarget(_Identified, TenantBase):
    """Audience of a news item: a class, a campus, or everyone."""

    __tablename__ = "news_targets"

    news_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.news.id", ondelete="CASCADE"))
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)


class NewsRead(_Identified, TenantBase):
    __tablename__ = "news_reads"
    __table_args__ = (
        UniqueConstraint("news_id", "person_id", name="uq_news_read"),
        {"schema": "tenant"},
    )

    news_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.news.id", ondelete="CASCADE"))
    person_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))


class Event(_Identified, TenantBase):
    __tablename__ = "events"

    campus_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.campuses.id"))
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tenant.locations.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    start_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_datetime: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_attendees: Mapped[int | None] = mapped_column(Integer, nullable=True)
    registration_required: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    price: Mapped[float] = mapped_column(Float, default=0, server_default=text("0"))


class EventRegistration(_Identified, TenantBase):
    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "person_id", name="uq_event_registration"),
        {"schema": "tenant"},
    )

    event_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.events.id", ondelete="CASCADE"))
    person_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))
    guests: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(String(20), default="confirmed", server_default=text("'confirmed'"))


class Message(_Identified, TenantBase):
    __tablename__ = "messages"

    sender_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id"))
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    parent_message_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tenant.messages.id", ondelete="SET NULL"), nullable=True
    )


class MessageRecipient(_Identified, TenantBase):
    __tablename__ = "message_recipients"

    message_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.messages.id", ondelete="CASCADE"))
    recipient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id", ondelete="CASCADE"))
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ── Operations ──────────────────────────────────────────────────────────────


class ExitPermission(_Identified, TenantBase):
    __tablename__ = "exit_permissions"

    student_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.students.id", ondelete="CASCADE"))
    requested_by_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tenant.persons.id"))
    authorized_name: Mapped[str] = mapped_column(String(255), nullable=False)
    authorized_doc: Mapped[str | None] = mapped_column(String(50), nullable=True)
    relationship_to_student: Mapped[str | None] = mapped_column(String(100), nullable=True)
    exit_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default=text("'pending'"))


class Report(_Identified, TenantBase):
    __tablename__ = "reports"

    student_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tenant.students.id"), nullable=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("tenant.classes.id"), nullable=True)
    report_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    period: Mapped[str | None] = mapped_column(String(50), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_final: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
