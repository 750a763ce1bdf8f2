"""ORM models for projects, characters, scenes and credit profiles."""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

PROJECT_STATUSES = ("draft", "in_progress", "completed", "published")
PAID_PLANS = ("pro", "enterprise")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Project(TimestampMixin, Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), default="Webtoon Project", nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False)
    story: Mapped[str | None] = mapped_column(Text, nullable=True)
    art_style: Mapped[str | None] = mapped_column(Text, nullable=True)
    steps: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    characters: Mapped[list["Character"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    art_style_row: Mapped["ArtStyle | None"] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True, uselist=False
    )
    scenes: Mapped[list["GeneratedScene"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    scene_images: Mapped[list["SceneImage"]] = relationship(
        back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "status": self.status,
            "story": self.story,
            "art_style": self.art_style,
            "steps": self.steps,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ArtStyle(TimestampMixin, Base):
    __tablename__ = "art_styles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    project: Mapped[Project] = relationship(back_populates="art_style_row")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Character(TimestampMixin, Base):
    __tablename__ = "characters"
    __table_args__ = (UniqueConstraint("project_id", "name", name="uq_characters_project_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    art_style: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_path: Mapped[str | None] = mapped_column(String(512), nullable=True)

    project: Mapped[Project] = relationship(back_populates="characters")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "art_style": self.art_style,
            "image_path": self.image_path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class GeneratedScene(TimestampMixin, Base):
    __tablename__ = "generated_scenes"
    __table_args__ = (UniqueConstraint("project_id", "scene_no", name="uq_generated_scenes_project_scene"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    scene_no: Mapped[int] = mapped_column(Integer, nullable=False)
    story_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    scene_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    project: Mapped[Project] = relationship(back_populates="scenes")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "scene_no": self.scene_no,
            "story_text": self.story_text,
            "scene_description": self.scene_description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SceneImage(TimestampMixin, Base):
    __tablename__ = "generated_scene_images"
    __table_args__ = (UniqueConstraint("project_id", "scene_no", name="uq_scene_images_project_scene"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    scene_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("generated_scenes.id", ondelete="SET NULL"), nullable=True
    )
    scene_no: Mapped[int] = mapped_column(Integer, nullable=False)
    image_path: Mapped[str] = mapped_column(String(512), nullable=False)

    project: Mapped[Project] = relationship(back_populates="scene_images")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "scene_id": self.scene_id,
            "scene_no": self.scene_no,
            "image_path": self.image_path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Profile(TimestampMixin, Base):
    """Per-user plan and monthly credit ledger."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    plan: Mapped[str] = mapped_column(String(32), default="free", nullable=False)
    month_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    monthly_base_limit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_bonus_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_plan_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_credits_purchased: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "plan": self.plan,
            "month_start": self.month_start.isoformat() if self.month_start else None,
            "monthly_base_limit": self.monthly_base_limit,
            "monthly_bonus_credits": self.monthly_bonus_credits,
            "monthly_used": self.monthly_used,
            "current_plan_credits": self.current_plan_credits,
            "lifetime_credits_purchased": self.lifetime_credits_purchased,
        }


class StripeEvent(Base):
    """Stripe webhook events already processed, keyed by event id."""

    __tablename__ = "stripe_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
