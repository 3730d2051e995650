from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, Date, DateTime, Integer, Numeric, String, Time


class Base(DeclarativeBase):
    pass


class RoomType(StrEnum):
    KELO = "kelo"
    FINNISH = "finnish"
    BIO = "bio"
    STEAM = "steam"
    INFRARED = "infrared"


class EmployeeSkill(StrEnum):
    SINGING_BOWL = "singing_bowl"
    WENIK = "wenik"
    HIGH_HEAT = "high_heat"
    AROMATHERAPY = "aromatherapy"
    MEDITATION = "meditation"


class ScentProfile(StrEnum):
    CITRUS = "citrus"
    WOODY = "woody"
    FLORAL = "floral"
    HERBAL = "herbal"


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("name", name="uq_rooms_name"),
        CheckConstraint("capacity >= 1", name="chk_rooms_capacity"),
        CheckConstraint("cooldown_minutes >= 0", name="chk_rooms_cooldown"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    room_type: Mapped[RoomType] = mapped_column(_str_enum(RoomType), nullable=False)
    cooldown_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (CheckConstraint("daily_max_sessions >= 1", name="chk_employees_daily_max"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    certification_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    daily_max_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    skills: Mapped[list["EmployeeSkillAssignment"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class EmployeeSkillAssignment(Base):
    __tablename__ = "employee_skills"

    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), primary_key=True)
    skill: Mapped[EmployeeSkill] = mapped_column(_str_enum(EmployeeSkill), primary_key=True)


class Ingredient(Base):
    __tablename__ = "ingredients"
    __table_args__ = (
        UniqueConstraint("name", name="uq_ingredients_name"),
        CheckConstraint("stock_level >= 0", name="chk_ingredients_stock"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    scent_profile: Mapped[ScentProfile] = mapped_column(_str_enum(ScentProfile), nullable=False)
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class Recipe(Base):
    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    theme: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    steps: Mapped[list["RecipeStep"]] = relationship(
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeStep.position",
    )


class RecipeStep(Base):
    __tablename__ = "recipe_steps"
    __table_args__ = (
        CheckConstraint("duration_seconds >= 0", name="chk_steps_duration"),
        CheckConstraint("heat_intensity BETWEEN 1 AND 10", name="chk_steps_intensity"),
        CheckConstraint("dosage_ml >= 0", name="chk_steps_dosage"),
        UniqueConstraint("recipe_id", "position", name="uq_steps_position"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    heat_intensity: Mapped[int] = mapped_column(Integer, nullable=False)
    dosage_ml: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ingredient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("ingredients.id"), nullable=True)

    recipe: Mapped["Recipe"] = relationship(back_populates="steps")


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (UniqueConstraint("date", name="uq_schedules_date"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    schedule_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    sessions: Mapped[list["InfusionSession"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="InfusionSession.start_time",
    )


class InfusionSession(Base):
    __tablename__ = "infusion_sessions"
    __table_args__ = (
        Index("idx_sessions_schedule", "schedule_id"),
        Index("idx_sessions_employee", "employee_id"),
        Index("idx_sessions_room", "room_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(ForeignKey("schedules.id"), nullable=False)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    recipe_id: Mapped[int] = mapped_column(ForeignKey("recipes.id"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    schedule: Mapped["Schedule"] = relationship(back_populates="sessions")
