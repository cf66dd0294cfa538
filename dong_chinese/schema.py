"""ORM table definitions: accounts, sessions, settings and the character dictionary."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dong_chinese.db import Base, new_id, utcnow

JSONValue = JSON(none_as_null=True)


# --- accounts ---------------------------------------------------------------


class User(Base):
    __tablename__ = "user"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    username: Mapped[str | None] = mapped_column(Text, unique=True)
    display_username: Mapped[str | None] = mapped_column(Text)
    image: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Account(Base):
    """A way to sign in: a password credential or a linked social provider."""

    __tablename__ = "account"
    __table_args__ = (UniqueConstraint("provider_id", "account_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(Text, nullable=False)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    password: Mapped[str | None] = mapped_column(Text)
    access_token: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class AuthSession(Base):
    __tablename__ = "session"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class Verification(Base):
    """One-time tokens: magic links, password resets, email verification."""

    __tablename__ = "verification"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    identifier: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserEmail(Base):
    """Secondary email addresses. The primary address lives on user.email."""

    __tablename__ = "user_email"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class UserPermission(Base):
    __tablename__ = "user_permission"
    __table_args__ = (UniqueConstraint("user_id", "permission"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    permission: Mapped[str] = mapped_column(Text, nullable=False)


class UserSettingsRow(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    theme: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AnonymousSession(Base):
    __tablename__ = "anonymous_session"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


# --- dictionary -------------------------------------------------------------


class CharDataMixin:
    """Character data columns shared by char_base and char_manual."""

    codepoint: Mapped[str | None] = mapped_column(Text)

    # Dong Chinese curated data
    gloss: Mapped[str | None] = mapped_column(Text)
    hint: Mapped[str | None] = mapped_column(Text)
    original_meaning: Mapped[str | None] = mapped_column(Text)
    stroke_count_simp: Mapped[int | None] = mapped_column(Integer)
    stroke_count_trad: Mapped[int | None] = mapped_column(Integer)
    is_verified: Mapped[bool | None] = mapped_column(Boolean)
    components: Mapped[list | None] = mapped_column(JSONValue)
    custom_sources: Mapped[list | None] = mapped_column(JSONValue)

    # Variant forms
    simplified_variants: Mapped[list | None] = mapped_column(JSONValue)
    traditional_variants: Mapped[list | None] = mapped_column(JSONValue)
    variant_of: Mapped[str | None] = mapped_column(Text)

    # Jun Da character frequency (modern corpus)
    jun_da_rank: Mapped[int | None] = mapped_column(Integer)
    jun_da_frequency: Mapped[int | None] = mapped_column(Integer)
    jun_da_per_million: Mapped[float | None] = mapped_column(Float)

    # SUBTLEX-CH character frequency (film subtitles)
    subtlex_rank: Mapped[int | None] = mapped_column(Integer)
    subtlex_count: Mapped[int | None] = mapped_column(Integer)
    subtlex_per_million: Mapped[float | None] = mapped_column(Float)
    subtlex_context_diversity: Mapped[int | None] = mapped_column(Integer)

    # Stroke order and component-to-stroke fragment maps per variant
    stroke_data_simp: Mapped[dict | None] = mapped_column(JSONValue)
    stroke_data_trad: Mapped[dict | None] = mapped_column(JSONValue)
    fragments_simp: Mapped[list | None] = mapped_column(JSONValue)
    fragments_trad: Mapped[list | None] = mapped_column(JSONValue)

    historical_images: Mapped[list | None] = mapped_column(JSONValue)
    historical_pronunciations: Mapped[list | None] = mapped_column(JSONValue)

    # 说文解字
    shuowen_explanation: Mapped[str | None] = mapped_column(Text)
    shuowen_pronunciation: Mapped[str | None] = mapped_column(Text)
    shuowen_pinyin: Mapped[str | None] = mapped_column(Text)

    pinyin_frequencies: Mapped[list | None] = mapped_column(JSONValue)
    pinyin: Mapped[list | None] = mapped_column(JSONValue)


CHAR_DATA_COLUMNS = (
    "codepoint",
    "gloss",
    "hint",
    "original_meaning",
    "stroke_count_simp",
    "stroke_count_trad",
    "is_verified",
    "components",
    "custom_sources",
    "simplified_variants",
    "traditional_variants",
    "variant_of",
    "jun_da_rank",
    "jun_da_frequency",
    "jun_da_per_million",
    "subtlex_rank",
    "subtlex_count",
    "subtlex_per_million",
    "subtlex_context_diversity",
    "stroke_data_simp",
    "stroke_data_trad",
    "fragments_simp",
    "fragments_trad",
    "historical_images",
    "historical_pronunciations",
    "shuowen_explanation",
    "shuowen_pronunciation",
    "shuowen_pinyin",
    "pinyin_frequencies",
    "pinyin",
)


class CharBase(CharDataMixin, Base):
    """Materialized character data combined from the imported sources."""

    __tablename__ = "char_base"
    __table_args__ = (
        Index("char_base_jun_da_rank_idx", "jun_da_rank"),
        Index("char_base_subtlex_rank_idx", "subtlex_rank"),
        Index("char_base_stroke_count_simp_idx", "stroke_count_simp"),
    )

    character: Mapped[str] = mapped_column(Text, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class CharManual(CharDataMixin, Base):
    """A user edit to one character, moderated as pending / approved / rejected."""

    __tablename__ = "char_manual"
    __table_args__ = (
        Index("char_manual_character_created_idx", "character", "created_at"),
        Index("char_manual_status_idx", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    character: Mapped[str] = mapped_column(Text, nullable=False)
    # Null on legacy rows imported before change tracking existed.
    changed_fields: Mapped[list | None] = mapped_column(JSONValue)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    edited_by: Mapped[str | None] = mapped_column(Text)
    anonymous_session_id: Mapped[str | None] = mapped_column(Text)
    edit_comment: Mapped[str] = mapped_column(Text, nullable=False)
    reviewed_by: Mapped[str | None] = mapped_column(Text)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    review_comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
