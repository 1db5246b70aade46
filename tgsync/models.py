# tgsync/models.py
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from tgsync.database import Base


class Channel(Base):
    __tablename__ = "channel"
    id = Column(Integer, primary_key=True)
    tg_id = Column(String, unique=True, index=True)
    name = Column(String)
    description = Column(Text)
    verified = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    # NULL until the first sync claims the channel
    updated_at = Column(DateTime(timezone=True), nullable=True)


class Post(Base):
    __tablename__ = "post"
    __table_args__ = (UniqueConstraint("channel_id", "tg_post_id", name="uq_post_channel_tg_post"),)

    id = Column(Integer, primary_key=True)
    tg_post_id = Column(BigInteger, index=True, nullable=False)
    channel_id = Column(Integer, ForeignKey("channel.id"), index=True, nullable=False)
    words_count = Column(Integer, default=0)
    images_count = Column(Integer, default=0)
    videos_count = Column(Integer, default=0)
    voices_count = Column(Integer, default=0)
    duration = Column(Integer, default=0)
    lang = Column(String(8))
    forwarded = Column(Boolean, default=False)
    forwarded_channel_id = Column(Integer, ForeignKey("channel.id"), nullable=True)
    published_at = Column(DateTime(timezone=True), index=True)
    created_at = Column(DateTime(timezone=True), default=func.now())


class Metric(Base):
    __tablename__ = "metric"
    __table_args__ = (Index("ix_metric_entity_type", "entity_type", "entity_id", "type"),)

    id = Column(Integer, primary_key=True)
    entity_type = Column(String(16), nullable=False)
    entity_id = Column(Integer, nullable=False)
    type = Column(String(32), nullable=False)
    value = Column(BigInteger, default=0)
    created_at = Column(DateTime(timezone=True), default=func.now(), index=True)


class ChannelLink(Base):
    __tablename__ = "channel_link"
    __table_args__ = (UniqueConstraint("channel_id", "url", name="uq_channel_link_url"),)

    id = Column(Integer, primary_key=True)
    channel_id = Column(Integer, ForeignKey("channel.id"), index=True, nullable=False)
    url = Column(Text, nullable=False)
    host = Column(String)
    created_at = Column(DateTime(timezone=True), default=func.now())
