"""ORM model for audio projects and their asset pointers."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from app.models.base import Base


class Project(Base):
    """
    Uploaded audio recording with AI analysis text and an optional cover.

    Asset pointers come in pairs per slot (audio, cover). A non-null
    *_object_key means the asset lives in the remote object store and *_url is
    its public URL; a null key means *_url is an /uploads/... path on local
    disk or, for covers only, an external URL that was never captured.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    audio_url = Column(Text, nullable=False)
    audio_object_key = Column(Text, nullable=True)
    transcription = Column(Text, nullable=True)
    emotional_analysis = Column(Text, nullable=True)
    cover_url = Column(Text, nullable=True)
    cover_object_key = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
