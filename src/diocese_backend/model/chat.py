from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func
from sqlalchemy.orm import relationship

from .base import Base


class Chat(Base):
    __tablename__ = 'chats'

    id = Column(String(36), primary_key=True)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100))
    messages = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())

    user = relationship('User', back_populates='chats')
