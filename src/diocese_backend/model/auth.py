from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func, text
from sqlalchemy.orm import relationship

from .base import Base


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, index=True)
    username = Column(String(255), unique=True)
    email = Column(String(320), unique=True, nullable=False)
    encrypted_password = Column(String(255), nullable=False, server_default=text("''"))
    first_name = Column(String(255))
    last_name = Column(String(255))
    # external role code, see permissions.roles.ExternalRole
    role = Column(Integer)
    diocese_id = Column(ForeignKey('dioceses.id', ondelete='SET NULL'), index=True)
    testing_center_id = Column(ForeignKey('testing_centers.id', ondelete='SET NULL'), index=True)
    deactivate = Column(Boolean, nullable=False, server_default=text("false"))
    sign_in_count = Column(Integer, nullable=False, server_default=text("0"))
    current_sign_in_at = Column(DateTime(True))
    last_sign_in_at = Column(DateTime(True))
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())

    # Relationships
    diocese = relationship('Diocese', back_populates='users')
    testing_center = relationship('TestingCenter', back_populates='users')
    sessions = relationship('Session', back_populates='user', uselist=True, lazy='select')
    chats = relationship('Chat', back_populates='user', uselist=True, lazy='select')


class Session(Base):
    __tablename__ = 'sessions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(255), nullable=False, unique=True)
    expires_at = Column(DateTime(True), nullable=False)
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())

    user = relationship('User', back_populates='sessions')
