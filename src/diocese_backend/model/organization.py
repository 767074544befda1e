from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from .base import Base


class Diocese(Base):
    __tablename__ = 'dioceses'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    full_name = Column(String(1024))
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())

    # Relationships
    testing_centers = relationship('TestingCenter', back_populates='diocese', uselist=True, lazy='select', cascade='all, delete-orphan')
    users = relationship('User', back_populates='diocese', uselist=True, lazy='select')


class TestingCenter(Base):
    __tablename__ = 'testing_centers'
    __table_args__ = (
        UniqueConstraint('name', 'diocese_id', name='testing_centers_name_diocese_id_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    address = Column(String(1024))
    diocese_id = Column(ForeignKey('dioceses.id', ondelete='CASCADE'), nullable=False, index=True)
    created_at = Column(DateTime(True), nullable=False, server_default=func.now())

    diocese = relationship('Diocese', back_populates='testing_centers')
    users = relationship('User', back_populates='testing_center', uselist=True, lazy='select')
