# app/models/store.py

from sqlalchemy import Boolean, Column, Integer, String, true

from app.db.session import Base


class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, server_default=true())
