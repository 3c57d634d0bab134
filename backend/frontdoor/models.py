from datetime import datetime

from sqlalchemy import Integer, String, LargeBinary, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .db import Base

class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=True)
    image: Mapped[str] = mapped_column(String(1024), nullable=True)
    user_handle: Mapped[bytes] = mapped_column(LargeBinary(64), unique=True, nullable=False)
    registered_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    credentials = relationship("Credential", back_populates="user", cascade="all, delete-orphan")

class Credential(Base):
    __tablename__ = "credentials"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    credential_id: Mapped[bytes] = mapped_column(LargeBinary, unique=True, nullable=False)
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)  # COSE key, CBOR encoded
    sign_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    aaguid: Mapped[str] = mapped_column(String(64), nullable=True)
    transports: Mapped[str] = mapped_column(String(255), nullable=True)  # comma-separated
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_used_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    user = relationship("User", back_populates="credentials")
