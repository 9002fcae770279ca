from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from imperium.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    name = Column(Text)
    email = Column(Text, unique=True)
    role = Column(Text, nullable=False, default="user")  # user, admin, superadmin
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
