from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from app.core.database import Base


class User(Base):
    """Пользователь портала. Таблица ведется внешним приложением, движок только читает"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # admin | teacher | student (см. app.core.permissions.RoleType)
    role = Column(String(20), nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, role={self.role}, name={self.display_name})>"
