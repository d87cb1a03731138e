from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from app.core.database import Base


class NotificationEvent(Base):
    """
    Outbox событий для внешнего компонента уведомлений.

    Пишется в той же транзакции, что и изменение состояния; доставка
    выполняется потребителем outbox и здесь не реализуется.
    """

    __tablename__ = "notification_events"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    recipient_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payload = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False)
    # Выставляется потребителем после доставки
    dispatched_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_notification_events_pending", "dispatched_at", "id"),)

    def __repr__(self):
        return f"<NotificationEvent(id={self.id}, type={self.type}, recipient_id={self.recipient_id})>"


class ActivityEntry(Base):
    """Запись ленты активности группы"""

    __tablename__ = "activity_entries"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True, index=True
    )
    actor_id = Column(Integer, nullable=False)
    type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<ActivityEntry(id={self.id}, group_id={self.group_id}, type={self.type})>"
