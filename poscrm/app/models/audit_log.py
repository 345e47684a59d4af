"""
Audit Log Database Model.

Tracks admin actions on orders, clients, products and the debt ledger.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from poscrm.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - ORDER_CREATED / ORDER_UPDATED / ORDER_DELETED / ORDER_STATUS_CHANGED
    - DEBT_ADJUSTED / DEBT_LOGS_PURGED
    - CLIENT_CREATED / CLIENT_UPDATED / CLIENT_DELETED
    - PRODUCT_CREATED / PRODUCT_UPDATED / PRODUCT_DELETED
    - LOGIN_SUCCESS / LOGIN_FAILED / LOGOUT
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(255), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What the action was about
    target_type = Column(String(50), nullable=True)
    target_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, target={self.target_type}:{self.target_id})>"
