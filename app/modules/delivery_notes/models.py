from app.database.database import Base
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Integer, Text, Enum, Date, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import BaseMixin, AuditMixin
import enum


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"


# Transiciones legales de estado del remito
TRANSITIONS = {
    DeliveryStatus.PENDING: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED, DeliveryStatus.CANCELLED},
    DeliveryStatus.RETURNED: {DeliveryStatus.PENDING},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
}


class DeliveryNote(Base, BaseMixin, AuditMixin):
    __tablename__ = "delivery_notes"

    number = Column(String(50), nullable=False)
    issue_date = Column(Date, nullable=False, default=date.today)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    delivery_address = Column(String(255), nullable=False)
    courier = Column(String(100), nullable=True)
    status = Column(Enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING, index=True)

    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    receiver_name = Column(String(150), nullable=True)       # solo en delivered
    receiver_document = Column(String(20), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)  # solo en cancelled

    notes = Column(Text, nullable=True)

    sale = relationship("Sale")
    customer = relationship("Customer")
    items = relationship(
        "DeliveryNoteItem", back_populates="delivery_note", cascade="all, delete-orphan",
        order_by="DeliveryNoteItem.position"
    )

    __table_args__ = (
        UniqueConstraint("number", name="uq_delivery_notes_number"),
    )

    @property
    def is_partial(self) -> bool:
        return any(item.quantity_delivered < item.quantity_requested for item in self.items)


class DeliveryNoteItem(Base):
    __tablename__ = "delivery_note_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    delivery_note_id = Column(
        Uuid(as_uuid=True), ForeignKey("delivery_notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    sale_item_id = Column(Uuid(as_uuid=True), ForeignKey("sale_items.id"), nullable=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True)
    code = Column(String(50), nullable=True)
    description = Column(String(255), nullable=False)
    quantity_requested = Column(Numeric(12, 2), nullable=False)
    quantity_delivered = Column(Numeric(12, 2), nullable=False, default=0)

    delivery_note = relationship("DeliveryNote", back_populates="items")
