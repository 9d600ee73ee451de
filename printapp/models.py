from datetime import datetime

from printapp.extensions import db
from printapp.records import (
    ConversionStatus,
    ConvertedOperation,
    Machine,
    OrderRecord,
    OrderStatus,
)


class OrderFieldsMixin:
    """Columns shared by the staging table and the permanent order table."""

    order_number = db.Column(db.String, nullable=False, default="", index=True)
    doc_type = db.Column(db.String, nullable=False, default="")
    item_code = db.Column(db.String, nullable=False, default="", index=True)
    item_name = db.Column(db.String, nullable=False, default="")
    quantity = db.Column(db.Float, nullable=False, default=0)
    delivery_date = db.Column(db.String, nullable=False, default="")
    plate_count = db.Column(db.String, nullable=False, default="")
    designer = db.Column(db.String, nullable=False, default="")
    customer = db.Column(db.String, nullable=False, default="")
    handler = db.Column(db.String, nullable=False, default="")
    issuer = db.Column(db.String, nullable=False, default="")
    status = db.Column(db.String, nullable=False, default=OrderStatus.PENDING)
    log_msg = db.Column(db.Text, nullable=False, default="")
    error_reason = db.Column(db.Text, nullable=False, default="")

    def to_record(self) -> OrderRecord:
        return OrderRecord(
            order_number=self.order_number or "",
            doc_type=self.doc_type or "",
            item_code=self.item_code or "",
            item_name=self.item_name or "",
            quantity=self.quantity or 0.0,
            delivery_date=self.delivery_date or "",
            plate_count=self.plate_count or "",
            designer=self.designer or "",
            customer=self.customer or "",
            handler=self.handler or "",
            issuer=self.issuer or "",
            status=self.status or OrderStatus.PENDING,
            log_msg=self.log_msg or "",
            error_reason=self.error_reason or "",
            id=self.id,
        )

    def apply_record(self, record: OrderRecord) -> None:
        self.order_number = record.order_number
        self.doc_type = record.doc_type
        self.item_code = record.item_code
        self.item_name = record.item_name
        self.quantity = record.quantity
        self.delivery_date = record.delivery_date
        self.plate_count = record.plate_count
        self.designer = record.designer
        self.customer = record.customer
        self.handler = record.handler
        self.issuer = record.issuer
        self.status = record.status
        self.log_msg = record.log_msg
        self.error_reason = record.error_reason

    @classmethod
    def from_record(cls, record: OrderRecord, **extra):
        row = cls(**extra)
        row.apply_record(record)
        return row


class StagedOrder(OrderFieldsMixin, db.Model):
    __tablename__ = "temp_order"

    id = db.Column(db.Integer, primary_key=True)
    matched_route_id = db.Column(db.String, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        data = self.to_record().as_dict()
        data["matched_route_id"] = self.matched_route_id
        data["status_label"] = OrderStatus.LABELS.get(self.status, self.status)
        return data

    def __repr__(self):
        return f"<StagedOrder {self.order_number} {self.item_code} status={self.status}>"


class DailyOrder(OrderFieldsMixin, db.Model):
    __tablename__ = "daily_order"

    id = db.Column(db.Integer, primary_key=True)
    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    conversion_status = db.Column(
        db.String, nullable=False, default=ConversionStatus.PENDING, index=True
    )
    conversion_note = db.Column(db.Text, nullable=True)
    conversion_claimed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    operations = db.relationship(
        "StationTimeSummary",
        back_populates="source_order",
        order_by="StationTimeSummary.sequence",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        data = self.to_record().as_dict()
        data.update(
            {
                "is_converted": self.is_converted,
                "conversion_status": self.conversion_status,
                "conversion_note": self.conversion_note,
                "created_at": self.created_at.isoformat() if self.created_at else None,
            }
        )
        return data

    def __repr__(self):
        return (
            f"<DailyOrder {self.order_number} converted={self.is_converted} "
            f"conversion={self.conversion_status}>"
        )


class ItemRoute(db.Model):
    __tablename__ = "item_route"

    id = db.Column(db.Integer, primary_key=True)
    item_code = db.Column(db.String, nullable=False, unique=True)
    route_id = db.Column(db.String, nullable=False, index=True)


class RouteOperation(db.Model):
    __tablename__ = "route_operation"

    __table_args__ = (
        db.UniqueConstraint("route_id", "sequence", name="uq_route_operation_sequence"),
    )

    id = db.Column(db.Integer, primary_key=True)
    route_id = db.Column(db.String, nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    op_name = db.Column(db.String, nullable=False)

    def __repr__(self):
        return f"<RouteOperation route={self.route_id} seq={self.sequence} op={self.op_name}>"


class OperationTime(db.Model):
    __tablename__ = "operation_time"

    id = db.Column(db.Integer, primary_key=True)
    op_name = db.Column(db.String, nullable=False, unique=True)
    station = db.Column(db.String, nullable=False, default="")
    std_time_min = db.Column(db.Float, nullable=False, default=0)
    setup_min = db.Column(db.Float, nullable=False, default=0)


class StationTimeSummary(db.Model):
    __tablename__ = "station_time_summary"

    id = db.Column(db.Integer, primary_key=True)
    source_order_id = db.Column(
        db.Integer,
        db.ForeignKey("daily_order.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    order_number = db.Column(db.String, nullable=False, default="")
    doc_type = db.Column(db.String, nullable=False, default="")
    item_code = db.Column(db.String, nullable=False, default="")
    item_name = db.Column(db.String, nullable=False, default="")
    quantity = db.Column(db.Float, nullable=False, default=0)
    plate_count = db.Column(db.String, nullable=False, default="")
    delivery_date = db.Column(db.String, nullable=False, default="")
    designer = db.Column(db.String, nullable=False, default="")
    customer = db.Column(db.String, nullable=False, default="")
    handler = db.Column(db.String, nullable=False, default="")
    issuer = db.Column(db.String, nullable=False, default="")
    sequence = db.Column(db.Integer, nullable=False)
    station = db.Column(db.String, nullable=False, default="")
    op_name = db.Column(db.String, nullable=False, default="")
    basis_text = db.Column(db.String, nullable=False, default="")
    std_time = db.Column(db.Float, nullable=False, default=0)
    total_time_min = db.Column(db.Float, nullable=False, default=0)
    assigned_section = db.Column(db.String, nullable=True, index=True)
    scheduled_date = db.Column(db.Date, nullable=True, index=True)
    production_machine_id = db.Column(
        db.Integer,
        db.ForeignKey("production_machine.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    source_order = db.relationship("DailyOrder", back_populates="operations")
    machine = db.relationship("ProductionMachine")

    COPIED_FIELDS = (
        "source_order_id",
        "order_number",
        "doc_type",
        "item_code",
        "item_name",
        "quantity",
        "plate_count",
        "delivery_date",
        "designer",
        "customer",
        "handler",
        "issuer",
        "sequence",
        "station",
        "op_name",
        "basis_text",
        "std_time",
        "total_time_min",
        "assigned_section",
        "scheduled_date",
        "production_machine_id",
    )

    @classmethod
    def from_record(cls, record: ConvertedOperation) -> "StationTimeSummary":
        return cls(**{name: getattr(record, name) for name in cls.COPIED_FIELDS})

    def to_record(self) -> ConvertedOperation:
        values = {name: getattr(self, name) for name in self.COPIED_FIELDS}
        return ConvertedOperation(id=self.id, **values)

    def to_dict(self) -> dict:
        return self.to_record().as_dict()

    def __repr__(self):
        return (
            f"<StationTimeSummary order={self.source_order_id} seq={self.sequence} "
            f"op={self.op_name}>"
        )


class ProductionMachine(db.Model):
    __tablename__ = "production_machine"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False)
    category = db.Column(db.String, nullable=False, default="")
    station_type = db.Column(db.String, nullable=False, default="")
    section_id = db.Column(db.String, nullable=True, index=True)
    daily_minutes = db.Column(db.Float, nullable=False, default=480)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_record(self) -> Machine:
        return Machine(
            id=self.id,
            name=self.name,
            daily_minutes=self.daily_minutes if self.daily_minutes is not None else 0,
            category=self.category or "",
            station_type=self.station_type or "",
            section_id=self.section_id,
            is_active=bool(self.is_active),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "station_type": self.station_type,
            "section_id": self.section_id,
            "daily_minutes": self.daily_minutes,
            "is_active": self.is_active,
        }


class FactoryCalendarDay(db.Model):
    __tablename__ = "factory_calendar"

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True)
    is_holiday = db.Column(db.Boolean, nullable=False, default=True)
    note = db.Column(db.String, nullable=True)


class OrderImportBatch(db.Model):
    __tablename__ = "order_import_batch"

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String, nullable=True)
    total_rows = db.Column(db.Integer, nullable=False, default=0)
    imported_rows = db.Column(db.Integer, nullable=False, default=0)
    duplicate_rows = db.Column(db.Integer, nullable=False, default=0)
    error_rows = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "total_rows": self.total_rows,
            "imported_rows": self.imported_rows,
            "duplicate_rows": self.duplicate_rows,
            "error_rows": self.error_rows,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
