"""
SQLAlchemy Database Models - printers and print jobs
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, ForeignKey, Text, Index, Enum as SQLEnum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet
import uuid
import enum

from database import Base

# ==================== Enums ====================

class PrinterStatusEnum(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"
    MAINTENANCE = "maintenance"
    BUSY = "busy"

class PrintJobStatusEnum(str, enum.Enum):
    PENDING = "pending"
    PRINTING = "printing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

class JobPriority(enum.IntEnum):
    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3

    @classmethod
    def from_name(cls, name: str) -> "JobPriority":
        return cls[name.upper()]


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

# ==================== Value objects ====================

@dataclass(frozen=True)
class PrinterCapabilities:
    supported_page_sizes: FrozenSet[str] = field(default_factory=frozenset)
    supports_color: bool = False
    supports_duplex: bool = False
    max_copies: int = 1
    supported_file_types: FrozenSet[str] = field(default_factory=frozenset)

# ==================== Models ====================

class Printer(Base):
    __tablename__ = "printers"

    id = Column(String(50), primary_key=True, default=generate_id)
    name = Column(String(255), unique=True, nullable=False, index=True)
    printer_id = Column(String(50), unique=True, nullable=True)  # sparse external id
    printer_model = Column(String(255))
    manufacturer = Column(String(255))
    status = Column(SQLEnum(PrinterStatusEnum), default=PrinterStatusEnum.OFFLINE, index=True)

    # Capabilities
    supported_page_sizes = Column(JSON, default=list)
    supports_color = Column(Boolean, default=False)
    supports_duplex = Column(Boolean, default=False)
    max_copies = Column(Integer, default=1)
    supported_file_types = Column(JSON, default=list)

    # 1-based slot into the configured printer API endpoints
    endpoint_index = Column(Integer, nullable=True)

    # Scheduler-owned state
    current_job_id = Column(String(50), nullable=True)  # PrintJob.id, None when idle
    queue_length = Column(Integer, default=0)
    last_used = Column(DateTime, nullable=True)
    total_pages_printed = Column(Integer, default=0)

    is_active = Column(Boolean, default=True, index=True)
    auto_print_enabled = Column(Boolean, default=True, index=True)
    last_maintenance = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_printers_status_active", "status", "is_active"),
        Index("ix_printers_autoprint_status", "auto_print_enabled", "status"),
    )

    @property
    def capabilities(self) -> PrinterCapabilities:
        return PrinterCapabilities(
            supported_page_sizes=frozenset(self.supported_page_sizes or []),
            supports_color=bool(self.supports_color),
            supports_duplex=bool(self.supports_duplex),
            max_copies=self.max_copies if self.max_copies is not None else 1,
            supported_file_types=frozenset(self.supported_file_types or []),
        )

    @property
    def is_idle(self) -> bool:
        return self.current_job_id is None

    def __repr__(self):
        return f"<Printer(name={self.name}, status={self.status}, current_job={self.current_job_id})>"

class PrintJob(Base):
    __tablename__ = "print_jobs"

    id = Column(String(50), primary_key=True, default=generate_id)
    order_id = Column(String(50), nullable=False, index=True)
    order_number = Column(String(50), nullable=False, index=True)
    customer_name = Column(String(255))
    customer_email = Column(String(255))
    customer_phone = Column(String(20))

    # File
    file_url = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)

    # page_size, color, sided, copies, page_count, page_colors
    printing_options = Column(JSON, nullable=False)
    printer_index = Column(Integer, default=1)

    status = Column(SQLEnum(PrintJobStatusEnum), default=PrintJobStatusEnum.PENDING, index=True)
    priority = Column(Integer, default=JobPriority.NORMAL, index=True)

    # Assignment
    printer_id = Column(String(50), ForeignKey("printers.id"), nullable=True, index=True)
    printer_name = Column(String(255), nullable=True)

    # Timing (durations in minutes)
    estimated_duration = Column(Integer, nullable=True)
    actual_duration = Column(Integer, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Diagnostics / retry
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0)
    max_retries = Column(Integer, default=3)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_print_jobs_status_priority_created", "status", "priority", "created_at"),
        Index("ix_print_jobs_printer_status", "printer_id", "status"),
    )

    @property
    def page_count(self) -> int:
        return int((self.printing_options or {}).get("page_count") or 1)

    @property
    def copies(self) -> int:
        return int((self.printing_options or {}).get("copies") or 1)

    def __repr__(self):
        return f"<PrintJob(order={self.order_number}, status={self.status}, printer={self.printer_name})>"
