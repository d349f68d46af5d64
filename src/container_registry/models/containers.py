"""Container record model and its value types."""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Index, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UTCDateTime


class ContainerStatus(str, Enum):
    """Lifecycle status of a container."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FROZEN = "frozen"
    ERROR = "error"


class NetworkInterface(BaseModel):
    """Network interface attached to a container."""

    name: str
    bridge: Optional[str] = None
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    hwaddr: Optional[str] = None


class ContainerConfig(BaseModel):
    """Resource and network configuration recorded at creation time."""

    cpu_limit: Optional[int] = None
    memory_limit: Optional[int] = None
    disk_limit: Optional[int] = None
    network_interfaces: List[NetworkInterface] = Field(default_factory=list)
    rootfs_path: Optional[str] = None
    environment: List[Tuple[str, str]] = Field(default_factory=list)


class Container(Base):
    """Persisted metadata for one managed container."""

    __tablename__ = "containers"
    __table_args__ = (
        Index("ix_containers_status", "status"),
        Index("ix_containers_created_at", "created_at"),
    )

    # Primary key - uuid4 string, assigned once at creation
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Human-chosen identifier, immutable
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    status: Mapped[ContainerStatus] = mapped_column(
        SAEnum(
            ContainerStatus,
            name="valid_status",
            native_enum=False,
            create_constraint=True,
            length=16,
            validate_strings=True,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=ContainerStatus.STOPPED,
    )

    # Base image/profile, immutable
    template: Mapped[str] = mapped_column(String(32), nullable=False)

    # Placement hint
    node_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Serialized ContainerConfig, immutable
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation with the fields exposed to API callers."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "template": self.template,
            "node_id": self.node_id,
            "config": self.config,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        """String representation of Container."""
        return (
            f"<Container(id={self.id}, name={self.name}, "
            f"template={self.template}, status={self.status})>"
        )
