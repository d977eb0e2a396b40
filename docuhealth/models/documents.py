"""Document models - ingested artifacts."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DeclaredType(str, Enum):
    """Clinical document category declared at ingest."""

    opd = "OPD"
    ipd = "IPD"
    lab = "Lab"
    inventory = "Inventory"
    general = "General"


class IngestionChannel(str, Enum):
    """How the document reached the system."""

    scanner = "scanner"
    upload = "upload"
    gcs_reference = "gcsReference"


class Document(BaseModel):
    """Immutable ingested document."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    filename: str = Field(..., min_length=1)
    mime_type: str
    size_bytes: int | None = Field(None, ge=0, description="Unknown for unfetched locators")
    declared_type: DeclaredType
    department: str
    ingestion_channel: IngestionChannel
    uploaded_by: str
    created_at: datetime
    source_locator: str | None = None


class DocumentSummary(BaseModel):
    """Document fields joined onto validation queue entries."""

    id: UUID
    filename: str
    declared_type: DeclaredType
    department: str
    uploaded_by: str
    created_at: datetime
