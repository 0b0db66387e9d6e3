"""
Pydantic models for the documents the history server reads and writes.

The archive models are a strict contract for the payloads fetched from the
refresh locations; the dashboard and index models define the artifacts the
mirror exposes to the web frontend.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Remote documents ---

class ArchiveListing(BaseModel):
    """The listing returned by an HTTP refresh location."""

    archives: List[str]


class ArchivedJsonModel(BaseModel):
    """
    A single captured REST response inside a job archive.

    The response body is kept as text; it is written to the mirror verbatim.
    """

    path: str
    content: str = Field(alias="json")


class ArchiveDocument(BaseModel):
    """The top-level structure of a job archive."""

    archive: List[ArchivedJsonModel]


# --- Mirror artifacts ---

class DashboardConfig(BaseModel):
    """The static `config.json` consumed by the dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_interval: int = Field(alias="refresh-interval")
    timezone_offset: int = Field(alias="timezone-offset")
    timezone_name: str = Field(alias="timezone-name")
    version: str = Field(alias="history-server-version")


class IndexEntry(BaseModel):
    """One mirrored archive as listed in the overview index."""

    id: str
    location: str
    last_synced: int
    overview: Optional[Any] = None


class OverviewIndex(BaseModel):
    """The overview index, rewritten after every refresh cycle."""

    archives: List[IndexEntry]
