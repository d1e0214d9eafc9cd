"""Build version descriptor derived from a build counter and a capture time."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

# Assembly version components are 16-bit unsigned integers.
MAX_BUILD_COUNTER = 65535


class VersionDescriptor(BaseModel):
    build_counter: int = Field(..., ge=0, le=MAX_BUILD_COUNTER)
    captured_at: datetime
    sem_version: str
    assembly_version: str
    file_version: str
    informational_version: str
    package_version: str = Field(..., description="Version stamped into generated packages.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(mode="json")


def compute_version(build_counter: int, captured_at: datetime) -> VersionDescriptor:
    """Derive every version string of a run from its counter and capture time.

    The calendar part is ``{year}.{month}{day}`` so that, for a fixed date, the
    versions grow with the counter. ``captured_at`` must be timezone-aware; it
    is normalised to UTC.
    """

    if isinstance(build_counter, bool) or not isinstance(build_counter, int):
        raise TypeError(f"Build counter must be an integer (got {build_counter!r}).")
    if build_counter < 0 or build_counter > MAX_BUILD_COUNTER:
        raise ValueError(f"Build counter must be between 0 and {MAX_BUILD_COUNTER} (got {build_counter}).")
    if captured_at.tzinfo is None or captured_at.utcoffset() is None:
        raise ValueError("Capture timestamp must be timezone-aware.")

    moment = captured_at.astimezone(timezone.utc)
    day_part = moment.month * 100 + moment.day
    sem_version = f"{moment.year}.{day_part}.{build_counter}"
    assembly_version = f"{sem_version}.0"

    return VersionDescriptor(
        build_counter=build_counter,
        captured_at=moment,
        sem_version=sem_version,
        assembly_version=assembly_version,
        file_version=assembly_version,
        informational_version=f"{sem_version}+{moment.strftime('%Y%m%dT%H%M%SZ')}",
        package_version=sem_version,
    )
