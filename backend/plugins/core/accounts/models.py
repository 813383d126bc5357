"""Pydantic models for account purge outcomes and the reset API."""

from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Iterable, Literal, Mapping, Sequence

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


class AccountResetSpec(BaseModel):
    """Fields removed from, and fields reset on, the tenant's own identity record."""

    model_config = ConfigDict(frozen=True)

    clear: tuple[str, ...] = ()
    defaults: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_disjoint(self) -> "AccountResetSpec":
        overlap = sorted(set(self.clear) & set(self.defaults))
        if overlap:
            raise ValueError(f"Fields both cleared and defaulted: {', '.join(overlap)}")
        return self


class OutcomeUnit(str, Enum):
    """What the ``count`` of a Deleted outcome measures."""

    DOCUMENTS_DELETED = "documents_deleted"
    PARENTS_UPDATED = "parents_updated"
    IDENTITIES_MODIFIED = "identities_modified"


class Deleted(BaseModel):
    """A collection step that completed; ``count`` may be zero."""

    model_config = ConfigDict(frozen=True)

    status: Literal["deleted"] = "deleted"
    count: int = Field(..., ge=0)
    unit: OutcomeUnit = OutcomeUnit.DOCUMENTS_DELETED


class Failed(BaseModel):
    """A collection step that raised; the run carried on without it."""

    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    message: str
    error_type: str = "CollectionUnavailable"


PurgeOutcome = Annotated[Deleted | Failed, Field(discriminator="status")]


class PurgeReport(BaseModel):
    """Ordered label -> outcome mapping returned by a purge run."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "entries": {
                        "Sales": {
                            "status": "deleted",
                            "count": 3,
                            "unit": "documents_deleted",
                        },
                        "LicenseKeyUpdates": {
                            "status": "deleted",
                            "count": 2,
                            "unit": "parents_updated",
                        },
                        "Purchases": {
                            "status": "failed",
                            "message": "Database error while purging 'purchases'",
                            "error_type": "CollectionUnavailable",
                        },
                    }
                }
            ]
        },
    )

    entries: Mapping[str, PurgeOutcome] = Field(
        default_factory=dict, validate_default=True
    )

    @field_validator("entries", mode="after")
    @classmethod
    def read_only_entries(
        cls, value: Mapping[str, Deleted | Failed]
    ) -> Mapping[str, Deleted | Failed]:
        return MappingProxyType(dict(value))

    @field_serializer("entries")
    def serialize_entries(
        self, value: Mapping[str, Deleted | Failed]
    ) -> dict[str, PurgeOutcome]:
        return dict(value)

    @property
    def failures(self) -> dict[str, Failed]:
        return {
            label: outcome
            for label, outcome in self.entries.items()
            if isinstance(outcome, Failed)
        }

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def counts(self) -> dict[str, int | str]:
        """Flat view: an integer per successful label, an ``Error: ...`` string otherwise."""
        return {
            label: outcome.count
            if isinstance(outcome, Deleted)
            else f"Error: {outcome.message}"
            for label, outcome in self.entries.items()
        }


def aggregate(
    outcomes: Iterable[tuple[str, Deleted | Failed]],
    order: Sequence[str] | None = None,
) -> PurgeReport:
    """
    Build a report from ``(label, outcome)`` pairs without side effects.

    Labels named in ``order`` come first, in that order; any other labels
    follow in arrival order. The first outcome recorded for a label wins.
    Safe to call on a partial outcome list to produce interim reports.
    """
    recorded: dict[str, Deleted | Failed] = {}
    for label, outcome in outcomes:
        recorded.setdefault(label, outcome)

    entries: dict[str, Any] = {}
    for label in order or ():
        if label in recorded:
            entries[label] = recorded[label]
    for label, outcome in recorded.items():
        entries.setdefault(label, outcome)
    return PurgeReport(entries=entries)


class AccountResetRequest(BaseModel):
    """Request model for resetting all data of an account."""

    email: str

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "owner@example.com"}]}
    )


class AccountResetResponse(BaseModel):
    """Response model for an account reset; ``details`` is the full purge report."""

    success: bool
    message: str
    user_id: str
    details: PurgeReport
