import pytest
from pydantic import ValidationError

from plugins.core.accounts.models import (
    AccountResetSpec,
    Deleted,
    Failed,
    OutcomeUnit,
    PurgeReport,
    aggregate,
)


def test_deleted_rejects_negative_counts():
    with pytest.raises(ValidationError):
        Deleted(count=-1)


def test_outcomes_serialize_distinguishably():
    report = PurgeReport(
        entries={
            "Sales": Deleted(count=3),
            "Purchases": Failed(message="timed out"),
        }
    )
    dumped = report.model_dump(mode="json")

    assert dumped["entries"]["Sales"] == {
        "status": "deleted",
        "count": 3,
        "unit": "documents_deleted",
    }
    assert dumped["entries"]["Purchases"]["status"] == "failed"
    assert dumped["entries"]["Purchases"]["error_type"] == "CollectionUnavailable"


def test_report_parses_back_from_json():
    report = PurgeReport(
        entries={
            "LicenseKeyUpdates": Deleted(count=2, unit=OutcomeUnit.PARENTS_UPDATED),
            "UserReset": Failed(message="missing", error_type="IdentityNotFound"),
        }
    )
    restored = PurgeReport.model_validate_json(report.model_dump_json())

    assert restored == report
    assert list(restored.entries) == ["LicenseKeyUpdates", "UserReset"]


def test_report_failures_and_counts():
    report = PurgeReport(
        entries={"Sales": Deleted(count=0), "Items": Failed(message="boom")}
    )

    assert report.has_failures
    assert list(report.failures) == ["Items"]
    assert report.counts() == {"Sales": 0, "Items": "Error: boom"}


def test_aggregate_restores_requested_order():
    outcomes = [
        ("Purchases", Deleted(count=1)),
        ("UserReset", Deleted(count=1, unit=OutcomeUnit.IDENTITIES_MODIFIED)),
        ("Sales", Deleted(count=3)),
    ]
    report = aggregate(outcomes, order=["Sales", "Purchases", "UserReset"])

    assert list(report.entries) == ["Sales", "Purchases", "UserReset"]


def test_aggregate_keeps_first_outcome_per_label():
    report = aggregate([("Sales", Deleted(count=3)), ("Sales", Failed(message="late"))])

    assert report.entries == {"Sales": Deleted(count=3)}


def test_aggregate_of_partial_outcomes_skips_missing_labels():
    report = aggregate(
        [("Extra", Deleted(count=0)), ("Sales", Deleted(count=1))],
        order=["Sales", "Purchases"],
    )

    assert list(report.entries) == ["Sales", "Extra"]


def test_aggregate_is_pure():
    outcomes = [("Sales", Deleted(count=1))]
    first = aggregate(outcomes, order=["Sales"])
    second = aggregate(outcomes, order=["Sales"])

    assert first == second
    assert outcomes == [("Sales", Deleted(count=1))]


def test_report_is_immutable():
    report = PurgeReport(entries={"Sales": Deleted(count=1)})
    with pytest.raises(ValidationError):
        report.entries = {}
    with pytest.raises(TypeError):
        report.entries["Sales"] = Failed(message="rewritten")
    with pytest.raises(TypeError):
        del report.entries["Sales"]
    assert report.entries["Sales"] == Deleted(count=1)


def test_report_does_not_share_the_caller_mapping():
    source = {"Sales": Deleted(count=1)}
    report = PurgeReport(entries=source)

    source["Sales"] = Failed(message="rewritten")

    assert report.entries["Sales"] == Deleted(count=1)
    assert PurgeReport().entries == {}
    with pytest.raises(TypeError):
        PurgeReport().entries["Sales"] = Deleted(count=1)


def test_reset_spec_rejects_overlapping_fields():
    with pytest.raises(ValidationError, match="emailVerified"):
        AccountResetSpec(clear=("emailVerified",), defaults={"emailVerified": False})
