"""Declarative registry of every collection holding tenant-owned data."""

from typing import Annotated, Any, Iterable, Literal

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ASCENDING
from utils.exceptions import RegistryError

from .models import AccountResetSpec


class DirectField(BaseModel):
    """The tenant id is stored in a single top-level field."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["direct"] = "direct"
    field: str


class OrFields(BaseModel):
    """A document belongs to the tenant if either field holds its id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["or"] = "or"
    field_a: str
    field_b: str


class EmbeddedArray(BaseModel):
    """The tenant id sits inside elements of an array on a shared parent document."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["embedded"] = "embedded"
    array_field: str
    element_field: str

    @property
    def path(self) -> str:
        return f"{self.array_field}.{self.element_field}"


Reference = Annotated[
    DirectField | OrFields | EmbeddedArray, Field(discriminator="kind")
]


def identifier_variants(tenant_id: Any) -> list[Any]:
    """
    All stored representations that denote ``tenant_id``.

    Embedded references written by older code paths may hold the hex string
    instead of the ObjectId, so lookups match both forms.
    """
    if isinstance(tenant_id, ObjectId):
        return [tenant_id, str(tenant_id)]
    if isinstance(tenant_id, str) and ObjectId.is_valid(tenant_id):
        return [tenant_id, ObjectId(tenant_id)]
    return [tenant_id]


def normalize_identifier(tenant_id: Any) -> Any:
    """Hex strings become ObjectIds, the type account references are stored as."""
    if isinstance(tenant_id, str) and ObjectId.is_valid(tenant_id):
        return ObjectId(tenant_id)
    return tenant_id


class CollectionDescriptor(BaseModel):
    """One registry entry: report label, target collection and tenant reference."""

    model_config = ConfigDict(frozen=True)

    name: str
    collection: str
    reference: Reference

    @property
    def is_embedded(self) -> bool:
        return isinstance(self.reference, EmbeddedArray)

    @property
    def reference_fields(self) -> tuple[str, ...]:
        ref = self.reference
        if isinstance(ref, DirectField):
            return (ref.field,)
        if isinstance(ref, OrFields):
            return (ref.field_a, ref.field_b)
        return (ref.path,)

    def build_filter(self, tenant_id: Any) -> dict[str, Any]:
        ref = self.reference
        if isinstance(ref, DirectField):
            return {ref.field: tenant_id}
        if isinstance(ref, OrFields):
            return {"$or": [{ref.field_a: tenant_id}, {ref.field_b: tenant_id}]}
        return {ref.path: {"$in": identifier_variants(tenant_id)}}


def direct(name: str, collection: str, field: str = "userId") -> CollectionDescriptor:
    return CollectionDescriptor(
        name=name, collection=collection, reference=DirectField(field=field)
    )


IDENTITY_COLLECTION = "users"

DEFAULT_RESET_SPEC = AccountResetSpec(
    clear=(
        "currentToken",
        "resetPasswordToken",
        "resetPasswordExpires",
        "activatedLicenseKey",
    ),
    defaults={"emailVerified": False, "joinedCompanies": []},
)

DEFAULT_REGISTRY: tuple[CollectionDescriptor, ...] = (
    direct("Parties", "parties", field="user"),
    direct("Sales", "sales"),
    direct("Purchases", "purchases"),
    direct("Items", "items"),
    direct("Expenses", "expenses"),
    direct("CashBank", "cashbanks"),
    direct("BankAccounts", "bankaccounts"),
    direct("BankTransactions", "banktransactions"),
    direct("Payments", "payments"),
    direct("PaymentOuts", "paymentouts"),
    direct("CreditNotes", "creditnotes"),
    direct("DeliveryChallans", "deliverychallans"),
    direct("PurchaseOrders", "purchaseorders"),
    direct("Quotations", "quotations"),
    direct("SaleOrders", "saleorders"),
    CollectionDescriptor(
        name="UserInvites",
        collection="userinvites",
        reference=OrFields(field_a="requestedBy", field_b="requestedTo"),
    ),
    CollectionDescriptor(
        name="LicenseKeyUpdates",
        collection="licensekeys",
        reference=EmbeddedArray(array_field="usedDevices", element_field="userId"),
    ),
)


def validate_registry(registry: Iterable[CollectionDescriptor]) -> None:
    """
    Check the static registry invariants, raising RegistryError on the first violation.

    A collection may appear more than once only with the same reference kind.
    """
    descriptors = list(registry)
    if not descriptors:
        raise RegistryError("Collection registry is empty")

    seen_names: set[str] = set()
    kinds_by_collection: dict[str, str] = {}
    for descriptor in descriptors:
        if not isinstance(descriptor, CollectionDescriptor):
            raise RegistryError(f"Registry entry {descriptor!r} is not a descriptor")
        if not descriptor.name.strip() or not descriptor.collection.strip():
            raise RegistryError("Registry entries need a label and a collection")
        if descriptor.name in seen_names:
            raise RegistryError(f"Duplicate registry label '{descriptor.name}'")
        seen_names.add(descriptor.name)

        if any(not field.strip() for field in descriptor.reference_fields):
            raise RegistryError(f"Blank reference field in '{descriptor.name}'")
        ref = descriptor.reference
        if isinstance(ref, OrFields) and ref.field_a == ref.field_b:
            raise RegistryError(
                f"'{descriptor.name}' combines field '{ref.field_a}' with itself"
            )
        if isinstance(ref, EmbeddedArray) and (
            not ref.array_field.strip() or not ref.element_field.strip()
        ):
            raise RegistryError(f"Blank array path in '{descriptor.name}'")
        if isinstance(ref, EmbeddedArray) and "." in ref.array_field:
            raise RegistryError(
                f"Array field of '{descriptor.name}' must be a top-level field"
            )

        known_kind = kinds_by_collection.setdefault(descriptor.collection, ref.kind)
        if known_kind != ref.kind:
            raise RegistryError(
                f"Collection '{descriptor.collection}' registered with conflicting "
                f"reference kinds '{known_kind}' and '{ref.kind}'"
            )


def index_definitions(
    registry: Iterable[CollectionDescriptor],
) -> dict[str, list[dict[str, Any]]]:
    """One ascending index per tenant reference path, grouped by collection."""
    definitions: dict[str, list[dict[str, Any]]] = {}
    for descriptor in registry:
        indexes = definitions.setdefault(descriptor.collection, [])
        for field in descriptor.reference_fields:
            keys = [(field, ASCENDING)]
            if not any(index["keys"] == keys for index in indexes):
                indexes.append({"keys": keys, "options": {}})
    return definitions
