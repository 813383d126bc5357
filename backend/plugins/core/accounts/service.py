"""Service layer for the account data lifecycle: purge, prune and reset."""

import asyncio
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Iterable, Sequence
from uuid import UUID

from bson import ObjectId
from config import settings
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from structlog import get_logger
from utils.dependencies import get_database
from utils.exceptions import (
    BadRequestError,
    IdentityNotFound,
    PurgeError,
    ReferenceTypeMismatch,
    RegistryError,
    ServiceError,
)

from bizledger_core.tracing import get_tracer

from .models import (
    AccountResetRequest,
    AccountResetResponse,
    AccountResetSpec,
    Deleted,
    Failed,
    OutcomeUnit,
    PurgeReport,
    aggregate,
)
from .registry import (
    DEFAULT_REGISTRY,
    DEFAULT_RESET_SPEC,
    IDENTITY_COLLECTION,
    CollectionDescriptor,
    EmbeddedArray,
    normalize_identifier,
    validate_registry,
)
from .repository import IdentityRepository, TenantDataRepository

logger = get_logger(__name__)
tracer = get_tracer(__name__)

RESET_LABEL = "UserReset"
CANCELLED = "Cancelled"


class PurgeState(str, Enum):
    INITIALIZED = "initialized"
    PURGING_DIRECT = "purging_direct"
    PURGING_EMBEDDED = "purging_embedded"
    RESETTING = "resetting"
    COMPLETED = "completed"


def canonical_reference(value: Any) -> str | None:
    """
    String form used to compare embedded references with the tenant id.

    ObjectIds and their hex strings compare equal. ``None`` never matches.
    Raises ReferenceTypeMismatch for values with no stable string form.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ReferenceTypeMismatch("Boolean values cannot reference an account")
    if isinstance(value, (ObjectId, str, int, UUID)):
        return str(value)
    raise ReferenceTypeMismatch(
        f"Cannot compare reference of type {type(value).__name__}"
    )


def without_tenant(elements: list[Any], element_field: str, target: str) -> list[Any]:
    """Elements of ``elements`` not referencing ``target``, in original order."""
    remaining = []
    for element in elements:
        if not isinstance(element, dict):
            raise ReferenceTypeMismatch(
                f"Array element of type {type(element).__name__} "
                f"has no '{element_field}'"
            )
        if canonical_reference(element.get(element_field)) != target:
            remaining.append(element)
    return remaining


class PurgeRun:
    """Per-invocation state: current stage and the append-only outcome list."""

    def __init__(
        self,
        tenant_id: Any,
        order: Sequence[str],
        on_progress: Callable[["PurgeRun"], Any] | None = None,
    ):
        self.tenant_id = tenant_id
        self.order = list(order)
        self.state = PurgeState.INITIALIZED
        self.outcomes: list[tuple[str, Deleted | Failed]] = []
        self._recorded: set[str] = set()
        self._on_progress = on_progress

    def record(self, label: str, outcome: Deleted | Failed) -> None:
        if label in self._recorded:
            logger.warning("Outcome already recorded, ignoring duplicate", label=label)
            return
        self._recorded.add(label)
        self.outcomes.append((label, outcome))
        if self._on_progress is None:
            return
        try:
            self._on_progress(self)
        except Exception:
            logger.exception("Progress callback failed", label=label)

    def snapshot(self) -> PurgeReport:
        return aggregate(self.outcomes, self.order)


class AccountPurgeService:
    """
    Erases everything a tenant owns across the registered collections, then
    resets the tenant's identity record without deleting it.

    Each collection step is isolated: errors become ``Failed`` outcomes and
    the run continues. Only configuration problems raise, before any work.
    """

    def __init__(
        self,
        repository: TenantDataRepository,
        registry: Iterable[CollectionDescriptor] = DEFAULT_REGISTRY,
        reset_spec: AccountResetSpec = DEFAULT_RESET_SPEC,
        concurrency: int = 1,
        reset_label: str = RESET_LABEL,
    ):
        if repository is None:
            raise ServiceError("Purge service requires a data repository")
        registry = tuple(registry)
        validate_registry(registry)
        if reset_label in {descriptor.name for descriptor in registry}:
            raise RegistryError(
                f"Reset label '{reset_label}' clashes with a registry label"
            )
        if concurrency < 1:
            raise ServiceError("Purge concurrency must be at least 1")

        self.repository = repository
        self.registry = registry
        self.reset_spec = reset_spec
        self.concurrency = concurrency
        self.reset_label = reset_label

    @property
    def direct_descriptors(self) -> list[CollectionDescriptor]:
        return [d for d in self.registry if not d.is_embedded]

    @property
    def embedded_descriptors(self) -> list[CollectionDescriptor]:
        return [d for d in self.registry if d.is_embedded]

    @property
    def report_order(self) -> list[str]:
        labels = [d.name for d in self.direct_descriptors]
        labels += [d.name for d in self.embedded_descriptors]
        return labels + [self.reset_label]

    @staticmethod
    def _failed(label: str, error: Exception) -> Failed:
        if isinstance(error, PurgeError):
            logger.warning(
                "Purge step failed",
                label=label,
                error_type=error.error_type,
                error=error.detail,
            )
            return Failed(message=error.detail, error_type=error.error_type)
        logger.error(
            "Unexpected error during purge step",
            label=label,
            error=str(error),
            exc_info=True,
        )
        message = error.detail if isinstance(error, ServiceError) else str(error)
        return Failed(message=message, error_type=type(error).__name__)

    async def purge_direct(
        self, tenant_id: Any, descriptor: CollectionDescriptor
    ) -> Deleted | Failed:
        """Bulk-delete every document of one collection that references the tenant."""
        if descriptor.is_embedded:
            raise RegistryError(
                f"'{descriptor.name}' references the tenant inside an array "
                "and cannot be bulk deleted"
            )
        try:
            deleted_count = await self.repository.delete_matching(
                descriptor.collection, descriptor.build_filter(tenant_id)
            )
        except Exception as e:
            return self._failed(descriptor.name, e)

        logger.info(
            "Purged collection",
            label=descriptor.name,
            collection=descriptor.collection,
            deleted_count=deleted_count,
        )
        return Deleted(count=deleted_count)

    async def prune_embedded(
        self, tenant_id: Any, descriptor: CollectionDescriptor
    ) -> Deleted | Failed:
        """
        Remove the tenant's elements from an array field of shared parents.

        The whole array is written back, and only for parents whose array
        shrank. The resulting count is parents updated, not elements removed.
        Parents already written stay written if a later write fails.
        """
        ref = descriptor.reference
        if not isinstance(ref, EmbeddedArray):
            raise RegistryError(
                f"'{descriptor.name}' is not an embedded-array descriptor"
            )

        updated = 0
        mismatched = 0
        try:
            target = canonical_reference(tenant_id)
            parents = await self.repository.find_matching(
                descriptor.collection,
                descriptor.build_filter(tenant_id),
                {ref.array_field: 1},
            )
            for parent in parents:
                original = parent.get(ref.array_field) or []
                try:
                    remaining = without_tenant(original, ref.element_field, target)
                except ReferenceTypeMismatch as e:
                    mismatched += 1
                    logger.warning(
                        "Skipping parent with incomparable references",
                        label=descriptor.name,
                        document_id=str(parent.get("_id")),
                        error=e.detail,
                    )
                    continue
                if len(remaining) == len(original):
                    continue
                modified = await self.repository.replace_array_field(
                    descriptor.collection, parent["_id"], ref.array_field, remaining
                )
                if modified:
                    updated += 1
        except Exception as e:
            if updated:
                logger.warning(
                    "Pruning stopped after partial progress",
                    label=descriptor.name,
                    parents_updated=updated,
                )
            return self._failed(descriptor.name, e)

        if mismatched and not updated:
            return self._failed(
                descriptor.name,
                ReferenceTypeMismatch(
                    f"{mismatched} parent document(s) in '{descriptor.collection}' "
                    "hold references that could not be compared"
                ),
            )

        logger.info(
            "Pruned embedded references",
            label=descriptor.name,
            collection=descriptor.collection,
            parents_updated=updated,
            parents_skipped=mismatched,
        )
        return Deleted(count=updated, unit=OutcomeUnit.PARENTS_UPDATED)

    async def reset_account(
        self, tenant_id: Any, spec: AccountResetSpec | None = None
    ) -> Deleted | Failed:
        """Clear session fields and restore defaults on the identity record."""
        if spec is None:
            spec = self.reset_spec
        try:
            matched, modified = await self.repository.update_identity(
                tenant_id, list(spec.clear), spec.defaults
            )
        except Exception as e:
            return self._failed(self.reset_label, e)

        if not matched:
            return self._failed(
                self.reset_label,
                IdentityNotFound(f"No identity record with id {tenant_id}"),
            )

        logger.info("Reset identity record", identities_modified=modified)
        return Deleted(count=modified, unit=OutcomeUnit.IDENTITIES_MODIFIED)

    async def _run_stage(
        self,
        run: PurgeRun,
        descriptors: list[CollectionDescriptor],
        step: Callable[[Any, CollectionDescriptor], Awaitable[Deleted | Failed]],
        cancel_event: asyncio.Event | None,
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def execute(descriptor: CollectionDescriptor) -> None:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    outcome: Deleted | Failed = Failed(
                        message="Purge cancelled before this step started",
                        error_type=CANCELLED,
                    )
                else:
                    outcome = await step(run.tenant_id, descriptor)
            run.record(descriptor.name, outcome)

        if self.concurrency == 1:
            for descriptor in descriptors:
                await execute(descriptor)
        else:
            await asyncio.gather(*(execute(d) for d in descriptors))

    async def run(
        self,
        tenant_id: Any,
        cancel_event: asyncio.Event | None = None,
        on_progress: Callable[[PurgeRun], Any] | None = None,
    ) -> PurgeReport:
        """
        Purge direct collections, prune embedded references, then reset the account.

        Stages do not depend on each other's success. A set ``cancel_event``
        stops new steps from being issued; skipped steps are reported as
        ``Failed`` with error type ``Cancelled``.
        """
        tenant_id = normalize_identifier(tenant_id)
        run = PurgeRun(tenant_id, self.report_order, on_progress)
        log = logger.bind(tenant_id=str(tenant_id))

        with tracer.start_as_current_span("account_purge.run") as span:
            span.set_attribute("bizledger.tenant_id", str(tenant_id))

            run.state = PurgeState.PURGING_DIRECT
            log.info("Purging direct collections", count=len(self.direct_descriptors))
            await self._run_stage(
                run, self.direct_descriptors, self.purge_direct, cancel_event
            )

            run.state = PurgeState.PURGING_EMBEDDED
            log.info(
                "Pruning embedded references", count=len(self.embedded_descriptors)
            )
            await self._run_stage(
                run, self.embedded_descriptors, self.prune_embedded, cancel_event
            )

            run.state = PurgeState.RESETTING
            if cancel_event is not None and cancel_event.is_set():
                run.record(
                    self.reset_label,
                    Failed(
                        message="Purge cancelled before the account reset",
                        error_type=CANCELLED,
                    ),
                )
            else:
                run.record(self.reset_label, await self.reset_account(tenant_id))

            run.state = PurgeState.COMPLETED
            report = run.snapshot()
            span.set_attribute("bizledger.failed_steps", len(report.failures))

        log.info(
            "Account purge completed",
            failed=sorted(report.failures),
            report=report.counts(),
        )
        return report


class AccountLifecycleService:
    """Resolves an account by email and runs the purge for it."""

    def __init__(
        self, identities: IdentityRepository, purge_service: AccountPurgeService
    ):
        self.identities = identities
        self.purge_service = purge_service

    async def reset_user_data(
        self, request: AccountResetRequest
    ) -> AccountResetResponse:
        """Delete all data owned by the account while keeping the account itself."""
        email = request.email.strip()
        if not email or "@" not in email:
            raise BadRequestError("Valid email address is required")

        identity = await self.identities.get_by_email(email)
        user_id = identity["_id"]
        logger.info("Starting account reset", user_id=str(user_id))

        report = await self.purge_service.run(user_id)

        if report.has_failures:
            message = (
                f"User {email} was reset with {len(report.failures)} failed step(s): "
                f"{', '.join(report.failures)}"
            )
        else:
            message = f"User {email} has been reset successfully"
        return AccountResetResponse(
            success=not report.has_failures,
            message=message,
            user_id=str(user_id),
            details=report,
        )


async def get_tenant_data_repository(
    database: Annotated[AsyncIOMotorDatabase, Depends(get_database)],
) -> TenantDataRepository:
    return TenantDataRepository(database)


async def get_identity_repository(
    database: Annotated[AsyncIOMotorDatabase, Depends(get_database)],
) -> IdentityRepository:
    return IdentityRepository(database[IDENTITY_COLLECTION])


async def get_account_purge_service(
    repository: Annotated[TenantDataRepository, Depends(get_tenant_data_repository)],
) -> AccountPurgeService:
    return AccountPurgeService(repository, concurrency=settings.purge_concurrency)


async def get_account_lifecycle_service(
    identities: Annotated[IdentityRepository, Depends(get_identity_repository)],
    purge_service: Annotated[AccountPurgeService, Depends(get_account_purge_service)],
) -> AccountLifecycleService:
    return AccountLifecycleService(identities, purge_service)
