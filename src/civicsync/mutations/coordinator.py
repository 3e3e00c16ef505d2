"""Optimistic mutation coordinator.

Runs a write against the data store while keeping the query cache showing
the expected outcome:

1. cancel in-flight fetches of every target key and snapshot the targets
2. apply the speculative edit
3. send the write through the shared retry policy
4. on failure restore the snapshots, on success merge the response (a
   response that cannot be merged restores them too and refetches the
   targets)
5. settle the mutation (releasing buffered realtime events) and run the
   targeted invalidation for its kind

Snapshots are entity-scoped: a rollback restores the touched entity only,
so an unrelated row merged into the same list meanwhile survives. When the
cached value is still exactly the speculative one, the whole pre-mutation
value is put back.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, TypeVar

from civicsync.cache.models import adapter_for
from civicsync.cache.query_cache import QueryCache
from civicsync.mutations.models import (
    EntitySnapshot,
    MutationPlan,
    MutationStatus,
    Outcome,
    PendingMutation,
    Resolution,
    TargetRef,
)
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.retry.policy import RetryPolicy
from civicsync.shared.error_messages import get_error_message
from civicsync.shared.errors import (
    CivicSyncError,
    ErrorCode,
    ErrorContext,
    MutationError,
)
from civicsync.shared.logging import log_operation_error, log_operation_success

logger = logging.getLogger(__name__)

I = TypeVar("I")
R = TypeVar("R")


class OptimisticMutationCoordinator:
    """Applies speculative cache edits around data store writes.

    Args:
        cache: Shared query cache
        registry: Registry of in-flight mutations
        retry_policy: Policy wrapped around every send
        language: Language of user-facing error messages
    """

    def __init__(
        self,
        cache: QueryCache,
        registry: PendingMutationRegistry,
        retry_policy: RetryPolicy | None = None,
        language: str = "en",
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self.language = language
        self._refetches: set[asyncio.Task[Any]] = set()
        self._stats = {"started": 0, "confirmed": 0, "rolled_back": 0}

    async def mutate(self, plan: MutationPlan[I, R], params: I) -> R:
        """Run one optimistic mutation.

        Returns:
            The authoritative gateway response

        Raises:
            MutationError: After rollback, wrapping the failure
        """
        mutation = PendingMutation(
            id=uuid.uuid4().hex,
            kind=plan.kind,
            targets=plan.targets(params),
            started_at=time.monotonic(),
        )
        self._stats["started"] += 1

        for ref in mutation.targets:
            self.cache.cancel_outstanding(ref.key)
        for ref in mutation.targets:
            mutation.snapshots[ref] = self._snapshot(ref)

        self.registry.register(mutation)
        try:
            with self.cache.batch():
                for ref in mutation.targets:
                    snapshot = mutation.snapshots[ref]
                    outcome = plan.speculate(ref, snapshot.entity, params)
                    mutation.speculative[ref] = self._apply(ref, outcome)
            result = await self.retry_policy.run(
                lambda: plan.send(params),
                operation_name=plan.kind.value,
            )
        except (Exception, asyncio.CancelledError) as e:
            self._fail(mutation, plan, params, e)
            if isinstance(e, asyncio.CancelledError):
                raise
            raise self._to_mutation_error(mutation, e) from e

        try:
            with self.cache.batch():
                for ref in mutation.targets:
                    current = self._snapshot(ref).entity
                    self._apply(ref, plan.confirm(ref, current, params, result))
        except Exception as e:
            # the store accepted the write; refetch the targets to show it
            self._fail(mutation, plan, params, e)
            self._start_refetches([ref.key for ref in mutation.targets], plan.kind.value)
            raise self._to_mutation_error(mutation, e) from e
        mutation.status = MutationStatus.CONFIRMED
        mutation.settled_at = time.monotonic()
        self._stats["confirmed"] += 1
        self.registry.settle(mutation)
        self._invalidate(plan, params, result)

        log_operation_success(
            logger=logger,
            operation=plan.kind.value,
            duration_ms=(mutation.settled_at - mutation.started_at) * 1000,
            result_info={"mutation_id": mutation.id, "targets": len(mutation.targets)},
        )
        return result

    def _fail(
        self,
        mutation: PendingMutation,
        plan: MutationPlan[I, R],
        params: I,
        error: BaseException,
    ) -> None:
        try:
            self._rollback(mutation)
        finally:
            mutation.status = MutationStatus.ROLLED_BACK
            mutation.settled_at = time.monotonic()
            mutation.error = error
            self._stats["rolled_back"] += 1
            self.registry.settle(mutation)
            self._invalidate(plan, params, None)

    def _snapshot(self, ref: TargetRef) -> EntitySnapshot:
        value = self.cache.get_data(ref.key)
        adapter = adapter_for(ref.key.kind)
        entity, index = (None, None) if adapter is None else adapter.get_entity(value, ref.entity_id)
        return EntitySnapshot(value=value, entity=entity, index=index)

    def _apply(self, ref: TargetRef, outcome: Outcome) -> Any:
        adapter = adapter_for(ref.key.kind)
        if adapter is None or outcome is Resolution.KEEP:
            return self.cache.get_data(ref.key)
        if outcome is Resolution.REMOVE:
            return self.cache.set_data(
                ref.key, lambda value: adapter.remove_entity(value, ref.entity_id)
            )
        return self.cache.set_data(
            ref.key, lambda value: adapter.replace_entity(value, ref.entity_id, outcome)
        )

    def _rollback(self, mutation: PendingMutation) -> None:
        with self.cache.batch():
            for ref in mutation.targets:
                if ref not in mutation.speculative:
                    continue
                snapshot = mutation.snapshots[ref]
                current = self.cache.get_data(ref.key)
                if current is mutation.speculative[ref]:
                    self.cache.set_data(ref.key, lambda _: snapshot.value)
                    continue
                adapter = adapter_for(ref.key.kind)
                if adapter is None:
                    continue
                self.cache.set_data(
                    ref.key,
                    lambda value, s=snapshot, r=ref: adapter.restore_entity(
                        value, r.entity_id, s.entity, s.index
                    ),
                )
        logger.info(
            "Rolled back %s mutation %s on %d targets",
            mutation.kind.value,
            mutation.id,
            len(mutation.speculative),
        )

    def _invalidate(self, plan: MutationPlan[I, R], params: I, result: R | None) -> None:
        try:
            selector = list(plan.invalidate(params, result))
        except Exception as e:  # noqa: BLE001
            logger.warning("Invalidation after %s failed: %s", plan.kind.value, e)
            return
        self._start_refetches(selector, plan.kind.value)

    def _start_refetches(self, selector: Any, kind: str) -> None:
        try:
            tasks = self.cache.invalidate(selector)
        except Exception as e:  # noqa: BLE001
            logger.warning("Invalidation after %s failed: %s", kind, e)
            return
        for task in tasks:
            self._refetches.add(task)
            task.add_done_callback(self._refetches.discard)

    def _to_mutation_error(self, mutation: PendingMutation, error: Exception) -> MutationError:
        cause_code = error.code if isinstance(error, CivicSyncError) else ErrorCode.MUTATION_FAILED
        mutation_error = MutationError(
            ErrorCode.MUTATION_ROLLED_BACK,
            f"{mutation.kind.value} failed and was rolled back: {error}",
            ErrorContext(
                operation=mutation.kind.value,
                additional_data={
                    "mutation_id": mutation.id,
                    "cause": cause_code.value,
                    "targets": len(mutation.targets),
                },
            ),
            original_error=error,
            mutation_id=mutation.id,
            user_message=get_error_message(cause_code, self.language),
        )
        log_operation_error(logger=logger, error=mutation_error, operation=mutation.kind.value)
        return mutation_error

    async def wait_for_refetches(self) -> None:
        """Wait for invalidation refetches started by settled mutations."""
        while self._refetches:
            await asyncio.gather(*list(self._refetches), return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "refetching": len(self._refetches), **self.registry.get_stats()}


__all__ = ["OptimisticMutationCoordinator"]
