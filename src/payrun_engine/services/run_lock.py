"""Exclusive run-level lock for mutating operations.

The lock is the ``locked_by``/``locked_at`` pair on the run row. It is taken
with a single conditional UPDATE that also checks the run's status, and the
UPDATE is committed in its own short transaction before any work starts, so
a second caller sees the lock immediately and fails fast instead of waiting.

A lock older than ``RUN_LOCK_TIMEOUT_SECONDS`` is treated as abandoned (the
holder crashed) and may be taken over.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payrun_engine.errors import ConflictError, NotFoundError
from payrun_engine.models import PayrollRun
from payrun_engine.models.base import utcnow
from payrun_engine.services.state_machine import RunStateMachine

logger = logging.getLogger(__name__)


class RunLockService:
    """Acquires and releases the persisted run lock."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: int = 900,
    ):
        self.session_factory = session_factory
        self.timeout = timedelta(seconds=timeout_seconds)

    async def acquire(
        self,
        tenant_id: UUID,
        run_id: UUID,
        operation: str,
    ) -> str:
        """Take the lock for ``operation``.

        Returns:
            The lock token, needed to release the lock

        Raises:
            NotFoundError: If the run does not exist for this tenant
            StateError: If the run's status does not allow the operation
            ConflictError: If another operation holds the lock
        """
        allowed = [s.value for s in RunStateMachine.OPERATION_ALLOWED[operation]]
        token = f"{operation}:{uuid4().hex}"
        now = utcnow()

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(PayrollRun)
                    .where(
                        PayrollRun.run_id == run_id,
                        PayrollRun.tenant_id == tenant_id,
                        PayrollRun.status.in_(allowed),
                        or_(
                            PayrollRun.locked_by.is_(None),
                            PayrollRun.locked_at < now - self.timeout,
                        ),
                    )
                    .values(locked_by=token, locked_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    logger.debug("Run %s locked for %s", run_id, operation)
                    return token

                row = (
                    await session.execute(
                        select(PayrollRun.status, PayrollRun.locked_by).where(
                            PayrollRun.run_id == run_id,
                            PayrollRun.tenant_id == tenant_id,
                        )
                    )
                ).first()

        if row is None:
            raise NotFoundError("Payroll run", run_id)
        RunStateMachine.validate_operation(operation, row.status)
        logger.info("Run %s is locked by %s; rejecting %s", run_id, row.locked_by, operation)
        raise ConflictError(run_id, operation)

    async def release(self, run_id: UUID, token: str) -> None:
        """Release the lock if ``token`` still holds it.

        Used after a failed operation; successful operations clear the lock
        in their own transaction.
        """
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(PayrollRun)
                    .where(PayrollRun.run_id == run_id, PayrollRun.locked_by == token)
                    .values(locked_by=None, locked_at=None)
                    .execution_options(synchronize_session=False)
                )

    @staticmethod
    def verify(run: PayrollRun, token: str, operation: str) -> None:
        """Raise ConflictError if the lock was taken over since acquire."""
        if run.locked_by != token:
            raise ConflictError(run.run_id, operation)

    @staticmethod
    def clear(run: PayrollRun) -> None:
        run.locked_by = None
        run.locked_at = None
