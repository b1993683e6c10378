import random
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from rewards_ledger.core.database import utc_now
from rewards_ledger.models import AdminLog, AdminOperationType

admin_logger = logging.getLogger("[ADMIN]")


def get_extra_data_log(obj: object) -> dict:
    """Column values of a model row, for `logger.info(..., extra=...)`."""
    return {
        column.name: getattr(obj, column.name)
        for column in obj.__table__.columns
    }


def generate_admin_log_id(operation_type: str) -> str:
    # "adjust_balance" -> "ab_004211"
    prefix = "".join(word[0] for word in operation_type.split("_"))
    return f"{prefix}_{random.randint(0, 999999):06d}"


async def write_admin_log(
    session: AsyncSession,
    operation_type: AdminOperationType,
    entity: str,
    entity_id: str | None,
    changes: dict,
    operator_id: str | None = None,
) -> AdminLog:
    """Adds an AdminLog row to the caller's transaction."""
    admin_log = AdminLog(
        id=generate_admin_log_id(operation_type.value),
        operation_type=operation_type,
        operator_id=operator_id,
        entity=entity,
        entity_id=entity_id,
        changes=changes,
        created_at=utc_now(),
    )
    session.add(admin_log)
    await session.flush()

    admin_logger.info(
        f"{operation_type.value}. AdminLog:", extra=get_extra_data_log(admin_log)
    )
    return admin_log
