"""
User & Debt API Endpoints.

Client management, profiles with financial summaries, manual debt
adjustments and the debt log.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from poscrm.app.db.session import get_db
from poscrm.app.core.config import settings
from poscrm.app.models.user import User
from poscrm.app.models.enums import UserRole
from poscrm.app.models.order import Order
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.models.ledger_enums import LedgerEntryKind
from poscrm.app.schemas.user import (
    ClientCreate, UserUpdate, UserListItem, UserListResponse,
    FinancialSummary, UserProfileResponse, DeleteUserResponse,
)
from poscrm.app.schemas.order import OrderSummary
from poscrm.app.schemas.ledger import (
    DebtAdjustmentRequest, DebtAdjustmentResponse, LedgerEntryResponse,
    DebtLogItem, DebtLogResponse, DebtLogCleanupResponse,
)
from poscrm.app.core.dependencies import get_current_user
from poscrm.app.core.guards import require_admin, enforce_ownership, is_admin
from poscrm.app.core.exceptions import ResourceNotFoundError, BusinessRuleError
from poscrm.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from poscrm.app.domain.ledger.balance import BalanceDeriver, get_balance_deriver
from poscrm.app.domain.ledger.ledger_store import LedgerStore
from poscrm.app.services.audit import log_admin_action, AuditAction

router = APIRouter(prefix="/users", tags=["Users"])


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


async def _ensure_email_free(db: AsyncSession, email: Optional[str], exclude_id: Optional[int] = None):
    if not email:
        return
    query = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    if (await db.execute(query)).first():
        raise BusinessRuleError(
            "A user with this email already exists",
            error_code="ERR_USER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"email": email}
        )


@router.get("", response_model=UserListResponse)
async def list_users(
    search: Optional[str] = Query(None, description="Name or email"),
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List users (admin-only)."""
    conditions = []
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role:
        conditions.append(User.role == role)

    total = (await db.execute(select(func.count(User.id)).where(*conditions))).scalar()

    offset = (page - 1) * page_size
    query = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    result = await db.execute(query)

    return UserListResponse(
        users=[UserListItem.model_validate(user) for user in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/clients", response_model=list[UserListItem])
async def list_clients(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All clients by name, for order forms."""
    result = await db.execute(
        select(User).where(User.role == UserRole.CLIENT).order_by(User.name, User.id)
    )
    return [UserListItem.model_validate(user) for user in result.scalars().all()]


@router.post("", response_model=UserListItem, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a client record (admin-only). Clients get no password."""
    await _ensure_email_free(db, client_data.email)

    client = User(
        name=client_data.name.strip(),
        email=client_data.email,
        phone=client_data.phone,
        role=UserRole.CLIENT,
        is_active=True
    )
    db.add(client)
    await db.commit()
    await db.refresh(client)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.CLIENT_CREATED,
        target_type="client",
        target_id=client.id,
        metadata={"name": client.name}
    )

    return UserListItem.model_validate(client)


# Debt log routes are declared before /{user_id} so the path is not taken as an id
@router.get("/debt-logs", response_model=DebtLogResponse)
async def get_debt_logs(
    client_name: Optional[str] = Query(None, description="Substring of the client name"),
    on_date: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD (UTC)"),
    client_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    admin: dict = Depends(require_admin),
    deriver: BalanceDeriver = Depends(get_balance_deriver),
    db: AsyncSession = Depends(get_db)
):
    """
    Debt log, newest first (admin-only).

    Each entry carries the client's debt in its currency right before and
    right after it.
    """
    records, total = await LedgerStore.query(
        db,
        client_id=client_id,
        client_name=client_name,
        on_date=on_date,
        page=page,
        page_size=page_size
    )
    histories = await deriver.histories(db, [record.entry for record in records])

    logs = []
    for record in records:
        entry = record.entry
        history = histories[entry.id]
        logs.append(DebtLogItem(
            id=entry.id,
            client_id=entry.client_id,
            client_name=record.client_name,
            client_email=record.client_email,
            currency=entry.currency,
            amount=entry.amount,
            kind=entry.kind,
            notes=entry.notes,
            order_id=entry.order_id,
            created_by_name=record.created_by_name,
            created_at=entry.created_at,
            debt_before=history.debt_before,
            debt_after=history.debt_after,
        ))

    return DebtLogResponse(
        logs=logs,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0
    )


@router.delete("/debt-logs/cleanup", response_model=DebtLogCleanupResponse)
async def cleanup_debt_logs(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete debt log entries older than the retention period (admin-only).

    Balances are derived from the remaining entries afterwards.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(days=settings.debt_log_retention_days)
    deleted = await LedgerStore.purge_older_than(db, cutoff)
    await db.commit()

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.DEBT_LOGS_PURGED,
        target_type="debt_ledger",
        target_id=None,
        metadata={"deleted": deleted, "cutoff": cutoff.isoformat()}
    )

    return DebtLogCleanupResponse(success=True, deleted_count=deleted, cutoff=cutoff)


@router.get("/{user_id}", response_model=UserListItem)
async def get_user(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Own profile, or any user for admins."""
    enforce_ownership(user_id, current_user, "user")
    return UserListItem.model_validate(await _get_user(db, user_id))


@router.patch("/{user_id}", response_model=UserListItem)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update contact details (self or admin).

    Deactivating a user revokes all of their tokens; reactivating lifts
    the revocation.
    """
    enforce_ownership(user_id, current_user, "user")
    user = await _get_user(db, user_id)
    changes = user_data.model_dump(exclude_unset=True)

    if "is_active" in changes and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can activate or deactivate users"
        )
    activation_changed = "is_active" in changes and changes["is_active"] != user.is_active

    if changes.get("email"):
        await _ensure_email_free(db, changes["email"], exclude_id=user_id)
    if changes.get("name"):
        changes["name"] = changes["name"].strip()

    for field, value in changes.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)

    if activation_changed:
        if user.is_active:
            await clear_user_token_revocation(user_id)
        else:
            await revoke_all_user_tokens(user_id)

    await log_admin_action(
        db=db,
        current_user=current_user,
        action=AuditAction.CLIENT_UPDATED,
        target_type="user",
        target_id=user_id,
        metadata={"fields": sorted(changes.keys())}
    )

    return UserListItem.model_validate(user)


@router.get("/{user_id}/profile", response_model=UserProfileResponse)
async def get_user_profile(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    deriver: BalanceDeriver = Depends(get_balance_deriver),
    db: AsyncSession = Depends(get_db)
):
    """
    User with recent orders and a financial summary.

    Revenue counts completed orders only; debt is the signed ledger balance.
    """
    enforce_ownership(user_id, current_user, "user")
    user = await _get_user(db, user_id)

    recent = await db.execute(
        select(Order)
        .where(Order.client_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(10)
    )

    counts_result = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.client_id == user_id)
        .group_by(Order.status)
    )
    order_counts = {s.value: 0 for s in OrderStatus}
    for order_status, count in counts_result.all():
        order_counts[order_status.value] = count

    financials = FinancialSummary(
        revenue=await deriver.revenue(db, client_id=user_id),
        debt=await deriver.balances(db, user_id),
        order_counts=order_counts,
        total_orders=sum(order_counts.values())
    )

    return UserProfileResponse(
        user=UserListItem.model_validate(user),
        recent_orders=[OrderSummary.model_validate(order) for order in recent.scalars().all()],
        financials=financials
    )


@router.delete("/{user_id}", response_model=DeleteUserResponse)
async def delete_user(
    user_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a client (admin-only).

    Refused for admins and for clients with orders that are not completed.
    The client's debt entries go with it; completed orders are kept.
    """
    user = await _get_user(db, user_id)

    if user.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin users cannot be deleted"
        )

    open_orders = (await db.execute(
        select(func.count(Order.id)).where(
            Order.client_id == user_id,
            Order.status != OrderStatus.COMPLETED
        )
    )).scalar()
    if open_orders:
        raise BusinessRuleError(
            f"Client has {open_orders} orders that are not completed",
            error_code="ERR_USER_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"user_id": user_id, "open_orders": open_orders}
        )

    name = user.name
    await db.delete(user)
    await db.commit()

    await revoke_all_user_tokens(user_id)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.CLIENT_DELETED,
        target_type="client",
        target_id=user_id,
        metadata={"name": name}
    )

    return DeleteUserResponse(success=True, message=f"Client '{name}' deleted", user_id=user_id)


@router.post("/{user_id}/debt", response_model=DebtAdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def adjust_debt(
    user_id: int,
    adjustment: DebtAdjustmentRequest,
    admin: dict = Depends(require_admin),
    deriver: BalanceDeriver = Depends(get_balance_deriver),
    db: AsyncSession = Depends(get_db)
):
    """
    Manual debt adjustment (admin-only).

    Positive amounts reduce the client's debt (payments), negative amounts
    increase it. The balance may go negative (credit).
    """
    user = await _get_user(db, user_id)
    if user.role != UserRole.CLIENT:
        raise BusinessRuleError(
            "Debt can only be adjusted for clients",
            error_code="ERR_LEDGER_002",
            details={"user_id": user_id, "role": user.role.value}
        )

    entry = await LedgerStore.append(
        db,
        client_id=user_id,
        currency=adjustment.currency,
        amount=adjustment.amount,
        kind=LedgerEntryKind.MANUAL_ADJUSTMENT,
        notes=adjustment.notes,
        created_by=admin.get("user_id"),
    )
    history = await deriver.history(db, entry)
    balances = await deriver.balances(db, user_id)
    await db.commit()

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.DEBT_ADJUSTED,
        target_type="client",
        target_id=user_id,
        metadata={
            "ledger_entry_id": entry.id,
            "currency": entry.currency.value,
            "amount": str(entry.amount),
        }
    )

    return DebtAdjustmentResponse(
        entry=LedgerEntryResponse.model_validate(entry),
        debt_before=history.debt_before,
        debt_after=history.debt_after,
        balances=balances
    )
