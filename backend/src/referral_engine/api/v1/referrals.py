"""Referral API v1 endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from referral_engine.api.dependencies import get_referral_service
from referral_engine.api.rate_limit import limiter
from referral_engine.auth.middleware import require_auth, require_owner
from referral_engine.logging_config import get_logger
from referral_engine.referral.enums import ProgramType, RewardType
from referral_engine.referral.exceptions import (
    InvalidStatusError,
    InvalidTransitionError,
    ReferralError,
    ReferralNotFoundError,
)
from referral_engine.referral.programs import format_dollars
from referral_engine.referral.service import ReferralService
from referral_engine.settings import settings
from referral_engine.storage.models import Account, Referral

logger = get_logger(__name__)

router = APIRouter(prefix="/referrals", tags=["referrals"])


# ==================== MODELS ====================


class ProgramSettingsUpdate(BaseModel):
    """Partial settings for one program. Omitted fields keep their value."""
    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None
    referrer_reward: int | None = Field(default=None, ge=0)
    referred_reward: int | None = Field(default=None, ge=0)
    cleanings_required: int | None = Field(default=None, ge=1)
    reward_type: RewardType | None = None
    # Explicit null means unlimited
    max_per_month: int | None = Field(default=None, ge=1)
    discount_percent: float | None = Field(default=None, ge=0, le=100)
    min_referrals: int | None = Field(default=None, ge=1)


class ConfigUpdateRequest(BaseModel):
    """Update referral configuration request."""
    client_to_client: ProgramSettingsUpdate | None = None
    client_to_cleaner: ProgramSettingsUpdate | None = None
    cleaner_to_cleaner: ProgramSettingsUpdate | None = None
    cleaner_to_client: ProgramSettingsUpdate | None = None
    change_note: str | None = Field(default=None, max_length=1000)


class StatusUpdateRequest(BaseModel):
    """Manual referral status change."""
    status: str = Field(..., min_length=1)


class ApplyCreditsRequest(BaseModel):
    """Spend referral credits on an appointment."""
    appointment_id: int
    amount: int | None = Field(default=None, gt=0, description="Cents; omit to apply the maximum")


class ApplyCreditsResponse(BaseModel):
    """Result of a successful credit spend."""
    success: bool
    amount_applied: int
    amount_applied_dollars: str
    remaining_credits: int
    new_price_cents: int


class ShareRequest(BaseModel):
    """Share action (copy, sms, email, social)."""
    platform: str | None = Field(default=None, max_length=50)


class CreditsResponse(BaseModel):
    """Available referral credits."""
    available_credits: int
    available_dollars: str


# ==================== HELPERS ====================


def _party(account: Account | None, full: bool = False) -> dict[str, Any] | None:
    if not account:
        return None
    data = {
        "first_name": account.first_name,
        "type": account.account_type or "homeowner",
    }
    if full:
        data["id"] = account.id
        data["last_name"] = account.last_name
    return data


def _admin_view(referral: Referral) -> dict[str, Any]:
    return {
        "id": referral.id,
        "referrer": _party(referral.referrer, full=True),
        "referred": _party(referral.referred, full=True),
        "program_type": referral.program_type,
        "status": referral.status,
        "cleanings_required": referral.cleanings_required,
        "cleanings_completed": referral.cleanings_completed,
        "referrer_reward_amount": referral.referrer_reward_amount,
        "referred_reward_amount": referral.referred_reward_amount,
        "referrer_reward_applied": referral.referrer_reward_applied,
        "referred_reward_applied": referral.referred_reward_applied,
        "created_at": referral.created_at,
        "qualified_at": referral.qualified_at,
    }


# ==================== PUBLIC ====================


@router.get("/validate/{code}")
@limiter.limit(settings.validate_rate_limit)
async def validate_code(
    request: Request,
    code: str,
    user_type: str = Query(default="homeowner", description="homeowner or cleaner"),
    service: ReferralService = Depends(get_referral_service),
):
    """Validate a referral code during signup."""
    try:
        result = service.validate_code(code, user_type)
    except Exception:
        logger.exception("referral_validate_failed", code=code)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "valid": False,
                "error": "Unable to validate referral code. Please try again.",
                "error_code": "SERVER_ERROR",
            },
        )

    if not result.valid:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "valid": False,
                "error": result.error,
                "error_code": result.error_code,
            },
        )

    return {
        "valid": True,
        "referrer": {"first_name": result.referrer["first_name"]},
        "program_type": result.program_type.value,
        "rewards": {
            "referrer_reward": result.rewards.referrer_reward,
            "referred_reward": result.rewards.referred_reward,
            "cleanings_required": result.rewards.cleanings_required,
        },
    }


@router.get("/current")
async def current_programs(service: ReferralService = Depends(get_referral_service)):
    """Active referral programs for marketing display."""
    return service.current_programs()


# ==================== OWNER ====================


@router.get("/config")
async def get_config(
    user: Account = Depends(require_owner),
    service: ReferralService = Depends(get_referral_service),
):
    """Full referral configuration, or the defaults if none is stored."""
    return service.get_config()


@router.put("/config")
async def update_config(
    body: ConfigUpdateRequest,
    user: Account = Depends(require_owner),
    service: ReferralService = Depends(get_referral_service),
):
    """Store a new configuration snapshot."""
    programs = {}
    for program in ProgramType:
        program_update = getattr(body, program.value)
        if program_update is not None:
            programs[program.value] = program_update.model_dump(exclude_unset=True, mode="json")

    if not programs:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one program configuration is required",
        )

    try:
        result = service.update_config(programs, user.id, body.change_note)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("referral_config_updated_by_owner", owner_id=user.id)

    return {
        "success": True,
        "message": "Referral configuration updated successfully",
        **result,
    }


@router.get("/history")
async def config_history(
    limit: int = Query(default=20, ge=1, le=100),
    user: Account = Depends(require_owner),
    service: ReferralService = Depends(get_referral_service),
):
    """Configuration change history."""
    history = service.config_history(limit)

    return {
        "count": len(history),
        "history": [
            {
                "id": config.id,
                "is_active": config.is_active,
                "created_at": config.created_at,
                "updated_by": (
                    {
                        "id": config.updated_by.id,
                        "first_name": config.updated_by.first_name,
                        "last_name": config.updated_by.last_name,
                    }
                    if config.updated_by
                    else None
                ),
                "change_note": config.change_note,
            }
            for config in history
        ],
    }


@router.get("/all")
async def list_referrals(
    status_filter: str | None = Query(default=None, alias="status"),
    program_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    user: Account = Depends(require_owner),
    service: ReferralService = Depends(get_referral_service),
):
    """All referrals with optional filters."""
    referrals = service.list_referrals(
        status=status_filter,
        program_type=program_type,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "count": len(referrals),
        "referrals": [_admin_view(referral) for referral in referrals],
    }


@router.patch("/{referral_id}/status")
async def update_referral_status(
    referral_id: int,
    body: StatusUpdateRequest,
    user: Account = Depends(require_owner),
    service: ReferralService = Depends(get_referral_service),
):
    """Manually change a referral's status."""
    try:
        referral = service.update_status(referral_id, body.status)
    except ReferralNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except (InvalidStatusError, InvalidTransitionError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ReferralError as e:
        logger.error("referral_status_update_failed", referral_id=referral_id, error=e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update referral status",
        )

    logger.info(
        "referral_status_set_by_owner",
        referral_id=referral_id,
        status=referral.status,
        owner_id=user.id,
    )

    return {
        "success": True,
        "message": f"Referral status updated to {referral.status}",
        "referral": {
            "id": referral.id,
            "status": referral.status,
            "qualified_at": referral.qualified_at,
            "referrer_reward_applied": referral.referrer_reward_applied,
            "referred_reward_applied": referral.referred_reward_applied,
        },
    }


# ==================== AUTHENTICATED ====================


@router.get("/my-code")
async def my_code(
    user: Account = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """Get the caller's referral code, generating it on first use."""
    result = service.my_code(user.id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return result


@router.get("/my-referrals")
async def my_referrals(
    user: Account = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """The caller's referral history and stats."""
    stats = service.stats(user.id)
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    referrals = service.referrals_by(user.id)

    return {
        "referral_code": stats.referral_code,
        "available_credits": stats.available_credits,
        "stats": {
            "total_referrals": stats.total_referrals,
            "pending": stats.pending,
            "qualified": stats.qualified,
            "rewarded": stats.rewarded,
            "total_earned": stats.total_earned,
        },
        "referrals": [
            {
                "id": referral.id,
                "referred": _party(referral.referred),
                "program_type": referral.program_type,
                "status": referral.status,
                "cleanings_completed": referral.cleanings_completed,
                "cleanings_required": referral.cleanings_required,
                "reward_amount": referral.referrer_reward_amount,
                "reward_applied": referral.referrer_reward_applied,
                "created_at": referral.created_at,
            }
            for referral in referrals
        ],
    }


@router.get("/my-credits", response_model=CreditsResponse)
async def my_credits(
    user: Account = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """Available referral credits."""
    credits = service.available_credits(user.id)
    return CreditsResponse(
        available_credits=credits,
        available_dollars=f"{credits / 100:.2f}",
    )


@router.post("/apply-credits", response_model=ApplyCreditsResponse)
async def apply_credits(
    body: ApplyCreditsRequest,
    user: Account = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """Apply referral credits to an appointment."""
    result = service.spend_credits(user.id, body.appointment_id, body.amount)

    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return ApplyCreditsResponse(
        success=True,
        amount_applied=result.amount_applied,
        amount_applied_dollars=format_dollars(result.amount_applied).lstrip("$"),
        remaining_credits=result.remaining_credits,
        new_price_cents=result.new_price_cents,
    )


@router.post("/share")
async def share(
    body: ShareRequest,
    user: Account = Depends(require_auth),
    service: ReferralService = Depends(get_referral_service),
):
    """Record that the caller shared their code."""
    service.log_share(user.id, body.platform)
    return {"success": True}
