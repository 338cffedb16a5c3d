"""Shared FastAPI dependencies."""

from fastapi import Request

from referral_engine.referral.service import ReferralService


def get_referral_service(request: Request) -> ReferralService:
    """Service instance created with the app."""
    return request.app.state.referral_service
