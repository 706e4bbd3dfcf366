"""Offer routes.

Providers submit, edit and withdraw offers on open job requests. Offers
are accepted or rejected only through POST /jobs/{job_id}/assign.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from marketplace.logging_config import get_logger
from marketplace.offers.models import Offer

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

logger = get_logger("api.offers")
router = APIRouter(tags=["offers"])

OfferStatus = Literal["pending", "accepted", "rejected"]


class OfferCreate(BaseModel):
    """Request to submit an offer."""

    budget: float = Field(..., ge=0)
    message: str = ""
    estimated_days: int = Field(1, ge=1)


class OfferUpdate(BaseModel):
    """New terms for a pending offer. Omitted fields keep their value."""

    budget: float | None = Field(None, ge=0)
    message: str | None = None
    estimated_days: int | None = Field(None, ge=1)


class OfferResponse(BaseModel):
    """Offer details response."""

    id: str
    job_request_id: str
    provider_id: str
    budget: float
    message: str
    estimated_days: int
    status: OfferStatus
    created_at: datetime
    updated_at: datetime


def to_offer_response(offer: Offer) -> OfferResponse:
    return OfferResponse(**offer.to_dict())


@router.post(
    "/jobs/{job_id}/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("20/minute")
def submit_offer(
    request: Request,
    job_id: str,
    body: OfferCreate,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Submit an offer on an open job request (providers only).

    The price must fall within the job's budget range, and each provider
    may submit one offer per job.
    """
    logger.info(f"POST /jobs/{job_id}/offers | provider={actor.actor_id} | budget={body.budget}")
    offer = m.offers.submit(
        job_id,
        actor.actor_id,
        budget=body.budget,
        message=body.message,
        estimated_days=body.estimated_days,
    )
    return to_offer_response(offer)


@router.get("/jobs/{job_id}/offers", response_model=list[OfferResponse])
@limiter.limit("60/minute")
def list_offers_for_job(request: Request, job_id: str, actor: ActorDep, m: MarketplaceDep):
    """
    List offers for a job, in submission order.

    The job owner and admins see every offer; anyone else sees only their own.
    """
    job = m.jobs.get(job_id)
    offers = m.offers.list_for(job_id)
    if actor.actor_id != job.seeker_id and not actor.is_admin:
        offers = [o for o in offers if o.provider_id == actor.actor_id]
    return [to_offer_response(o) for o in offers]


@router.get("/offers/mine", response_model=list[OfferResponse])
@limiter.limit("60/minute")
def list_my_offers(
    request: Request,
    actor: ActorDep,
    m: MarketplaceDep,
    status_filter: OfferStatus | None = Query(None, alias="status"),
):
    """Offers the caller has submitted."""
    return [
        to_offer_response(o) for o in m.offers.list_for_provider(actor.actor_id, status_filter)
    ]


@router.get("/offers/{offer_id}", response_model=OfferResponse)
@limiter.limit("60/minute")
def get_offer(request: Request, offer_id: str, actor: ActorDep, m: MarketplaceDep):
    """Get one offer (its provider, the job owner, or an admin)."""
    offer = m.offers.get(offer_id)
    if actor.actor_id != offer.provider_id and not actor.is_admin:
        job = m.jobs.get(offer.job_request_id)
        if actor.actor_id != job.seeker_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to view this offer",
            )
    return to_offer_response(offer)


@router.patch("/offers/{offer_id}", response_model=OfferResponse)
@limiter.limit("20/minute")
def update_offer(
    request: Request,
    offer_id: str,
    body: OfferUpdate,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """Change the terms of a pending offer (its provider only)."""
    changes = body.model_dump(exclude_none=True)
    logger.info(f"PATCH /offers/{offer_id} | provider={actor.actor_id} | fields={sorted(changes)}")
    return to_offer_response(m.offers.update(offer_id, actor.actor_id, **changes))


@router.delete("/offers/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def withdraw_offer(request: Request, offer_id: str, actor: ActorDep, m: MarketplaceDep):
    """Withdraw a pending offer (its provider only)."""
    logger.info(f"DELETE /offers/{offer_id} | provider={actor.actor_id}")
    m.offers.withdraw(offer_id, actor.actor_id)
