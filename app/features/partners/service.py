"""
Partner service: CRUD + attribution of quotes/estimates to partners.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import NotFoundError, ValidationError
from app.core.principal import Principal
from app.features.partners.repo import PartnersRepo
from app.features.partners.schemas import PartnerCreate, PartnerRead, PartnerUpdate

logger = logging.getLogger(__name__)


async def create_partner(db: AsyncIOMotorDatabase, data: PartnerCreate) -> PartnerRead:
    logger.info("create_partner:start code=%s modes=%s", data.code, data.modes)
    doc = await PartnersRepo(db).create(data.model_dump(mode="json"))
    logger.info("create_partner:done partner_id=%s", doc["id"])
    return PartnerRead(**doc)


async def list_partners(db: AsyncIOMotorDatabase, *, status: Optional[str] = None, limit: int = 100) -> list[PartnerRead]:
    docs = await PartnersRepo(db).list(status=status, limit=limit)
    logger.debug("list_partners count=%s", len(docs))
    return [PartnerRead(**d) for d in docs]


async def get_partner(db: AsyncIOMotorDatabase, partner_id: str) -> PartnerRead:
    doc = await PartnersRepo(db).get(partner_id)
    if not doc:
        raise NotFoundError(code="partner_not_found", message="Partner not found", details={"partner_id": partner_id})
    return PartnerRead(**doc)


async def update_partner(db: AsyncIOMotorDatabase, partner_id: str, patch: PartnerUpdate) -> PartnerRead:
    update = patch.model_dump(mode="json", exclude_unset=True)
    logger.info("update_partner partner_id=%s fields=%s", partner_id, sorted(update.keys()))
    doc = await PartnersRepo(db).update(partner_id, update)
    return PartnerRead(**doc)


@dataclass(frozen=True)
class Attribution:
    partner_id: Optional[str] = None
    partner_mode: Optional[str] = None
    rate_discount: float = 0.0

    def as_fields(self) -> dict:
        return {
            "partner_id": self.partner_id,
            "partner_mode": self.partner_mode,
            "rate_discount": self.rate_discount,
        }


NO_ATTRIBUTION = Attribution()


async def resolve_attribution(
    db: AsyncIOMotorDatabase,
    *,
    partner_code: Optional[str],
    principal: Optional[Principal],
) -> Attribution:
    """
    - partner_code given            -> mode A referral (consumer pays list price)
    - caller is a mode-B partner    -> mode B trade-in at the partner's discount
    - otherwise                     -> consumer, no attribution
    """
    repo = PartnersRepo(db)

    if partner_code:
        partner = await repo.get_by_code(partner_code)
        if not partner:
            raise ValidationError(
                code="partner_code",
                message="Unknown partner code",
                details={"partner_code": partner_code},
            )
        return Attribution(partner_id=partner["id"], partner_mode="A")

    if principal is not None and principal.is_partner and "B" in principal.modes:
        partner = await repo.get(principal.id)
        if not partner:
            raise NotFoundError(code="partner_not_found", message="Partner not found", details={"partner_id": principal.id})
        if partner.get("status") != "active" or "B" not in (partner.get("modes") or []):
            raise ValidationError(
                code="partner_mode",
                message="Partner is not active for mode B trade-ins",
                details={"partner_id": principal.id},
            )
        return Attribution(
            partner_id=partner["id"],
            partner_mode="B",
            rate_discount=float(partner.get("rate_discount") or 0),
        )

    return NO_ATTRIBUTION
