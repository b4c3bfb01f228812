"""Merchant category overrides used when inferring a message subtype."""
from typing import List

from fastapi import APIRouter, Depends

from smsledger.core.auth import Actor, require_roles
from smsledger.core.database import get_db
from smsledger.models.users import MerchantCategory, MerchantCategoryRequest, Role
from smsledger.services.logging import log_event

router = APIRouter(prefix="/merchant-categories", tags=["Merchant Categories"])


@router.get("", response_model=List[MerchantCategory])
def list_categories(actor: Actor = Depends(require_roles(Role.MAKER, Role.CHECKER, Role.ADMIN))):
    return [MerchantCategory(**row) for row in get_db().list_merchant_categories()]


@router.post("", response_model=MerchantCategory)
def upsert_category(
    request: MerchantCategoryRequest,
    actor: Actor = Depends(require_roles(Role.MAKER, Role.ADMIN)),
):
    """Create or replace the category for a merchant name."""
    row = get_db().upsert_merchant_category(request.merchant_name, request.category)
    log_event("merchant_category_saved", merchant_name=row["merchant_name"], category=row["category"])
    return MerchantCategory(**row)
