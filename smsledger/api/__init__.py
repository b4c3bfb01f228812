from smsledger.api.admin import router as admin_router
from smsledger.api.auth import router as auth_router
from smsledger.api.extraction import router as extraction_router
from smsledger.api.merchant_categories import router as merchant_categories_router
from smsledger.api.patterns import router as patterns_router
from smsledger.api.transactions import router as transactions_router

__all__ = [
    "admin_router",
    "auth_router",
    "extraction_router",
    "merchant_categories_router",
    "patterns_router",
    "transactions_router",
]
