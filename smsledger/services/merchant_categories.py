"""
Merchant category lookup.

Stored overrides win over the built-in keyword table. Lookup is a pure
function of the snapshot the index was built from.
"""
from typing import Dict, Iterable, Mapping, Optional, Tuple

from smsledger.models.patterns import MessageSubtype

# Keyword -> category. Matched by containment against the upper-cased merchant.
MERCHANT_KEYWORDS: Tuple[Tuple[str, MessageSubtype], ...] = (
    ("ZOMATO", MessageSubtype.FOOD),
    ("SWIGGY", MessageSubtype.FOOD),
    ("DOMINOS", MessageSubtype.FOOD),
    ("MCDONALD", MessageSubtype.FOOD),
    ("KFC", MessageSubtype.FOOD),
    ("STARBUCKS", MessageSubtype.FOOD),
    ("RESTAURANT", MessageSubtype.FOOD),
    ("CAFE", MessageSubtype.FOOD),
    ("APOLLO", MessageSubtype.HEALTH),
    ("PHARMACY", MessageSubtype.HEALTH),
    ("PHARMEASY", MessageSubtype.HEALTH),
    ("NETMEDS", MessageSubtype.HEALTH),
    ("HOSPITAL", MessageSubtype.HEALTH),
    ("CLINIC", MessageSubtype.HEALTH),
    ("AMAZON", MessageSubtype.SHOPPING),
    ("FLIPKART", MessageSubtype.SHOPPING),
    ("MYNTRA", MessageSubtype.SHOPPING),
    ("AJIO", MessageSubtype.SHOPPING),
    ("MEESHO", MessageSubtype.SHOPPING),
    ("UBER", MessageSubtype.TRAVEL),
    ("OLA", MessageSubtype.TRAVEL),
    ("RAPIDO", MessageSubtype.TRAVEL),
    ("IRCTC", MessageSubtype.TRAVEL),
    ("MAKEMYTRIP", MessageSubtype.TRAVEL),
    ("INDIGO", MessageSubtype.TRAVEL),
    ("NETFLIX", MessageSubtype.ENTERTAINMENT),
    ("SPOTIFY", MessageSubtype.ENTERTAINMENT),
    ("HOTSTAR", MessageSubtype.ENTERTAINMENT),
    ("BOOKMYSHOW", MessageSubtype.ENTERTAINMENT),
    ("PVR", MessageSubtype.ENTERTAINMENT),
    ("ELECTRICITY", MessageSubtype.BILLS),
    ("AIRTEL", MessageSubtype.BILLS),
    ("JIO", MessageSubtype.BILLS),
    ("BROADBAND", MessageSubtype.BILLS),
    ("RECHARGE", MessageSubtype.BILLS),
    ("INSURANCE", MessageSubtype.BILLS),
    ("SALARY", MessageSubtype.SALARY),
    ("PAYROLL", MessageSubtype.SALARY),
)


class MerchantCategoryIndex:
    """Resolves a merchant name to a category."""

    def __init__(self, overrides: Optional[Mapping[str, str]] = None):
        self._overrides: Dict[str, MessageSubtype] = {}
        for name, category in (overrides or {}).items():
            key = name.strip().upper()
            if key:
                self._overrides[key] = MessageSubtype(category)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, str]]) -> "MerchantCategoryIndex":
        return cls({row["merchant_name"]: row["category"] for row in rows})

    def lookup(self, merchant_name: Optional[str]) -> Optional[MessageSubtype]:
        """
        Exact override, then containment either way against overrides, then
        built-in keywords, else OTHER. Returns None for an empty merchant.
        """
        if not merchant_name or not merchant_name.strip():
            return None
        cleaned = merchant_name.strip().upper()

        exact = self._overrides.get(cleaned)
        if exact is not None:
            return exact

        for name, category in self._overrides.items():
            if name in cleaned or cleaned in name:
                return category

        for keyword, category in MERCHANT_KEYWORDS:
            if keyword in cleaned:
                return category

        return MessageSubtype.OTHER
