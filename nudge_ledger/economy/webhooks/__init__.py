from nudge_ledger.economy.webhooks.catalog import PriceCatalog, get_price_catalog
from nudge_ledger.economy.webhooks.service import WebhookPolicy, WebhookProcessor, WebhookResult, WebhookStatus

__all__ = [
    "PriceCatalog",
    "WebhookPolicy",
    "WebhookProcessor",
    "WebhookResult",
    "WebhookStatus",
    "get_price_catalog",
]
