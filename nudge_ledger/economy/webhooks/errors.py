class WebhookError(Exception):
    pass


class WebhookSignatureError(WebhookError):
    pass


class WebhookPayloadError(WebhookError):
    pass


class PriceCatalogError(WebhookError):
    pass
