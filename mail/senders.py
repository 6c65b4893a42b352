"""Static search vocabulary for bank notification emails.

Kept as tuples so the lists can be handed to SearchCriteriaBuilder and
the persister without anyone mutating them at runtime.
"""

# Banks and payment processors that send transaction alerts
KNOWN_SENDERS: tuple[str, ...] = (
    "notificacion@notificacionesbaccr.com",
    "alertas@bncr.fi.cr",
    "notificaciones@bcr.fi.cr",
    "notificaciones@scotiabank.com",
    "alertas@davivienda.cr",
    "notificaciones@promerica.fi.cr",
    "alerts@paypal.com",
    "service@paypal.com",
    "no-reply@amazon.com",
)

# Subject vocabulary, Spanish and English
TRANSACTION_KEYWORDS: tuple[str, ...] = (
    "transacción",
    "transaccion",
    "cargo",
    "compra",
    "pago",
    "retiro",
    "transaction",
    "payment",
    "purchase",
)

# Substrings of sender addresses that only ever send marketing
PROMOTIONAL_SENDERS: tuple[str, ...] = (
    "promociones@scotiabankca.net",
    "marketing@",
    "promociones@",
    "offers@",
    "newsletter@",
    "noticias@",
    "comunicaciones@",
)


def is_promotional(sender: str, promotional: tuple[str, ...] = PROMOTIONAL_SENDERS) -> bool:
    """Return True if the sender address matches a promotional pattern."""
    address = (sender or "").lower()
    if not address:
        return False
    return any(pattern.lower() in address for pattern in promotional)
