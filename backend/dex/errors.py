"""
DEX service errors.
Every registry / tracker mutation raises one of these; the REST layer turns
them into ``{"success": false, "error": ...}`` responses.
"""


class DexError(Exception):
    """Base error. ``status_code`` is the HTTP status the API answers with."""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidPairError(DexError):
    """Base/quote symbols are missing or identical."""


class PairNotFoundError(DexError):
    status_code = 404

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Trading pair not found: {symbol}")


class TokenNotFoundError(DexError):
    status_code = 404

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Token not found: {symbol}")


class AlertNotFoundError(DexError):
    status_code = 404

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


class InvalidAlertError(DexError):
    """Unknown alert type or non-numeric threshold."""


class PriceFeedError(DexError):
    """Upstream price API failed (network error, rate limit, bad payload)."""

    status_code = 502


class InvalidMarketMakingError(DexError):
    """Market-making option out of range or unknown."""
