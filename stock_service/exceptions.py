"""
Domain exceptions for the stock service.

Each exception carries the HTTP status code the API answers with; the
translation to a response happens in main.py.
"""


class StockError(Exception):
    """Base class for every rejected stock or catalog operation."""
    status_code = 500
    default_detail = "Stock operation failed."

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self):
        return {"detail": self.detail}


class NotFound(StockError):
    """Raised when a product id does not reference an existing product."""
    status_code = 404
    default_detail = "Product not found."


class DuplicateSku(StockError):
    """Raised when a SKU is already used by another product (exact match)."""
    status_code = 409
    default_detail = "SKU already registered."

    def __init__(self, sku, detail=None):
        self.sku = sku
        super().__init__(detail or f"SKU '{sku}' already registered.")


class InsufficientBalance(StockError):
    """Raised when an OUT movement asks for more than the current balance."""
    status_code = 422
    default_detail = "OUT quantity exceeds the current product balance."

    def __init__(self, requested, available, detail=None):
        self.requested = requested
        self.available = available
        super().__init__(detail)

    def to_dict(self):
        return {
            "detail": self.detail,
            "requested": self.requested,
            "available": self.available,
        }


class InvalidInput(StockError):
    """Raised for missing or malformed input detected before any write."""
    status_code = 400
    default_detail = "Invalid input."


class InvalidQuantity(InvalidInput):
    """Raised when a quantity is not a positive integer."""
    default_detail = "Quantity must be a positive integer."
