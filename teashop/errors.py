"""
Common Errors

Centralized error messages and the exception taxonomy shared by the
cart store, the sync client and the API server.
"""

# Cart errors
ERROR_INVALID_QUANTITY = "Invalid quantity"
ERROR_CART_ITEM_NOT_FOUND = "Cart item not found"

# Product errors
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_PRODUCT_OUT_OF_STOCK = "Product out of stock"

# Auth errors
ERROR_UNAUTHORIZED = "Unauthorized"
ERROR_FORBIDDEN = "Forbidden"

# Transport / storage errors
ERROR_REMOTE_UNAVAILABLE = "Remote service unavailable"
ERROR_MALFORMED_STATE = "Malformed persisted state"
ERROR_INVALID_REQUEST = "Invalid request"


class ShopError(Exception):
    """Base class for all tea shop errors.

    ``code`` is the stable identifier sent over the wire; ``status_code``
    is the HTTP status the API server answers with.
    """

    code = "shop_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidRequest(ShopError):
    """Malformed request payload."""

    code = "invalid_request"
    status_code = 400
    default_message = ERROR_INVALID_REQUEST


class InvalidQuantity(ShopError):
    """Quantity is not a finite positive number."""

    code = "invalid_quantity"
    status_code = 400
    default_message = ERROR_INVALID_QUANTITY


class QuantityOutOfBounds(ShopError):
    """Quantity violates the product's minQuantity/maxQuantity."""

    code = "quantity_out_of_bounds"
    status_code = 400
    default_message = "Quantity is outside the allowed range"


class QuantityStepViolation(ShopError):
    """Quantity is not a multiple of the product's kgStep."""

    code = "quantity_step_violation"
    status_code = 400
    default_message = "Quantity is not a multiple of the product step"


class ProductNotFound(ShopError):
    code = "product_not_found"
    status_code = 404
    default_message = ERROR_PRODUCT_NOT_FOUND


class ProductOutOfStock(ShopError):
    code = "product_out_of_stock"
    status_code = 400
    default_message = ERROR_PRODUCT_OUT_OF_STOCK


class CartItemNotFound(ShopError):
    code = "cart_item_not_found"
    status_code = 404
    default_message = ERROR_CART_ITEM_NOT_FOUND


class Unauthorized(ShopError):
    code = "unauthorized"
    status_code = 401
    default_message = ERROR_UNAUTHORIZED


class Forbidden(ShopError):
    code = "forbidden"
    status_code = 403
    default_message = ERROR_FORBIDDEN


class RemoteUnavailable(ShopError):
    """Network failure, timeout or 5xx from a remote service."""

    code = "remote_unavailable"
    status_code = 503
    default_message = ERROR_REMOTE_UNAVAILABLE


class MalformedPersistedState(ShopError):
    """A persisted snapshot could not be decoded."""

    code = "malformed_persisted_state"
    status_code = 500
    default_message = ERROR_MALFORMED_STATE


# Wire code -> exception class, used by HTTP clients to rebuild server errors
ERRORS_BY_CODE: dict[str, type[ShopError]] = {
    cls.code: cls
    for cls in (
        InvalidRequest,
        InvalidQuantity,
        QuantityOutOfBounds,
        QuantityStepViolation,
        ProductNotFound,
        ProductOutOfStock,
        CartItemNotFound,
        Unauthorized,
        Forbidden,
        RemoteUnavailable,
        MalformedPersistedState,
    )
}
