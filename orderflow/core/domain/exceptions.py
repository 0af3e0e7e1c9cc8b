# orderflow/core/domain/exceptions.py
class DomainError(Exception):
    """Base class for all domain-level exceptions."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

# --- Entity Not Found Errors ---


class OrderNotFoundError(DomainError):
    """Raised when an operation targets an order id that does not exist."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order '{order_id}' not found.")

# --- Validation Errors ---


class OrderValidationError(DomainError):
    """Raised when submitted order data or a status request fails validation."""
    pass


class InvalidCursorError(DomainError):
    """Raised when a pagination cursor cannot be parsed."""
    def __init__(self, cursor: str):
        self.cursor = cursor
        super().__init__(f"Invalid cursor '{cursor}'.")

# --- Conflict Errors ---


class DuplicateTransactionError(DomainError):
    """Raised when the normalized transaction id is already bound to an order."""
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            "This transaction ID has already been used. "
            "Please enter a valid and unused transaction ID."
        )


class InvalidStatusTransitionError(DomainError):
    """Raised when a status change is not allowed from the order's current state."""
    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order '{order_id}' cannot move from {current} to {target}.")


class UploadNotReplaceableError(DomainError):
    """Raised when a payment screenshot is re-uploaded while the previous one did not fail."""
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(
            f"Payment screenshot for order '{order_id}' can only be replaced "
            "after a failed upload while the order is still Placed."
        )
