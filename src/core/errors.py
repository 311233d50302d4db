# error kinds raised by the rules and the store, caught by screens


class ShopError(Exception):
    """
    Base class for every error a user action can run into.
    Screens catch this and show the message as a notification.
    """


class InvalidCredentialsError(ShopError):
    def __init__(self) -> None:
        super().__init__("Invalid username or password.")


class ProductNotFoundError(ShopError):
    def __init__(self, product: str, unit: str | None = None) -> None:
        self.product = product
        self.unit = unit
        what = f"{product} ({unit})" if unit else product
        super().__init__(f"{what} is not in this shop's inventory.")


class InsufficientStockError(ShopError):
    def __init__(self, product: str, requested: int, available: int) -> None:
        self.product = product
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough {product} in stock: requested {requested}, "
            f"only {available} available."
        )


class UnsupportedUnitError(ShopError):
    def __init__(self, unit: str) -> None:
        self.unit = unit
        super().__init__(f"Cannot convert from unit '{unit}'.")


class ValidationError(ShopError):
    """Bad form input: empty, non-numeric or negative values and the like."""


class PersistenceError(ShopError):
    """A store operation failed; prior state is left unchanged."""
