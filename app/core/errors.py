# app/core/errors.py

from typing import Any, Dict, Optional

from fastapi import status

from app.core import locales


class LedgerError(Exception):
    """
    Базовая ошибка операций с баллами.
    `code` - машиночитаемый код для кассы, `status_code` - HTTP-статус ответа.
    """
    code = "LEDGER_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class InvalidInput(LedgerError):
    code = "INVALID_INPUT"


class AccountNotFound(LedgerError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, account_id: int):
        super().__init__(locales.ERROR_ACCOUNT_NOT_FOUND, {"account_id": account_id})


class AccountInactive(LedgerError):
    code = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: int):
        super().__init__(locales.ERROR_ACCOUNT_INACTIVE, {"account_id": account_id})


class StoreNotFound(LedgerError):
    code = "STORE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, store_id: int):
        super().__init__(locales.ERROR_STORE_NOT_FOUND, {"store_id": store_id})


class DuplicateOperation(LedgerError):
    """Сигнал кассе, что запрос уже обработан. Не фатальная ошибка."""
    code = "DUPLICATE_TRANSACTION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self):
        super().__init__(locales.ERROR_DUPLICATE_OPERATION)


class BusinessRuleViolation(LedgerError):
    code = "BUSINESS_RULE_VIOLATION"


class InsufficientBalance(BusinessRuleViolation):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, available: int, requested: int):
        super().__init__(
            locales.ERROR_INSUFFICIENT_BALANCE.format(available=available),
            {"available": available, "requested": requested},
        )
        self.available = available


class DiscountCapExceeded(BusinessRuleViolation):
    code = "MAX_DISCOUNT_EXCEEDED"

    def __init__(self, max_discount: float, percent: float, requested: int):
        super().__init__(
            locales.ERROR_DISCOUNT_CAP_EXCEEDED.format(percent=percent, max_discount=int(max_discount)),
            {"max_discount": max_discount, "max_discount_percent": percent, "requested": requested},
        )
        self.max_discount = max_discount


class BelowMinimumRedemption(BusinessRuleViolation):
    code = "BELOW_MIN_REDEMPTION"

    def __init__(self, min_redemption: float, requested: int):
        super().__init__(
            locales.ERROR_BELOW_MIN_REDEMPTION.format(min_redemption=min_redemption),
            {"min_redemption": min_redemption, "requested": requested},
        )
        self.min_redemption = min_redemption


class ConcurrencyConflict(LedgerError):
    """Проиграна гонка за баланс. Кассе нужно повторить операцию целиком."""
    code = "CONCURRENCY_CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, account_id: int):
        super().__init__(locales.ERROR_CONCURRENCY_CONFLICT, {"account_id": account_id})


class StorageError(LedgerError):
    code = "STORAGE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self):
        super().__init__(locales.ERROR_STORAGE)
