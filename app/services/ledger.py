# app/services/ledger.py

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import locales
from app.core.clock import Clock
from app.core.config import settings
from app.core.errors import (
    AccountInactive,
    AccountNotFound,
    BelowMinimumRedemption,
    ConcurrencyConflict,
    DiscountCapExceeded,
    DuplicateOperation,
    InsufficientBalance,
    InvalidInput,
    LedgerError,
    StorageError,
    StoreNotFound,
)
from app.crud import account as crud_account
from app.crud import loyalty as crud_loyalty
from app.crud import store as crud_store
from app.models.account import Account
from app.models.loyalty import TransactionOrigin, TransactionType
from app.models.store import Store
from app.schemas.loyalty import (
    AccountBalance,
    AdjustBalanceResult,
    CleanupResult,
    EarnResult,
    LoyaltyHistory,
    LoyaltyTransaction as LoyaltyTransactionSchema,
    RedeemResult,
    SweepResult,
    TransactionMetadata,
)
from app.services.expiration import ExpirationEngine
from app.services.idempotency import IdempotencyGuard
from app.services.settings import SettingsProvider

logger = logging.getLogger(__name__)

OPERATION_EARN = "earn"
OPERATION_SPEND = "spend"

MetadataInput = Union[TransactionMetadata, Dict[str, Any], None]


def to_decimal(value: Union[int, float]) -> Decimal:
    return Decimal(str(value))


def round_points(value: Decimal) -> int:
    """Округление до целого балла, половина - вверх."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: Union[int, float], percent: float) -> Decimal:
    return to_decimal(amount) * to_decimal(percent) / Decimal(100)


class LedgerService:
    """
    Изменение баланса баллов: начисление за покупку, списание в счет скидки,
    ручная корректировка. Каждая операция - одна короткая транзакция БД,
    баланс меняется только атомарным UPDATE со сдвигом (crud.account.apply_balance_delta).
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        expiration_engine: ExpirationEngine,
        idempotency_guard: IdempotencyGuard,
        clock: Optional[Clock] = None,
        max_purchase_amount: float = settings.MAX_PURCHASE_AMOUNT,
        max_adjustment_amount: int = settings.MAX_ADJUSTMENT_AMOUNT,
    ):
        self.settings_provider = settings_provider
        self.expiration = expiration_engine
        self.idempotency = idempotency_guard
        self._clock = clock or Clock()
        self._max_purchase_amount = max_purchase_amount
        self._max_adjustment_amount = max_adjustment_amount

    # --- Начисление ---

    def earn(
        self,
        db: Session,
        account_id: int,
        store_id: int,
        purchase_amount: float,
        metadata: MetadataInput = None,
    ) -> EarnResult:
        """Начисляет баллы за покупку: round(сумма * earning_percent / 100)."""
        self._validate_id(account_id)
        self._validate_id(store_id)
        self._validate_purchase_amount(purchase_amount)
        details = self._validate_metadata(metadata)
        self._get_active_account(db, account_id)
        self._get_store(db, store_id)

        self._check_duplicate(account_id, store_id, purchase_amount, OPERATION_EARN)
        try:
            return self._earn(db, account_id, store_id, purchase_amount, details)
        except (IntegrityError, LedgerError):
            self.idempotency.forget(account_id, store_id, purchase_amount, OPERATION_EARN)
            raise

    def _earn(
        self,
        db: Session,
        account_id: int,
        store_id: int,
        purchase_amount: float,
        details: Optional[Dict[str, Any]],
    ) -> EarnResult:
        loyalty_settings = self.settings_provider.get()
        points_earned = round_points(percent_of(purchase_amount, loyalty_settings.earning_percent))
        now = self._clock.now()
        transaction_id = None

        try:
            new_balance = crud_account.apply_balance_delta(
                db, account_id, points_earned,
                purchase_increment=1,
                activity_at=now,
            )
            if new_balance is None:
                raise ConcurrencyConflict(account_id)

            # Запись с нулевой суммой недопустима: копеечная покупка учитывается только в счетчике
            if points_earned > 0:
                transaction = crud_loyalty.create_transaction(
                    db,
                    account_id=account_id,
                    store_id=store_id,
                    type=TransactionType.EARN,
                    amount=points_earned,
                    origin=TransactionOrigin.PURCHASE,
                    title=locales.TITLE_PURCHASE_EARN,
                    purchase_amount=purchase_amount,
                    details=details,
                    created_at=now,
                )
                db.flush()
                transaction_id = transaction.id
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Constraint rejected earn for account {account_id}", exc_info=True)
            raise ConcurrencyConflict(account_id) from e
        except LedgerError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to commit earn for account {account_id}", exc_info=True)
            raise StorageError() from e

        logger.info(
            f"Earn committed: account={account_id}, store={store_id}, purchase={purchase_amount}, "
            f"points={points_earned}, new_balance={new_balance}"
        )
        return EarnResult(
            transaction_id=transaction_id,
            points_earned=points_earned,
            new_balance=new_balance,
        )

    # --- Списание ---

    def redeem(
        self,
        db: Session,
        account_id: int,
        store_id: int,
        purchase_amount: float,
        points_to_redeem: int,
        metadata: MetadataInput = None,
    ) -> RedeemResult:
        """
        Списывает баллы в счет скидки и начисляет кешбэк на оплаченный остаток:
        cashback = round((сумма - баллы) * earning_percent / 100).
        """
        self._validate_id(account_id)
        self._validate_id(store_id)
        self._validate_purchase_amount(purchase_amount)
        self._validate_points(points_to_redeem)
        details = self._validate_metadata(metadata)
        account = self._get_active_account(db, account_id)
        self._get_store(db, store_id)

        self._check_duplicate(account_id, store_id, points_to_redeem, OPERATION_SPEND)
        try:
            return self._redeem(db, account, store_id, purchase_amount, points_to_redeem, details)
        except (IntegrityError, LedgerError):
            self.idempotency.forget(account_id, store_id, points_to_redeem, OPERATION_SPEND)
            raise

    def _redeem(
        self,
        db: Session,
        account: Account,
        store_id: int,
        purchase_amount: float,
        points_to_redeem: int,
        details: Optional[Dict[str, Any]],
    ) -> RedeemResult:
        account_id = account.id

        # Баллы, которые логически сгорели, нельзя потратить, даже если ночная задача еще не прошла
        if account.current_balance > 0 and self.expiration.is_expired(account):
            logger.info(f"Account {account_id} has expired points, expiring them before redemption.")
            self.expiration.expire_account(db, account)
            account = crud_account.get_account(db, account_id)
            if account is None:
                raise AccountNotFound(account_id)

        available = self.expiration.available_balance(account)
        loyalty_settings = self.settings_provider.get()

        if points_to_redeem < loyalty_settings.min_redemption_amount:
            raise BelowMinimumRedemption(loyalty_settings.min_redemption_amount, points_to_redeem)

        max_discount = percent_of(purchase_amount, loyalty_settings.max_discount_percent)
        if points_to_redeem > max_discount:
            raise DiscountCapExceeded(float(max_discount), loyalty_settings.max_discount_percent, points_to_redeem)

        if points_to_redeem > available:
            raise InsufficientBalance(available, points_to_redeem)

        paid_amount = to_decimal(purchase_amount) - to_decimal(points_to_redeem)
        cashback_earned = round_points(paid_amount * to_decimal(loyalty_settings.earning_percent) / Decimal(100))
        balance_delta = cashback_earned - points_to_redeem
        now = self._clock.now()

        try:
            # min_balance: списать можно только то, что уже лежит на счете
            new_balance = crud_account.apply_balance_delta(
                db, account_id, balance_delta,
                min_balance=points_to_redeem,
                purchase_increment=1,
                saved_increment=points_to_redeem,
                activity_at=now,
            )
            if new_balance is None:
                # Параллельная операция успела потратить баллы после нашей проверки
                logger.warning(f"Redeem lost the race for account {account_id}: balance changed concurrently.")
                raise ConcurrencyConflict(account_id)

            spend = crud_loyalty.create_transaction(
                db,
                account_id=account_id,
                store_id=store_id,
                type=TransactionType.SPEND,
                amount=points_to_redeem,
                origin=TransactionOrigin.REDEMPTION,
                title=locales.TITLE_REDEMPTION,
                purchase_amount=purchase_amount,
                details=details,
                created_at=now,
            )
            if cashback_earned > 0:
                crud_loyalty.create_transaction(
                    db,
                    account_id=account_id,
                    store_id=store_id,
                    type=TransactionType.EARN,
                    amount=cashback_earned,
                    origin=TransactionOrigin.CASHBACK,
                    title=locales.TITLE_CASHBACK_EARN.format(percent=loyalty_settings.earning_percent),
                    purchase_amount=purchase_amount,
                    details=details,
                    created_at=now,
                )
            db.flush()
            spend_id = spend.id

            # Вторая линия защиты: основная - условие в самом UPDATE и CHECK в БД
            if new_balance < 0:
                logger.critical(f"Negative balance detected for account {account_id}: {new_balance}. Rolling back.")
                raise ConcurrencyConflict(account_id)

            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Balance constraint rejected redeem for account {account_id}", exc_info=True)
            raise ConcurrencyConflict(account_id) from e
        except LedgerError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to commit redeem for account {account_id}", exc_info=True)
            raise StorageError() from e

        logger.info(
            f"Redeem committed: account={account_id}, store={store_id}, purchase={purchase_amount}, "
            f"redeemed={points_to_redeem}, cashback={cashback_earned}, new_balance={new_balance}"
        )
        return RedeemResult(
            transaction_id=spend_id,
            cashback_earned=cashback_earned,
            discount_applied=points_to_redeem,
            new_balance=new_balance,
        )

    # --- Баланс и история ---

    def available_balance(self, db: Session, account_id: int) -> int:
        """Баланс, который можно потратить прямо сейчас (0, если он сгорел)."""
        self._validate_id(account_id)
        account = self._get_account(db, account_id)
        return self.expiration.available_balance(account)

    def get_balance(self, db: Session, account_id: int) -> AccountBalance:
        self._validate_id(account_id)
        account = self._get_account(db, account_id)
        return AccountBalance(
            account_id=account.id,
            current_balance=account.current_balance,
            available_balance=self.expiration.available_balance(account),
            last_activity=account.last_activity,
            expiring=self.expiration.expiring_summary(account),
        )

    def get_history(self, db: Session, account_id: int, skip: int = 0, limit: int = 20) -> LoyaltyHistory:
        """Собирает историю операций аккаунта (от новых к старым)."""
        self._validate_id(account_id)
        account = self._get_account(db, account_id)
        transactions = crud_loyalty.get_account_transactions(db, account_id, skip=skip, limit=limit)
        return LoyaltyHistory(
            account_id=account.id,
            balance=self.expiration.available_balance(account),
            total=crud_loyalty.count_account_transactions(db, account_id),
            transactions=[LoyaltyTransactionSchema.model_validate(t) for t in transactions],
        )

    # --- Администрирование ---

    def adjust_balance(self, db: Session, account_id: int, delta: int, reason: str, actor: str) -> AdjustBalanceResult:
        """
        Ручная корректировка баланса администратором. Использует тот же атомарный
        сдвиг и тот же формат записи истории, что и кассовые операции.
        Корректировка не считается активностью покупателя.
        """
        self._validate_id(account_id)
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise InvalidInput(locales.ERROR_ADJUSTMENT_ZERO)
        if abs(delta) > self._max_adjustment_amount:
            raise InvalidInput(locales.ERROR_ADJUSTMENT_TOO_LARGE.format(max_amount=self._max_adjustment_amount))
        reason = (reason or "").strip()
        if not 10 <= len(reason) <= 500:
            raise InvalidInput(locales.ERROR_ADJUSTMENT_REASON)
        self._get_account(db, account_id)

        now = self._clock.now()
        try:
            new_balance = crud_account.apply_balance_delta(
                db, account_id, delta,
                min_balance=-delta if delta < 0 else 0,
            )
            if new_balance is None:
                db.rollback()
                current = self._get_account(db, account_id)
                raise InsufficientBalance(current.current_balance, -delta)

            transaction = crud_loyalty.create_transaction(
                db,
                account_id=account_id,
                type=TransactionType.EARN if delta > 0 else TransactionType.SPEND,
                amount=abs(delta),
                origin=TransactionOrigin.ADMIN_ADJUSTMENT,
                title=reason,
                details={"actor": actor},
                created_at=now,
            )
            db.flush()
            transaction_id = transaction.id
            db.commit()
        except LedgerError:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            raise ConcurrencyConflict(account_id) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to adjust balance for account {account_id}", exc_info=True)
            raise StorageError() from e

        logger.info(f"Balance adjusted by {actor}: account={account_id}, delta={delta}, new_balance={new_balance}")
        return AdjustBalanceResult(transaction_id=transaction_id, new_balance=new_balance)

    def open_account(self, db: Session, telegram_id: Optional[int] = None, first_name: Optional[str] = None) -> Account:
        """
        Регистрирует участника программы и начисляет приветственный бонус.
        Повторная регистрация с тем же telegram_id возвращает существующий аккаунт.
        """
        if telegram_id is not None:
            existing = crud_account.get_account_by_telegram_id(db, telegram_id)
            if existing:
                return existing

        loyalty_settings = self.settings_provider.get()
        now = self._clock.now()
        try:
            account = crud_account.create_account(db, registered_at=now, telegram_id=telegram_id, first_name=first_name)
            if loyalty_settings.welcome_bonus > 0:
                crud_account.apply_balance_delta(db, account.id, loyalty_settings.welcome_bonus)
                crud_loyalty.create_transaction(
                    db,
                    account_id=account.id,
                    type=TransactionType.EARN,
                    amount=loyalty_settings.welcome_bonus,
                    origin=TransactionOrigin.WELCOME_BONUS,
                    title=locales.TITLE_WELCOME_BONUS,
                    created_at=now,
                )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if telegram_id is not None:
                # Параллельная регистрация с тем же telegram_id успела раньше
                existing = crud_account.get_account_by_telegram_id(db, telegram_id)
                if existing:
                    logger.info(f"Account for telegram_id {telegram_id} was opened concurrently, returning it.")
                    return existing
            logger.error("Failed to open loyalty account.", exc_info=True)
            raise StorageError() from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to open loyalty account.", exc_info=True)
            raise StorageError() from e

        db.refresh(account)
        logger.info(f"Opened account {account.id} with welcome bonus {loyalty_settings.welcome_bonus}")
        return account

    def run_expiration_sweep(self, db: Session, dry_run: bool = False) -> SweepResult:
        return self.expiration.sweep(db, dry_run=dry_run)

    def run_retention_cleanup(self, db: Session, dry_run: bool = False) -> CleanupResult:
        return self.expiration.retention_cleanup(db, dry_run=dry_run)

    # --- Вспомогательные проверки ---

    def _check_duplicate(self, account_id: int, store_id: int, amount: float, operation_type: str) -> None:
        if not self.idempotency.check_and_record(account_id, store_id, amount, operation_type):
            logger.warning(
                f"Duplicate {operation_type} detected: account={account_id}, store={store_id}, amount={amount}"
            )
            raise DuplicateOperation()

    def _get_account(self, db: Session, account_id: int) -> Account:
        account = crud_account.get_account(db, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def _get_active_account(self, db: Session, account_id: int) -> Account:
        account = self._get_account(db, account_id)
        if not account.is_active:
            raise AccountInactive(account_id)
        return account

    def _get_store(self, db: Session, store_id: int) -> Store:
        store = crud_store.get_store(db, store_id)
        if store is None or not store.is_active:
            raise StoreNotFound(store_id)
        return store

    @staticmethod
    def _validate_id(value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidInput(locales.ERROR_INVALID_ID.format(value=value))

    def _validate_purchase_amount(self, amount: Any) -> None:
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount) or amount <= 0:
            raise InvalidInput(locales.ERROR_PURCHASE_AMOUNT_REQUIRED)
        if amount > self._max_purchase_amount:
            raise InvalidInput(locales.ERROR_PURCHASE_AMOUNT_TOO_LARGE.format(max_amount=self._max_purchase_amount))

    @staticmethod
    def _validate_points(points: Any) -> None:
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidInput(locales.ERROR_POINTS_REQUIRED)

    @staticmethod
    def _validate_metadata(metadata: MetadataInput) -> Optional[Dict[str, Any]]:
        if metadata is None:
            return None
        try:
            parsed = metadata if isinstance(metadata, TransactionMetadata) else TransactionMetadata.model_validate(metadata)
        except ValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            raise InvalidInput(locales.ERROR_INVALID_METADATA.format(reason=reason)) from e
        return parsed.model_dump(exclude_none=True) or None


@dataclass
class LedgerComponents:
    settings_provider: SettingsProvider
    expiration: ExpirationEngine
    idempotency: IdempotencyGuard
    ledger: LedgerService


def create_ledger_service(session_factory: Callable[[], Session], clock: Optional[Clock] = None) -> LedgerComponents:
    """Собирает ледгер со свежими кешами. Каждый вызов - независимые экземпляры."""
    clock = clock or Clock()
    settings_provider = SettingsProvider(session_factory, clock=clock)
    expiration = ExpirationEngine(settings_provider, clock=clock)
    idempotency = IdempotencyGuard(clock=clock)
    ledger = LedgerService(settings_provider, expiration, idempotency, clock=clock)
    return LedgerComponents(
        settings_provider=settings_provider,
        expiration=expiration,
        idempotency=idempotency,
        ledger=ledger,
    )
