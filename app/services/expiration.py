# app/services/expiration.py

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import locales
from app.core.clock import Clock, as_utc
from app.core.errors import StorageError
from app.crud import account as crud_account
from app.crud import loyalty as crud_loyalty
from app.models.account import Account
from app.models.loyalty import TransactionOrigin, TransactionType
from app.schemas.loyalty import CleanupResult, ExpiredAccount, ExpiringPointsSummary, SweepResult
from app.services.settings import SettingsProvider

logger = logging.getLogger(__name__)

# Лишний день хранения истории, чтобы очистка не обгоняла сгорание
CLEANUP_GRACE_DAYS = 1


def utc_midnight(moment: datetime) -> datetime:
    return as_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def expiration_cutoff(now: datetime, expiry_days: int) -> datetime:
    """
    Граница сгорания (полночь UTC).
    Баланс сгорел, если last_activity < cutoff: последняя активность была раньше
    полуночи дня, отстоящего от сегодняшнего на expiry_days. Активность 7 декабря
    при сроке 45 дней еще действует 21 января и сгорает 22 января.
    Одна и та же формула для списания, отображения баланса и ночного сгорания.
    """
    return utc_midnight(now) - timedelta(days=expiry_days)


def cleanup_cutoff(now: datetime, expiry_days: int) -> datetime:
    """Граница удаления истории: срок сгорания плюс день запаса."""
    return utc_midnight(now) - timedelta(days=expiry_days + CLEANUP_GRACE_DAYS)


def days_since_activity(now: datetime, last_activity: datetime) -> int:
    return (utc_midnight(now) - utc_midnight(last_activity)).days


class ExpirationEngine:
    """
    Сгорание баланса по неактивности: весь баланс целиком, без FIFO по начислениям.
    Если покупатель не пользовался программой expiry_days дней, сгорают все баллы;
    любая операция в этом окне сохраняет весь баланс.
    """

    def __init__(self, settings_provider: SettingsProvider, clock: Optional[Clock] = None):
        self._settings_provider = settings_provider
        self._clock = clock or Clock()

    def cutoff(self) -> datetime:
        expiry_days = self._settings_provider.get().expiry_days
        return expiration_cutoff(self._clock.now(), expiry_days)

    def is_expired(self, account: Account, cutoff: Optional[datetime] = None) -> bool:
        cutoff = cutoff or self.cutoff()
        return as_utc(account.last_activity) < cutoff

    def available_balance(self, account: Account) -> int:
        """0, если баланс логически сгорел, иначе весь current_balance."""
        if self.is_expired(account):
            return 0
        return account.current_balance

    def days_until_expiry(self, account: Account) -> int:
        """Дней до сгорания; 0 и меньше - баланс уже сгорел (сгорает в начале (expiry_days + 1)-го дня)."""
        expiry_days = self._settings_provider.get().expiry_days
        return expiry_days + 1 - days_since_activity(self._clock.now(), account.last_activity)

    def expiring_summary(self, account: Account) -> ExpiringPointsSummary:
        """Предупреждения о приближении сгорания по дням с последней активности."""
        balance = account.current_balance
        if balance <= 0:
            return ExpiringPointsSummary()

        days_left = self.days_until_expiry(account)
        if days_left <= 0:
            return ExpiringPointsSummary(expired_now=balance)
        if days_left <= 7:
            return ExpiringPointsSummary(expiring_in_7_days=balance)
        if days_left <= 14:
            return ExpiringPointsSummary(expiring_in_14_days=balance)
        if days_left <= 30:
            return ExpiringPointsSummary(expiring_in_30_days=balance)
        return ExpiringPointsSummary()

    def expire_account(self, db: Session, account: Account) -> int:
        """
        Синхронное сгорание одного аккаунта (если ночная задача еще не успела).
        Возвращает количество сгоревших баллов, 0 - если сжигать нечего.
        """
        cutoff = self.cutoff()
        if account.current_balance <= 0 or not self.is_expired(account, cutoff):
            return 0

        account_id, balance = account.id, account.current_balance
        try:
            expired = self._expire_one(db, account_id, balance, cutoff)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to expire points for account {account_id}", exc_info=True)
            raise StorageError() from e

        if expired:
            logger.info(f"Account {account_id}: {expired} points expired on demand.")
        return expired

    def sweep(self, db: Session, dry_run: bool = False) -> SweepResult:
        """
        Сжигает балансы всех неактивных аккаунтов. Каждый аккаунт - отдельная транзакция:
        при сбое обработанные аккаунты остаются обнуленными, остальные не тронуты,
        а повторный запуск безопасен благодаря условию current_balance > 0.
        """
        cutoff = self.cutoff()
        logger.info(f"Expiration cutoff: {cutoff.isoformat()} (dry-run: {dry_run})")

        try:
            candidates = [
                (account.id, account.current_balance)
                for account in crud_account.list_expired_candidates(db, cutoff)
            ]
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to select accounts for expiration.", exc_info=True)
            raise StorageError() from e

        if not candidates:
            logger.info("No inactive accounts with balance found.")
            return SweepResult(dry_run=dry_run)

        logger.info(f"Found {len(candidates)} inactive accounts with balance.")

        if dry_run:
            for account_id, balance in candidates:
                logger.info(f"[DRY-RUN] Account {account_id}: would expire {balance} points.")
            return SweepResult(
                accounts_affected=len(candidates),
                points_expired=sum(balance for _, balance in candidates),
                dry_run=True,
                expired_accounts=[
                    ExpiredAccount(account_id=account_id, points_expired=balance)
                    for account_id, balance in candidates
                ],
            )

        result = SweepResult()
        for account_id, balance in candidates:
            try:
                expired = self._expire_one(db, account_id, balance, cutoff)
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.error(f"Failed to process points expiration for account {account_id}", exc_info=True)
                continue

            if not expired:
                # Баланс или активность изменились после выборки
                logger.info(f"Account {account_id}: changed since selection, skipped.")
                continue

            result.accounts_affected += 1
            result.points_expired += expired
            result.expired_accounts.append(ExpiredAccount(account_id=account_id, points_expired=expired))
            logger.info(f"Account {account_id}: {expired} points expired.")

        logger.info(f"Expired {result.points_expired} points from {result.accounts_affected} accounts.")
        return result

    def retention_cleanup(self, db: Session, dry_run: bool = False) -> CleanupResult:
        """Удаляет записи истории старше срока сгорания плюс день запаса."""
        expiry_days = self._settings_provider.get().expiry_days
        cutoff = cleanup_cutoff(self._clock.now(), expiry_days)
        logger.info(f"Cleanup cutoff: {cutoff.isoformat()} (dry-run: {dry_run})")

        try:
            if dry_run:
                count = crud_loyalty.count_transactions_older_than(db, cutoff)
                logger.info(f"[DRY-RUN] Would delete {count} transactions older than {cutoff.isoformat()}")
                return CleanupResult(records_deleted=count, dry_run=True)

            deleted = crud_loyalty.delete_transactions_older_than(db, cutoff)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to clean up old transactions.", exc_info=True)
            raise StorageError() from e

        logger.info(f"Deleted {deleted} transactions older than {cutoff.isoformat()}")
        return CleanupResult(records_deleted=deleted)

    def _expire_one(self, db: Session, account_id: int, balance: int, cutoff: datetime) -> int:
        """
        Обнуляет баланс тем же атомарным UPDATE, что и ледгер, и пишет запись списания.
        Условия expected_balance и inactive_before защищают от гонки с живыми операциями.
        """
        new_balance = crud_account.apply_balance_delta(
            db, account_id, -balance,
            expected_balance=balance,
            inactive_before=cutoff,
        )
        if new_balance is None:
            return 0

        expiry_days = self._settings_provider.get().expiry_days
        crud_loyalty.create_transaction(
            db,
            account_id=account_id,
            type=TransactionType.SPEND,
            amount=balance,
            origin=TransactionOrigin.EXPIRATION,
            title=locales.TITLE_EXPIRATION.format(days=expiry_days),
            created_at=self._clock.now(),
        )
        db.flush()
        return balance
