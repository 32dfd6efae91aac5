# app/bot/services/notification.py
import logging

from aiogram.exceptions import TelegramForbiddenError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.bot.core import bot
from app.models.account import Account

logger = logging.getLogger(__name__)

async def _send_message(db: Session, account: Account, text: str) -> tuple[bool, str | None]:
    """
    Приватная функция-обертка для безопасной отправки сообщений.
    Обновляет статус 'bot_accessible' в случае блокировки. Никогда не бросает исключений:
    уведомления отправляются после коммита и не должны влиять на операцию с баллами.
    Возвращает кортеж (успех: bool, причина_неудачи: str | None).
    """
    if not account.telegram_id:
        return False, "Account has no Telegram chat"

    if not account.bot_accessible:
        reason = "Bot is marked as inaccessible"
        logger.info(f"Skipping notification for account {account.id}: {reason}.")
        return False, reason

    try:
        await bot.send_message(chat_id=account.telegram_id, text=text)
        return True, None
    except TelegramForbiddenError:
        reason = "User has blocked the bot"
        logger.error(f"Account {account.id} has blocked the bot. Updating status.")
        try:
            account.bot_accessible = False
            db.add(account)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Failed to update bot status for account {account.id}", exc_info=True)
        return False, reason
    except Exception as e:
        reason = str(e)
        logger.error(f"Failed to send message to account {account.id}: {reason}")
        return False, reason


async def send_points_earned_notification(db: Session, account: Account, points_earned: int, new_balance: int):
    """Уведомление о начислении баллов за покупку."""
    message = (
        f"🎉 Вам начислено <b>{points_earned} баллов</b> за покупку.\n\n"
        f"Текущий баланс: <b>{new_balance}</b>."
    )
    await _send_message(db, account, message)

async def send_points_redeemed_notification(
    db: Session, account: Account, points_redeemed: int, cashback_earned: int, new_balance: int
):
    """Уведомление о списании баллов в счет скидки."""
    message = f"💳 Списано <b>{points_redeemed} баллов</b> в счет скидки.\n"
    if cashback_earned > 0:
        message += f"Кешбэк за оплаченную часть: <b>{cashback_earned} баллов</b>.\n"
    message += f"\nТекущий баланс: <b>{new_balance}</b>."
    await _send_message(db, account, message)

async def send_points_expired_notification(db: Session, account: Account, points_expired: int):
    """Уведомление о сгорании бонусных баллов."""
    message = (
        f"🔥 К сожалению, срок действия ваших бонусных баллов истек.\n\n"
        f"Списано: <b>{points_expired} баллов</b>.\n\n"
        f"Совершайте покупки, чтобы накопить новые!"
    )
    await _send_message(db, account, message)

async def send_points_expiring_soon_notification(db: Session, account: Account, points_expiring: int, days_left: int):
    """Уведомление о скором сгорании баллов."""
    # Выбираем правильное склонение для слова "день"
    day_word = "дней"
    if days_left == 1:
        day_word = "день"
    elif 1 < days_left < 5:
        day_word = "дня"

    message = (
        f"⏳ <b>Напоминание!</b>\n\n"
        f"Через <b>{days_left} {day_word}</b> без покупок с вашего бонусного счета сгорит "
        f"<b>{points_expiring} баллов</b>.\n\n"
        f"Любая покупка сохранит весь баланс! 🎁"
    )
    await _send_message(db, account, message)
