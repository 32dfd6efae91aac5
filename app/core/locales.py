# app/core/locales.py

# Ошибки валидации
ERROR_INVALID_ID = "Некорректный идентификатор: {value}."
ERROR_PURCHASE_AMOUNT_REQUIRED = "Сумма покупки должна быть больше 0."
ERROR_PURCHASE_AMOUNT_TOO_LARGE = "Сумма покупки не может превышать {max_amount:,.0f} ₽."
ERROR_POINTS_REQUIRED = "Количество баллов должно быть целым числом больше 0."
ERROR_INVALID_METADATA = "Некорректные метаданные транзакции: {reason}"
ERROR_ADJUSTMENT_ZERO = "Сумма корректировки не может быть равна 0."
ERROR_ADJUSTMENT_TOO_LARGE = "Сумма корректировки не может превышать {max_amount} баллов."
ERROR_ADJUSTMENT_REASON = "Причина корректировки должна содержать от 10 до 500 символов."
ERROR_SETTINGS_EMPTY_UPDATE = "Не переданы настройки для обновления."
ERROR_SETTINGS_INVALID = "Некорректные настройки лояльности: {reason}"

# Ошибки поиска
ERROR_ACCOUNT_NOT_FOUND = "Покупатель не найден."
ERROR_ACCOUNT_INACTIVE = "Аккаунт покупателя неактивен."
ERROR_STORE_NOT_FOUND = "Магазин не найден."

# Бизнес-правила
ERROR_DUPLICATE_OPERATION = "Дубликат транзакции. Эта операция уже была выполнена недавно."
ERROR_INSUFFICIENT_BALANCE = "Недостаточно баллов. Доступно: {available}."
ERROR_DISCOUNT_CAP_EXCEEDED = "Скидка не может превышать {percent:g}% от покупки. Максимум: {max_discount} баллов."
ERROR_BELOW_MIN_REDEMPTION = "Минимальное количество баллов для списания: {min_redemption:g}."
ERROR_CONCURRENCY_CONFLICT = "Баланс изменился во время операции. Повторите попытку."
ERROR_STORAGE = "Произошла ошибка при сохранении операции. Попробуйте снова."

# Заголовки транзакций в истории
TITLE_PURCHASE_EARN = "Начисление за покупку"
TITLE_CASHBACK_EARN = "Начисление кешбэка ({percent:g}% от оплаты)"
TITLE_REDEMPTION = "Списание за покупку"
TITLE_EXPIRATION = "Баллы сгорели ({days} дней без активности)"
TITLE_WELCOME_BONUS = "Приветственный бонус"
