"""
Localized user-facing message templates.

Templates are keyed by the MessageKey enum per locale; render() falls back to
English for unknown locales or keys missing from a locale table. Positional
'{}' placeholders are filled with str.format.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from solbeck.core.exceptions import FailureKind

DEFAULT_LOCALE = "en"


class MessageKey(str, Enum):
    ERROR_INVALID_KEY = "error_invalid_key"
    ERROR_INVALID_ADDRESS = "error_invalid_address"
    ERROR_TOO_MANY_WALLETS = "error_too_many_wallets"
    ERROR_INSUFFICIENT_FUNDS = "error_insufficient_funds"
    ERROR_TOKEN_BALANCE = "error_token_balance"
    ERROR_FROZEN_TOKEN = "error_frozen_token"
    ERROR_INVALID_OWNERSHIP = "error_invalid_ownership"
    ERROR_IN_PROGRESS = "error_in_progress"
    ERROR_GENERIC = "error_generic"
    NO_ACTIONS_TAKEN = "no_actions_taken"
    NO_TOKENS_SELECTED = "no_tokens_selected"
    SUCCESS_HEADER = "success_header"
    BURNED_TOKENS = "burned_tokens"
    CLOSED_ACCOUNTS = "closed_accounts"
    TOTAL_RECLAIMED = "total_reclaimed"
    SERVICE_FEE = "service_fee"
    YOU_RECEIVE = "you_receive"
    FEELESS_APPLIED = "feeless_applied"
    CLEANED_WALLETS = "cleaned_wallets"
    REFERRAL_REMAINING = "referral_remaining"
    REFERRAL_QUOTA_USED = "referral_quota_used"
    VIEW_TRANSACTION = "view_transaction"


TEMPLATES: dict[str, dict[MessageKey, str]] = {
    "en": {
        MessageKey.ERROR_INVALID_KEY: "❌ Invalid Base58 key detected. Please check your keys and try again.",
        MessageKey.ERROR_INVALID_ADDRESS: "❌ Invalid Solana address. Please provide a valid address.",
        MessageKey.ERROR_TOO_MANY_WALLETS: "❌ Too many wallets: at most {} per operation.",
        MessageKey.ERROR_INSUFFICIENT_FUNDS: "❌ Insufficient SOL for transaction fees.",
        MessageKey.ERROR_TOKEN_BALANCE: "❌ Some token accounts still hold a balance. Please select them for burning first.",
        MessageKey.ERROR_FROZEN_TOKEN: "❌ Some tokens are frozen and cannot be burned.",
        MessageKey.ERROR_INVALID_OWNERSHIP: "❌ Invalid account ownership. Please check your private keys.",
        MessageKey.ERROR_IN_PROGRESS: "⏳ Your previous request is still being processed.",
        MessageKey.ERROR_GENERIC: "An error occurred while processing your request.",
        MessageKey.NO_ACTIONS_TAKEN: "ℹ️ No actions taken. Your wallets are already optimized!",
        MessageKey.NO_TOKENS_SELECTED: "⚠️ No tokens selected for burning.",
        MessageKey.SUCCESS_HEADER: "✅ <b>Success!</b>",
        MessageKey.BURNED_TOKENS: "🔥 Burned {} tokens",
        MessageKey.CLOSED_ACCOUNTS: "🧹 Closed {} empty token accounts",
        MessageKey.TOTAL_RECLAIMED: "💰 Total reclaimed: {} SOL",
        MessageKey.SERVICE_FEE: "💲 Service fee ({}%): {} SOL",
        MessageKey.YOU_RECEIVE: "🎯 You receive: {} SOL",
        MessageKey.FEELESS_APPLIED: "🎁 Feeless service applied",
        MessageKey.CLEANED_WALLETS: "👛 Cleaned {} wallets",
        MessageKey.REFERRAL_REMAINING: "🎁 {}: {} free wallets remaining",
        MessageKey.REFERRAL_QUOTA_USED: "🎁 {}: free wallet quota used",
        MessageKey.VIEW_TRANSACTION: "🔗 View on Solscan: https://solscan.io/tx/{}",
    },
    "ru": {
        MessageKey.ERROR_INVALID_KEY: "❌ Обнаружен неверный Base58 ключ. Проверьте ваши ключи и попробуйте снова.",
        MessageKey.ERROR_INVALID_ADDRESS: "❌ Неверный Solana адрес. Пожалуйста, предоставьте действительный адрес.",
        MessageKey.ERROR_TOO_MANY_WALLETS: "❌ Слишком много кошельков: не более {} за операцию.",
        MessageKey.ERROR_INSUFFICIENT_FUNDS: "❌ Недостаточно SOL для транзакционных сборов.",
        MessageKey.ERROR_TOKEN_BALANCE: "❌ Некоторые токен аккаунты всё ещё имеют балансы. Пожалуйста, сначала выберите их для сжигания.",
        MessageKey.ERROR_FROZEN_TOKEN: "❌ Некоторые токены заморожены и не могут быть сожжены.",
        MessageKey.ERROR_INVALID_OWNERSHIP: "❌ Неверная собственность аккаунта. Пожалуйста, проверьте ваши приватные ключи.",
        MessageKey.ERROR_GENERIC: "Произошла ошибка при обработке вашего запроса.",
        MessageKey.NO_ACTIONS_TAKEN: "ℹ️ Никаких действий не предпринято. Ваши кошельки уже оптимизированы!",
        MessageKey.NO_TOKENS_SELECTED: "⚠️ Не выбрано ни одного токена для сжигания.",
        MessageKey.SUCCESS_HEADER: "✅ <b>Успешно!</b>",
        MessageKey.BURNED_TOKENS: "🔥 Сожжено токенов: {}",
        MessageKey.CLOSED_ACCOUNTS: "🧹 Закрыто пустых токен аккаунтов: {}",
        MessageKey.TOTAL_RECLAIMED: "💰 Всего возвращено: {} SOL",
        MessageKey.SERVICE_FEE: "💲 Сервисная комиссия ({}%): {} SOL",
        MessageKey.YOU_RECEIVE: "🎯 Вы получаете: {} SOL",
        MessageKey.CLEANED_WALLETS: "👛 Очищено кошельков: {}",
    },
}

FAILURE_MESSAGES: dict[FailureKind, MessageKey] = {
    FailureKind.INVALID_KEY: MessageKey.ERROR_INVALID_KEY,
    FailureKind.INVALID_ADDRESS: MessageKey.ERROR_INVALID_ADDRESS,
    FailureKind.INSUFFICIENT_FUNDS: MessageKey.ERROR_INSUFFICIENT_FUNDS,
    FailureKind.TOKEN_BALANCE_NONZERO: MessageKey.ERROR_TOKEN_BALANCE,
    FailureKind.FROZEN_TOKEN: MessageKey.ERROR_FROZEN_TOKEN,
    FailureKind.INVALID_OWNERSHIP: MessageKey.ERROR_INVALID_OWNERSHIP,
    FailureKind.OPERATION_IN_PROGRESS: MessageKey.ERROR_IN_PROGRESS,
    FailureKind.GENERIC: MessageKey.ERROR_GENERIC,
}


def normalize_locale(language_code: str | None) -> str:
    """Map a client language code (e.g. 'ru-RU') to a supported locale; default English."""
    code = (language_code or "").strip().lower()
    for locale in TEMPLATES:
        if code.startswith(locale):
            return locale
    return DEFAULT_LOCALE


def render(key: MessageKey, locale: str | None = None, *args: Any) -> str:
    table = TEMPLATES.get(normalize_locale(locale), TEMPLATES[DEFAULT_LOCALE])
    template = table.get(key) or TEMPLATES[DEFAULT_LOCALE][key]
    return template.format(*args) if args else template


def failure_message(kind: FailureKind, locale: str | None = None, *args: Any) -> str:
    return render(FAILURE_MESSAGES.get(kind, MessageKey.ERROR_GENERIC), locale, *args)
