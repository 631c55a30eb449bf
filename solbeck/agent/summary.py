"""Settlement summary text for the external chat transport."""

from __future__ import annotations

from solbeck.core.messages import MessageKey, render
from solbeck.referrals.models import ReferralProgram
from solbeck.settlement.models import SettlementResult


def _usd(sol: float, price: float) -> str:
    value = sol * price
    return f" (~${value:.2f} USD)" if value > 0 else ""


def render_settlement_summary(
    result: SettlementResult,
    locale: str | None = None,
    *,
    sol_usd_price: float = 0.0,
    referral: ReferralProgram | None = None,
    remaining_free_wallets: int = 0,
) -> str:
    if result.nothing_done:
        return render(MessageKey.NO_ACTIONS_TAKEN, locale)

    lines = [render(MessageKey.SUCCESS_HEADER, locale), ""]
    if result.burned_tokens:
        lines.append(render(MessageKey.BURNED_TOKENS, locale, result.burned_tokens))
        lines.extend(f"• {b.display_name}" for b in result.burned_details)
        lines.append("")
    if result.empty_accounts_closed:
        lines.append(render(MessageKey.CLOSED_ACCOUNTS, locale, result.empty_accounts_closed))

    if result.gross_lamports > 0:
        lines.append(
            render(MessageKey.TOTAL_RECLAIMED, locale, f"{result.gross_sol:.6f}") + _usd(result.gross_sol, sol_usd_price)
        )
        if result.feeless:
            lines.append(render(MessageKey.FEELESS_APPLIED, locale))
        elif result.fee_lamports > 0:
            lines.append(
                render(MessageKey.SERVICE_FEE, locale, f"{result.fee_rate * 100:g}", f"{result.fee_sol:.6f}")
                + _usd(result.fee_sol, sol_usd_price)
            )
        lines.append(render(MessageKey.YOU_RECEIVE, locale, f"{result.net_sol:.6f}") + _usd(result.net_sol, sol_usd_price))

    lines.append("")
    lines.append(render(MessageKey.CLEANED_WALLETS, locale, result.wallet_count))

    if referral is not None:
        lines.append("")
        if remaining_free_wallets > 0:
            lines.append(render(MessageKey.REFERRAL_REMAINING, locale, referral.name, remaining_free_wallets))
        else:
            lines.append(render(MessageKey.REFERRAL_QUOTA_USED, locale, referral.name))

    if result.last_signature:
        lines.append("")
        lines.append(render(MessageKey.VIEW_TRANSACTION, locale, result.last_signature))
    return "\n".join(lines)
