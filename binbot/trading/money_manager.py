import logging
from typing import Optional

from binbot.config import Settings
from binbot.constants import RiskLevel
from binbot.trading.account import AccountState, utc_today

log = logging.getLogger("BinBot")

MAX_OPEN_POSITIONS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 3,
    RiskLevel.HIGH: 5,
}


class MoneyManager:
    """Daily stop-loss / stop-win guard measured against the day's opening balance."""

    def reset_if_new_day(self, account: AccountState, now: Optional[float] = None):
        if account.roll_day(utc_today(now)):
            log.info("New day — daily trade count reset, opening balance $%.2f",
                     account.day_open_balance)

    def halt_reason(self, account: AccountState, settings: Settings,
                    now: Optional[float] = None) -> Optional[str]:
        self.reset_if_new_day(account, now)
        opening = account.day_open_balance
        if opening <= 0:
            return None
        change_pct = (account.balance - opening) / opening * 100
        if change_pct <= -settings.stop_loss:
            return f"Stop-loss hit ({change_pct:+.1f}% today, limit -{settings.stop_loss:.0f}%)"
        if change_pct >= settings.stop_win:
            return f"Stop-win hit ({change_pct:+.1f}% today, target +{settings.stop_win:.0f}%)"
        return None

    def can_trade(self, account: AccountState, settings: Settings,
                  now: Optional[float] = None) -> bool:
        return self.halt_reason(account, settings, now) is None

    @staticmethod
    def max_open_positions(risk_level: RiskLevel) -> int:
        return MAX_OPEN_POSITIONS[risk_level]
