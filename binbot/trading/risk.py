from typing import Optional

from binbot.config import Settings
from binbot.core.signals import Prediction
from binbot.trading.account import AccountState


class RiskGate:
    """Admit/reject a trade. Pure: evaluated fresh before every attempt."""

    @staticmethod
    def rejection_reason(prediction: Optional[Prediction], account: AccountState,
                         settings: Settings) -> Optional[str]:
        if prediction is None:
            return "No prediction (insufficient data)"
        if prediction.confidence < settings.min_confidence:
            return (f"Low confidence: {prediction.confidence:.1%} "
                    f"(need {settings.min_confidence:.1%})")
        if account.daily_trade_count >= settings.max_daily_trades:
            return f"Daily trade limit ({account.daily_trade_count}/{settings.max_daily_trades})"
        if account.balance < settings.entry_amount:
            return f"Balance ${account.balance:.2f} below stake ${settings.entry_amount:.2f}"
        return None

    @classmethod
    def admit(cls, prediction: Optional[Prediction], account: AccountState,
              settings: Settings) -> bool:
        return cls.rejection_reason(prediction, account, settings) is None
