import asyncio
import signal
import sys

from binbot.bot import TradingBot
from binbot.config import BotConfig
from binbot.constants import BrokerName
from binbot.errors import BotError, ConfigurationInvalid
from binbot.utils.logger import log


def main():
    # --- Load config from env (.env supported) ---
    try:
        cfg = BotConfig.from_env()
    except ConfigurationInvalid as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if cfg.broker is not BrokerName.PAPER and not cfg.token:
        print("=" * 60)
        print(f"  ERROR: No token provided for broker '{cfg.broker.value}'!")
        print()
        print("  Set your Deriv API token or PocketOption SSID:")
        print("    export BINBOT_TOKEN='your-token-here'   # Linux/Mac")
        print("    set BINBOT_TOKEN=your-token-here        # Windows")
        print()
        print("  Or use the offline demo broker: BINBOT_BROKER=paper")
        print("=" * 60)
        sys.exit(1)

    bot = TradingBot(cfg)

    async def run():
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(bot.stop()))
            except NotImplementedError:
                pass  # Windows: fall back to KeyboardInterrupt
        try:
            await bot.start()
        except BotError as e:
            log.error("Bot halted: %s", e)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nCTRL+C detected, stopped without draining open trades.")


if __name__ == "__main__":
    main()
