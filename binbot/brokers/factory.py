from binbot.brokers.base import Broker
from binbot.constants import BrokerName


def create_broker(name: BrokerName, token: str = "", **kwargs) -> Broker:
    """Build the adapter for ``name``. Live adapters are imported lazily."""
    if name is BrokerName.PAPER:
        from binbot.brokers.paper import PaperBroker
        return PaperBroker(**kwargs)
    if name is BrokerName.DERIV:
        from binbot.brokers.deriv import DerivBroker
        return DerivBroker(token, **kwargs)
    if name is BrokerName.POCKET_OPTION:
        from binbot.brokers.pocket_option import PocketOptionBroker
        return PocketOptionBroker(token, **kwargs)
    raise ValueError(f"Unknown broker {name!r}")
