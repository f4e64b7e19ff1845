"""In-memory stand-ins for the chain, profile APIs, executor and price feed."""

from eth_abi import encode

from creator_sniper.config import LadderStep, StrategyPolicy
from creator_sniper.constants import (
    COIN_CREATED_V3_SIG,
    V3_DATA_TYPES,
    ZORA_FACTORY_ADDRESS,
    event_topic,
)
from creator_sniper.core.executor import TradeExecutor
from creator_sniper.core.models import CreationEvent, QualificationVerdict, ReputationProfile, TradeFill
from creator_sniper.exceptions import NetworkException, SwapException

V3_TOPIC = event_topic(COIN_CREATED_V3_SIG)
ZERO = "0x" + "0" * 40


def addr(n: int) -> str:
    return "0x" + f"{n:040x}"


def pad_topic(address: str) -> str:
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


def make_log(block, tx="0xaa", log_index=0, creator=addr(1), coin=addr(2), symbol="TEST", topic=V3_TOPIC):
    data = encode(
        V3_DATA_TYPES,
        [ZERO, "ipfs://meta", f"{symbol} coin", symbol, coin, addr(99), "3"],
    )
    return {
        "address": ZORA_FACTORY_ADDRESS.lower(),
        "blockNumber": block,
        "transactionHash": tx,
        "logIndex": log_index,
        "topics": [topic, pad_topic(creator), pad_topic(creator), pad_topic(ZERO)],
        "data": "0x" + data.hex(),
    }


class FakeChain:
    def __init__(self, head=1000, logs=None):
        self.head = head
        self.logs = list(logs or [])
        self.fail = False
        self.log_queries = []

    async def get_block_number(self):
        if self.fail:
            raise NetworkException("rpc down")
        return self.head

    async def get_logs(self, address, from_block, to_block, topics=None):
        if self.fail:
            raise NetworkException("rpc down")
        self.log_queries.append((from_block, to_block))
        return [log for log in self.logs if from_block <= log["blockNumber"] <= to_block]


class FakeProfileSource:
    """wallet -> {"social_handle", "reputation_score"} or an exception to raise."""

    def __init__(self, profiles=None):
        self.profiles = {k.lower(): v for k, v in (profiles or {}).items()}
        self.calls = []

    async def get_profile(self, wallet_address):
        self.calls.append(wallet_address)
        result = self.profiles.get(wallet_address.lower(), {"social_handle": None, "reputation_score": None})
        if isinstance(result, Exception):
            raise result
        return result


class FakePriceFeed:
    def __init__(self, prices=None):
        self.prices = {k.lower(): v for k, v in (prices or {}).items()}
        self.fail = False

    def set(self, token, price):
        self.prices[token.lower()] = price

    async def get_price(self, token_address):
        if self.fail or token_address.lower() not in self.prices:
            raise NetworkException("no price", token=token_address)
        return self.prices[token_address.lower()]


class FakeExecutor(TradeExecutor):
    """Fills at the feed price with no slippage; fail_* flags make the next calls raise."""

    def __init__(self, feed):
        self.feed = feed
        self.fail_buys = False
        self.fail_sells = 0
        self.buys = []
        self.sells = []

    async def buy(self, token_address, amount_base):
        if self.fail_buys:
            raise SwapException("buy reverted", token=token_address)
        price = await self.feed.get_price(token_address)
        self.buys.append((token_address, amount_base))
        return TradeFill(token_address, "BUY", amount_base, price, tx_hash=f"0xbuy{len(self.buys)}")

    async def sell(self, token_address, fraction):
        if self.fail_sells:
            self.fail_sells -= 1
            raise SwapException("sell reverted", token=token_address)
        price = await self.feed.get_price(token_address)
        self.sells.append((token_address, fraction))
        return TradeFill(token_address, "SELL", fraction * price, price, fraction=fraction)


def make_policy(**changes):
    policy = StrategyPolicy(
        name="Test",
        min_reputation_score=1600,
        trade_amount_eth=0.01,
        ladder=(LadderStep(50, 50), LadderStep(100, 50)),
        stop_loss_pct=-20.0,
        max_hold_sec=3600,
        max_positions=5,
    )
    return policy.with_overrides(**changes)


def make_event(token=addr(2), creator=addr(1), block=1000, symbol="TEST"):
    return CreationEvent(
        contract_address=ZORA_FACTORY_ADDRESS,
        creator_address=creator,
        token_address=token,
        block_number=block,
        transaction_hash=f"0x{block:x}",
        log_index=0,
        block_age=0,
        name=f"{symbol} coin",
        symbol=symbol,
    )


def qualifying_verdict(event=None, score=2000):
    event = event or make_event()
    profile = ReputationProfile(event.creator_address, social_handle="creator", reputation_score=score)
    return QualificationVerdict(event=event, profile=profile, qualifies=True)
