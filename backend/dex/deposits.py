"""
Mock deposit addresses.

Addresses only look like the real thing (prefix, alphabet, length); none of
them is derived from a key, so nothing sent to one can ever be recovered.
"""

import logging
import random
import string
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .models import utc_now_iso

logger = logging.getLogger(__name__)

ALNUM = string.digits + string.ascii_lowercase + string.ascii_uppercase
HEX = "0123456789abcdef"
BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
BASE36 = string.digits + string.ascii_lowercase

_rng = random.SystemRandom()


def _random_chars(alphabet: str, n: int) -> str:
    return "".join(_rng.choice(alphabet) for _ in range(n))


def _prefixed(prefixes, length: int = 34) -> Callable[[], str]:
    def generate() -> str:
        prefix = _rng.choice(prefixes)
        return prefix + _random_chars(ALNUM, length - len(prefix))
    return generate


def evm_address() -> str:
    return "0x" + _random_chars(HEX, 40)


def solana_address() -> str:
    return _random_chars(BASE58, 44)


def avalanche_address() -> str:
    return "X-" + _random_chars(BASE36, 40)


def cardano_address() -> str:
    return "addr1" + _random_chars(BASE58, 98)


def polkadot_address() -> str:
    return "1" + _random_chars(BASE58, 47)


bitcoin_address = _prefixed(["bc1", "1", "3"])
bitcoin_cash_address = _prefixed(["bitcoincash:", "1", "3"])
litecoin_address = _prefixed(["L", "M", "3"])
dogecoin_address = _prefixed(["D"])


@dataclass(frozen=True)
class NetworkInfo:
    generator: Callable[[], str]
    confirmations: int = 12
    min_deposit: float = 0.01
    max_deposit: float = 1000
    fee: float = 0.001
    estimated_time: str = "2-5 minutes"


_EVM_L2 = dict(min_deposit=0.001, fee=0.0005, estimated_time="1-3 minutes")

NETWORKS: Dict[str, NetworkInfo] = {
    "bitcoin": NetworkInfo(bitcoin_address, 6, 0.001, 100, 0.0001, "10-30 minutes"),
    "ethereum": NetworkInfo(evm_address, 12, 0.01, 1000, 0.005, "2-5 minutes"),
    "solana": NetworkInfo(solana_address, 32, 0.01, 10000, 0.000005, "1-2 minutes"),
    "avalanche": NetworkInfo(avalanche_address, 6, 0.01, 1000, 0.001, "1-3 minutes"),
    "bsc": NetworkInfo(evm_address, 15, **_EVM_L2),
    "polygon": NetworkInfo(evm_address, 256, 0.001, 1000, 0.0001, "1-3 minutes"),
    "arbitrum": NetworkInfo(evm_address, 12, **_EVM_L2),
    "fantom": NetworkInfo(evm_address, 200, 0.001, 1000, 0.0001, "1-3 minutes"),
    "linea": NetworkInfo(evm_address, 12, **_EVM_L2),
    "unichain": NetworkInfo(evm_address, 12, **_EVM_L2),
    "opbnb": NetworkInfo(evm_address, 12, **_EVM_L2),
    "base": NetworkInfo(evm_address, 12, **_EVM_L2),
    "polygon-zkevm": NetworkInfo(evm_address, 256, 0.001, 1000, 0.0001, "1-3 minutes"),
    "usdt": NetworkInfo(evm_address),
    "usdc": NetworkInfo(evm_address),
    "bitcoin-cash": NetworkInfo(bitcoin_cash_address, 6),
    "litecoin": NetworkInfo(litecoin_address, 6),
    "dogecoin": NetworkInfo(dogecoin_address, 6),
    "cardano": NetworkInfo(cardano_address, 2160),
    "polkadot": NetworkInfo(polkadot_address, 2),
}

#: Networks listed by ``/api/deposits/addresses/{user_id}``
PRIMARY_NETWORKS = [
    "bitcoin", "ethereum", "bsc", "avalanche", "polygon",
    "arbitrum", "fantom", "linea", "solana", "unichain",
    "opbnb", "base", "polygon-zkevm",
]

#: Unknown networks get an EVM address with the default limits
DEFAULT_NETWORK = NetworkInfo(evm_address)


@dataclass
class DepositAddress:
    address: str
    network: str
    symbol: str
    user_id: Optional[str]
    confirmations: int
    min_deposit: float
    max_deposit: float
    fee: float
    estimated_time: str
    created_at: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "network": self.network,
            "symbol": self.symbol,
            "userId": self.user_id,
            "confirmations": self.confirmations,
            "minDeposit": self.min_deposit,
            "maxDeposit": self.max_deposit,
            "fee": self.fee,
            "estimatedTime": self.estimated_time,
            "createdAt": self.created_at,
            "isActive": self.is_active,
        }


def generate_deposit_address(
    network: str = "bitcoin",
    symbol: Optional[str] = None,
    user_id: Optional[str] = None,
) -> DepositAddress:
    network = (network or "bitcoin").strip().lower()
    info = NETWORKS.get(network)
    if info is None:
        logger.warning(f"[Deposits] Unknown network '{network}', issuing an EVM-style address")
        info = DEFAULT_NETWORK

    return DepositAddress(
        address=info.generator(),
        network=network,
        symbol=symbol or network.upper(),
        user_id=user_id,
        confirmations=info.confirmations,
        min_deposit=info.min_deposit,
        max_deposit=info.max_deposit,
        fee=info.fee,
        estimated_time=info.estimated_time,
        created_at=utc_now_iso(),
    )
