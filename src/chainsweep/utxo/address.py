"""Bitcoin address analysis per network.

Format checks only: prefix, length and character set. No checksum
verification and no on-chain lookup. Every function here is total and
never raises for string input.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from chainsweep.chains import NetworkType

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
BECH32_ALPHABET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"

LEGACY_MIN_LENGTH = 26
LEGACY_MAX_LENGTH = 35
BECH32_MIN_LENGTH = 14
BECH32_MAX_LENGTH = 74
TAPROOT_LENGTH = 62
P2WPKH_LENGTH = 42
P2WSH_LENGTH = 62


class BTCAddressType(str, Enum):
    """Bitcoin output script type implied by the address."""

    P2PKH = "P2PKH"
    P2SH = "P2SH"
    P2WPKH = "P2WPKH"
    P2WSH = "P2WSH"
    P2TR = "P2TR"
    UNKNOWN = "UNKNOWN"


@dataclass
class BTCAddressInfo:
    """Result of address analysis."""

    address: str
    type: BTCAddressType
    network: str
    is_valid: bool
    witness_version: Optional[int] = None


# (p2pkh prefixes, p2sh prefix, segwit hrp) per network
_PREFIXES = {
    NetworkType.MAINNET.value: (("1",), "3", "bc"),
    NetworkType.TESTNET.value: (("m", "n"), "2", "tb"),
}


def _is_base58_legacy(address: str) -> bool:
    if not LEGACY_MIN_LENGTH <= len(address) <= LEGACY_MAX_LENGTH:
        return False
    return all(c in BASE58_ALPHABET for c in address)


def _is_bech32_data(address: str, hrp: str) -> bool:
    # Data part follows the "<hrp>1" separator; lowercase bech32 only
    data = address[len(hrp) + 1:]
    return len(data) >= 6 and all(c in BECH32_ALPHABET for c in data)


def analyze_btc_address(address: str, network: str = NetworkType.MAINNET.value) -> BTCAddressInfo:
    """Classify a Bitcoin address for a network and check its format.

    Args:
        address: Address string
        network: "mainnet" or "testnet"

    Returns:
        BTCAddressInfo with type UNKNOWN and is_valid False for anything
        that does not carry a prefix of the given network
    """
    network = str(getattr(network, "value", network))
    result = BTCAddressInfo(
        address=address if isinstance(address, str) else "",
        type=BTCAddressType.UNKNOWN,
        network=network,
        is_valid=False,
    )

    if not isinstance(address, str) or network not in _PREFIXES:
        return result

    p2pkh_prefixes, p2sh_prefix, hrp = _PREFIXES[network]

    if address.startswith(p2pkh_prefixes):
        result.type = BTCAddressType.P2PKH
        result.is_valid = _is_base58_legacy(address)
        return result

    if address.startswith(p2sh_prefix):
        result.type = BTCAddressType.P2SH
        result.is_valid = _is_base58_legacy(address)
        return result

    if address.startswith(f"{hrp}1p"):
        result.type = BTCAddressType.P2TR
        result.witness_version = 1
        result.is_valid = len(address) == TAPROOT_LENGTH and _is_bech32_data(address, hrp)
        return result

    if address.startswith(f"{hrp}1"):
        if len(address) == P2WPKH_LENGTH:
            result.type = BTCAddressType.P2WPKH
        elif len(address) == P2WSH_LENGTH:
            result.type = BTCAddressType.P2WSH
        result.witness_version = 0
        result.is_valid = (
            BECH32_MIN_LENGTH <= len(address) <= BECH32_MAX_LENGTH
            and _is_bech32_data(address, hrp)
        )
        return result

    return result


def validate_btc_address(address: str, network: str = NetworkType.MAINNET.value) -> bool:
    """Check if address is a well-formed Bitcoin address on network."""
    return analyze_btc_address(address, network).is_valid
