"""Chain identifiers and per-chain constants.

Covers the five chain families handled by the sweep builders:
- evm: Ethereum and EVM-compatible networks (account/nonce model)
- btc: Bitcoin (UTXO model)
- ada: Cardano (multi-asset UTXO model)
- trc: Tron (bandwidth/energy model)
- xrp: Ripple/XRP (reserve model)
"""

from enum import Enum


class ChainKind(str, Enum):
    """Supported chain families."""

    EVM = "evm"
    BTC = "btc"
    ADA = "ada"
    TRC = "trc"
    XRP = "xrp"


class NetworkType(str, Enum):
    """Networks a build or broadcast request can target."""

    ETHEREUM = "ethereum"    # EVM mainnet
    SEPOLIA = "sepolia"      # EVM testnet
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    MAINNET = "mainnet"      # Bitcoin/Cardano/Tron/Ripple mainnet
    TESTNET = "testnet"


# EVM chain IDs (EIP-155)
EVM_CHAIN_IDS: dict[str, int] = {
    NetworkType.ETHEREUM.value: 1,
    NetworkType.SEPOLIA.value: 11155111,
    NetworkType.POLYGON.value: 137,
    NetworkType.ARBITRUM.value: 42161,
}

# Standard value transfer
EVM_TRANSFER_GAS_LIMIT = 21000

# Bitcoin
BTC_DUST_LIMIT = 546              # satoshi
BTC_FALLBACK_FEE_RATE = 10        # sat/vB
BTC_INPUT_VBYTES = 148
BTC_OUTPUT_VBYTES = 34
BTC_TX_OVERHEAD_VBYTES = 10

# Tron
TRX_TRANSFER_FEE_SUN = 100_000          # 0.1 TRX bandwidth burn
TRC20_TRANSFER_FEE_SUN = 5_000_000      # 5 TRX, conservative energy estimate

# Cardano
ADA_MIN_FEE_A = 44            # lovelace per byte
ADA_MIN_FEE_B = 155_381       # lovelace
ADA_TYPICAL_TX_SIZE = 300     # bytes
ADA_BUILD_FEE = 170_000       # fixed estimate used when building
ADA_MIN_UTXO = 1_000_000      # 1 ADA

# Ripple
XRP_BASE_FEE_DROPS = 12
XRP_BASE_RESERVE_DROPS = 10_000_000    # 10 XRP
XRP_OWNER_RESERVE_DROPS = 2_000_000    # 2 XRP per owned ledger object
