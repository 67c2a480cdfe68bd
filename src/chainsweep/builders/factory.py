"""Factory for per-chain sweep builders.

Builders keep no per-request state, so one cached instance per chain is
shared by every caller.
"""

import logging
from typing import Optional, Union

from chainsweep.builders.base import ChainTxBuilder
from chainsweep.chains import ChainKind
from chainsweep.config import Settings, get_settings
from chainsweep.errors import UnsupportedChainError

logger = logging.getLogger(__name__)


def _new_builder(chain: ChainKind, settings: Settings) -> ChainTxBuilder:
    """Instantiate the builder for a chain; every ChainKind member must be handled."""
    if chain is ChainKind.EVM:
        from chainsweep.builders.evm import EvmChainBuilder
        return EvmChainBuilder(settings)

    elif chain is ChainKind.BTC:
        from chainsweep.builders.bitcoin import BitcoinChainBuilder
        return BitcoinChainBuilder(settings)

    elif chain is ChainKind.TRC:
        from chainsweep.builders.tron import TronChainBuilder
        return TronChainBuilder(settings)

    elif chain is ChainKind.ADA:
        from chainsweep.builders.cardano import CardanoChainBuilder
        return CardanoChainBuilder(settings)

    elif chain is ChainKind.XRP:
        from chainsweep.builders.ripple import RippleChainBuilder
        return RippleChainBuilder(settings)

    raise UnsupportedChainError(chain.value)


class ChainBuilderFactory:
    """Selects and caches the builder for a chain tag.

    Example:
        builder = ChainBuilderFactory.create("evm")
        unsigned = await builder.build_unsigned_tx(params)
    """

    _builders: dict[ChainKind, ChainTxBuilder] = {}
    _settings: Optional[Settings] = None

    @classmethod
    def configure(cls, settings: Settings) -> None:
        """Use explicit settings for builders created from now on (clears cache)."""
        cls._settings = settings
        cls._builders.clear()

    @classmethod
    def create(cls, chain: Union[ChainKind, str]) -> ChainTxBuilder:
        """Get the builder for a chain tag.

        Raises:
            UnsupportedChainError: If the tag is not a known chain
        """
        kind = cls._parse(chain)

        if kind in cls._builders:
            return cls._builders[kind]

        builder = _new_builder(kind, cls._settings or get_settings())
        cls._builders[kind] = builder
        logger.debug(f"Created {type(builder).__name__} for chain {kind.value}")

        return builder

    @classmethod
    def is_supported(cls, chain: str) -> bool:
        """Check if a chain tag is supported."""
        try:
            cls._parse(chain)
        except UnsupportedChainError:
            return False
        return True

    @staticmethod
    def get_supported_chains() -> list[ChainKind]:
        """Get all chain tags the factory recognizes."""
        return list(ChainKind)

    @staticmethod
    def get_implemented_chains() -> list[ChainKind]:
        """Get chain tags with a working builder."""
        return [ChainKind.EVM, ChainKind.TRC, ChainKind.BTC, ChainKind.ADA, ChainKind.XRP]

    @classmethod
    def clear_cache(cls) -> None:
        """Clear builder cache (useful for testing)."""
        cls._builders.clear()
        cls._settings = None

    @staticmethod
    def _parse(chain: Union[ChainKind, str]) -> ChainKind:
        if isinstance(chain, ChainKind):
            return chain
        try:
            return ChainKind(str(chain).strip().lower())
        except ValueError:
            raise UnsupportedChainError(str(chain)) from None
