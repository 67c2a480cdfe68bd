"""Tests for Bitcoin address analysis."""

import pytest

from chainsweep.utxo.address import BTCAddressType, analyze_btc_address, validate_btc_address

TAPROOT = "bc1p5d7rjq7g6rdk2yhzks9smlaqtedr4dekq08ge8ztwac72sfr9rusxg3297"
P2WSH = "bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3"


class TestAnalyzeMainnet:
    """Tests for mainnet address classification."""

    @pytest.mark.parametrize(
        "address,address_type",
        [
            ("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", BTCAddressType.P2PKH),
            ("3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy", BTCAddressType.P2SH),
            ("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", BTCAddressType.P2WPKH),
            (P2WSH, BTCAddressType.P2WSH),
            (TAPROOT, BTCAddressType.P2TR),
        ],
    )
    def test_valid_types(self, address, address_type):
        info = analyze_btc_address(address, "mainnet")
        assert info.is_valid
        assert info.type == address_type
        assert info.network == "mainnet"

    def test_witness_versions(self):
        assert analyze_btc_address(TAPROOT, "mainnet").witness_version == 1
        assert analyze_btc_address(P2WSH, "mainnet").witness_version == 0
        assert analyze_btc_address("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2").witness_version is None

    def test_taproot_length_is_fixed(self):
        info = analyze_btc_address(TAPROOT[:-1], "mainnet")
        assert info.type == BTCAddressType.P2TR
        assert not info.is_valid

    def test_bech32_charset(self):
        # "b", "i" and "o" are outside the bech32 alphabet
        assert not validate_btc_address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3tb", "mainnet")

    def test_testnet_address_invalid_on_mainnet(self):
        info = analyze_btc_address("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", "mainnet")
        assert info.type == BTCAddressType.UNKNOWN
        assert not info.is_valid


class TestAnalyzeTestnet:
    """Tests for testnet address classification."""

    @pytest.mark.parametrize(
        "address,address_type",
        [
            ("mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn", BTCAddressType.P2PKH),
            ("2MzQwSSnBHWHqSAqtTVQ6v47XtaisrJa1Vc", BTCAddressType.P2SH),
            ("tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx", BTCAddressType.P2WPKH),
        ],
    )
    def test_valid_types(self, address, address_type):
        info = analyze_btc_address(address, "testnet")
        assert info.is_valid
        assert info.type == address_type

    def test_mainnet_address_invalid_on_testnet(self):
        assert not validate_btc_address("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", "testnet")


class TestTotality:
    """Address analysis never raises."""

    @pytest.mark.parametrize(
        "address", ["", "1", "1" * 100, "bc1", "bc1p", "é" * 40, "3" + "I" * 30, None, 42]
    )
    def test_never_raises(self, address):
        assert validate_btc_address(address, "mainnet") is False

    def test_unknown_network(self):
        assert not validate_btc_address("1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2", "regtest")
