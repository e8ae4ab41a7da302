from dex.seed import DEFAULT_LISTINGS, DEFAULT_TRACKED_TOKENS, seed_demo_state


class TestSeed:
    """Demo tokens and listings"""

    def test_seed_creates_everything_once(self, registry, tracker):
        result = seed_demo_state(registry, tracker)
        expected_pairs = sum(len(q) for q in DEFAULT_LISTINGS.values())
        assert result == {"tokens": len(DEFAULT_TRACKED_TOKENS), "pairs": expected_pairs}

        pair = registry.get_trading_pair("rSHIB/rUSDT")
        assert pair.market_making is not None, "Demo pairs are market-made"
        assert tracker.get_tracked_token("rRSA").coingecko_id == "rsa-chain"

        again = seed_demo_state(registry, tracker)
        assert again == {"tokens": 0, "pairs": 0}, "Seeding twice should not duplicate"
