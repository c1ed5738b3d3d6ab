"""Unit tests for delta token minting"""

from datetime import datetime, timedelta, timezone

from sync.delta_token import mint_delta_token, token_timestamp


class TestMintDeltaToken:

    def test_format(self):
        token = mint_delta_token(now=datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert token.startswith("dt_")
        assert token_timestamp(token) == int(datetime(2026, 1, 1, tzinfo=timezone.utc).timestamp() * 1_000_000)

    def test_tokens_sort_in_minting_order(self):
        first = mint_delta_token()
        second = mint_delta_token(first)
        third = mint_delta_token(second)
        assert first < second < third

    def test_monotonic_when_clock_goes_backwards(self):
        """Given a token from the future, when minting now, then the new token still sorts after it"""
        future = mint_delta_token(now=datetime.now(timezone.utc) + timedelta(days=1))
        nxt = mint_delta_token(future)
        assert nxt > future
        assert token_timestamp(nxt) == token_timestamp(future) + 1

    def test_chain_suffix_depends_on_previous(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert mint_delta_token("a", now=now) != mint_delta_token("b", now=now)

    def test_foreign_token_has_no_timestamp(self):
        assert token_timestamp("erp-cursor-42") is None
        assert token_timestamp(None) is None
        assert mint_delta_token("erp-cursor-42").startswith("dt_")
