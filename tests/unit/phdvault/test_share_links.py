"""Tests for share link construction and token extraction."""

from __future__ import annotations

import pytest

from phdvault.app.sharing.links import build_share_link, extract_token
from phdvault.app.sharing.tokens import new_token


class TestBuildShareLink:

    def test_link_format(self):
        assert build_share_link('https://vault.example.com', 'abc') == 'https://vault.example.com/shared/abc'

    def test_trailing_slash_on_base_is_dropped(self):
        assert build_share_link('https://vault.example.com/', 'abc') == 'https://vault.example.com/shared/abc'

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            build_share_link('https://vault.example.com', '')


class TestExtractToken:

    @pytest.mark.parametrize(
        'base',
        [
            'https://vault.example.com',
            'http://localhost:5173/',
            'https://example.com/app',
            'https://example.com/shared/portal',
        ],
    )
    def test_round_trip(self, base):
        for token in (new_token(), 'a b/c?d', 'shared'):
            assert extract_token(build_share_link(base, token)) == token

    def test_bare_token(self):
        assert extract_token('  3f2a-token  ') == '3f2a-token'

    def test_relative_path(self):
        assert extract_token('/shared/tok-123') == 'tok-123'

    def test_link_with_query_string(self):
        assert extract_token('https://vault.example.com/shared/tok-123?utm=x') == 'tok-123'

    def test_url_without_shared_segment_uses_last_segment(self):
        assert extract_token('https://vault.example.com/s/tok-123/') == 'tok-123'

    def test_link_ending_at_shared_has_no_token(self):
        assert extract_token('https://vault.example.com/shared/') is None

    @pytest.mark.parametrize('value', [None, '', '   '])
    def test_empty_input(self, value):
        assert extract_token(value) is None
