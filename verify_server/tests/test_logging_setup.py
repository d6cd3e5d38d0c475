"""Tests for secret masking in debug output."""
from verify_server.logging_setup import MASK, mask_sensitive


def test_masks_sensitive_keys_recursively():
    data = {
        "access_token": "at",
        "client_secret": "s",
        "headers": {"Authorization": "Bearer at"},
        "login": "jdoe",
        "items": [{"refresh_token": "rt", "level": 3}],
    }
    masked = mask_sensitive(data)
    assert masked["access_token"] == MASK
    assert masked["client_secret"] == MASK
    assert masked["headers"]["Authorization"] == MASK
    assert masked["login"] == "jdoe"
    assert masked["items"][0] == {"refresh_token": MASK, "level": 3}
    assert data["access_token"] == "at"


def test_masks_query_params_in_strings():
    url = "https://bot/auth/callback?code=abc123&state=xyz&token=t"
    masked = mask_sensitive(url)
    assert "abc123" not in masked
    assert "token=t" not in masked
    assert "state=xyz" in masked


def test_other_values_untouched():
    assert mask_sensitive(42) == 42
    assert mask_sensitive(None) is None
