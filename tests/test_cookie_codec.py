# tests/test_cookie_codec.py

import base64
import json
from datetime import timedelta

import pytest

from app.core.cookie_codec import NONCE_SIZE, TAG_SIZE, CookieCodec
from app.utils.dates import utcnow


def make_payload(**overrides):
    now = utcnow()
    payload = {
        "ref_code": "RL-ABCDEFGH",
        "affiliate_id": 7,
        "link_id": 3,
        "clicked_at": now.isoformat() + "+00:00",
        "expires_at": (now + timedelta(days=30)).isoformat() + "+00:00",
    }
    payload.update(overrides)
    return payload


def test_decode_returns_encoded_payload(codec):
    payload = make_payload(affiliate_id=None)
    assert codec.decode(codec.encode(payload)) == payload


def test_token_is_unpadded_urlsafe_base64_with_nonce_and_tag(codec):
    token = codec.encode(make_payload())
    assert "=" not in token
    assert "+" not in token and "/" not in token
    raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
    assert len(raw) > NONCE_SIZE + TAG_SIZE


def test_same_payload_encrypts_differently_each_time(codec):
    payload = make_payload()
    assert codec.encode(payload) != codec.encode(payload)


def test_tampered_token_is_rejected(codec):
    token = codec.encode(make_payload())
    raw = bytearray(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))
    raw[-1] ^= 0x01
    tampered = base64.urlsafe_b64encode(bytes(raw)).rstrip(b"=").decode()
    assert codec.decode(tampered) is None


def test_token_from_another_key_is_rejected(codec):
    other = CookieCodec(b"\x01" * 32)
    assert codec.decode(other.encode(make_payload())) is None


@pytest.mark.parametrize("token", [None, "", "not-base64!!", "abc", "A" * 20])
def test_garbage_is_rejected(codec, token):
    assert codec.decode(token) is None


def test_expired_payload_is_rejected(codec):
    expired = make_payload(expires_at=(utcnow() - timedelta(minutes=1)).isoformat() + "+00:00")
    assert codec.decode(codec.encode(expired)) is None


def test_non_object_json_is_rejected(codec):
    # Собираем токен вручную: кодек сам не шифрует не-словари
    nonce = b"\x00" * NONCE_SIZE
    sealed = codec._aesgcm.encrypt(nonce, json.dumps([1, 2, 3]).encode(), None)
    token = base64.urlsafe_b64encode(nonce + sealed[-TAG_SIZE:] + sealed[:-TAG_SIZE]).rstrip(b"=").decode()
    assert codec.decode(token) is None


def test_key_must_be_32_bytes():
    with pytest.raises(ValueError):
        CookieCodec(b"short")
