"""
Tests for ID3v2 tag block stripping.

Tests verify:
- Synchsafe integer encoding and decoding
- Removal of one or several leading tag blocks
- ID3v2.4 footer handling
- Malformed or truncated headers are left in place
"""

import pytest

from tagging.metadata.stripper import (
    decode_synchsafe,
    encode_synchsafe,
    strip_id3v2_tags,
)
from tests.audio_samples import build_id3_block


class TestSynchsafe:
    """Test 28-bit synchsafe integers."""

    def test_decode_known_value(self):
        """Each byte contributes 7 bits."""
        assert decode_synchsafe(b'\x00\x00\x02\x01') == 257
        assert decode_synchsafe(b'\x7f\x7f\x7f\x7f') == (1 << 28) - 1

    def test_decode_ignores_high_bit(self):
        assert decode_synchsafe(b'\x80\x80\x80\x81') == 1

    def test_encode_matches_decode(self):
        for value in (0, 1, 127, 128, 4096, 123456, (1 << 28) - 1):
            encoded = encode_synchsafe(value)
            assert len(encoded) == 4
            assert all(b < 0x80 for b in encoded)
            assert decode_synchsafe(encoded) == value

    def test_encode_out_of_range(self):
        with pytest.raises(ValueError):
            encode_synchsafe(1 << 28)
        with pytest.raises(ValueError):
            encode_synchsafe(-1)


class TestStripTags:
    """Test stripping of leading tag blocks."""

    def test_no_tag_returns_input_unchanged(self, audio_payload):
        assert strip_id3v2_tags(audio_payload) == audio_payload

    def test_empty_buffer(self):
        assert strip_id3v2_tags(b'') == b''

    def test_single_block(self, audio_payload):
        data = build_id3_block(3, b'\x00' * 100) + audio_payload
        assert strip_id3v2_tags(data) == audio_payload

    def test_two_back_to_back_blocks(self, audio_payload):
        """Every leading block goes, leaving exactly the audio bytes."""
        data = build_id3_block(3, b'T' * 64) + build_id3_block(4, b'U' * 32) + audio_payload
        assert strip_id3v2_tags(data) == audio_payload

    def test_v22_block(self, audio_payload):
        data = build_id3_block(2, b'\x00' * 20) + audio_payload
        assert strip_id3v2_tags(data) == audio_payload

    def test_v24_footer_is_skipped(self, audio_payload):
        data = build_id3_block(4, b'\x00' * 50, flags=0x10, footer=True) + audio_payload
        assert strip_id3v2_tags(data) == audio_payload

    def test_footer_flag_ignored_before_v24(self, audio_payload):
        """Only ID3v2.4 defines a footer."""
        data = build_id3_block(3, b'\x00' * 50, flags=0x10) + audio_payload
        assert strip_id3v2_tags(data) == audio_payload

    def test_unsupported_version_stops(self, audio_payload):
        data = build_id3_block(5, b'\x00' * 10) + audio_payload
        assert strip_id3v2_tags(data) == data

    def test_stops_at_unsupported_second_block(self, audio_payload):
        second = build_id3_block(9, b'\x00' * 10)
        data = build_id3_block(3, b'\x00' * 10) + second + audio_payload
        assert strip_id3v2_tags(data) == second + audio_payload

    def test_truncated_header_left_in_place(self):
        data = b'ID3\x03\x00'
        assert strip_id3v2_tags(data) == data

    def test_declared_size_past_end(self):
        """A block claiming more bytes than exist consumes the rest."""
        data = b'ID3\x03\x00\x00' + encode_synchsafe(1000) + b'\x00' * 20
        assert strip_id3v2_tags(data) == b''

    def test_accepts_bytearray_and_memoryview(self, audio_payload):
        data = build_id3_block(3, b'\x00' * 10) + audio_payload
        assert strip_id3v2_tags(bytearray(data)) == audio_payload
        assert strip_id3v2_tags(memoryview(data)) == audio_payload

    def test_returns_bytes(self, audio_payload):
        assert isinstance(strip_id3v2_tags(bytearray(audio_payload)), bytes)

    def test_idempotent(self, audio_payload):
        data = build_id3_block(3, b'\x00' * 10) + audio_payload
        once = strip_id3v2_tags(data)
        assert strip_id3v2_tags(once) == once

    def test_strips_real_mutagen_tag(self, make_mp3, audio_payload):
        tagged = make_mp3({'title': 'Demo', 'artist': 'UG Production'})
        assert tagged != audio_payload
        assert strip_id3v2_tags(tagged) == audio_payload
