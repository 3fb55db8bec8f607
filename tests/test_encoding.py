"""Tests for the data-URL codec."""

import pytest

from nepaltools.exceptions import InvalidDataUrlError
from nepaltools.storage.encoding import (
    DEFAULT_MIME_TYPE,
    decode_data_url,
    decoded_size,
    encode_data_url,
)


class TestDataUrlCodec:
    """Tests for encode_data_url / decode_data_url."""

    @pytest.mark.parametrize(
        ("data", "mime_type"),
        [
            (b"", "text/plain"),
            (b"\x00", "application/octet-stream"),
            (bytes([1, 2, 3]), "application/pdf"),
            (bytes(range(256)) * 3, "image/png"),
            ("नेपाल".encode(), "text/plain;charset=utf-8"),
        ],
    )
    def test_round_trip(self, data: bytes, mime_type: str) -> None:
        encoded = encode_data_url(data, mime_type)
        decoded_mime, decoded = decode_data_url(encoded)
        assert decoded == data
        assert decoded_mime == mime_type.split(";")[0]
        assert decoded_size(encoded) == len(data)

    def test_header_format(self) -> None:
        assert encode_data_url(b"abc", "text/plain") == "data:text/plain;base64,YWJj"

    def test_empty_mime_falls_back_to_default(self) -> None:
        encoded = encode_data_url(b"x", "")
        assert encoded.startswith(f"data:{DEFAULT_MIME_TYPE};base64,")

    def test_missing_header_rejected(self) -> None:
        with pytest.raises(InvalidDataUrlError):
            decode_data_url("YWJj")

    def test_non_base64_data_url_rejected(self) -> None:
        with pytest.raises(InvalidDataUrlError):
            decode_data_url("data:text/plain,hello")

    def test_corrupt_payload_rejected(self) -> None:
        with pytest.raises(InvalidDataUrlError):
            decode_data_url("data:text/plain;base64,@@@")

    def test_decoded_size_with_padding(self) -> None:
        for length in range(10):
            assert decoded_size(encode_data_url(b"a" * length, "text/plain")) == length
