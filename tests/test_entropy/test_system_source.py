"""Tests for SystemEntropySource."""

from __future__ import annotations

from unittest.mock import patch

from recurrent_decoder.entropy.system import SystemEntropySource


class TestSystemEntropySource:
    def test_name(self) -> None:
        assert SystemEntropySource().name == "system"

    def test_byte_counts(self) -> None:
        source = SystemEntropySource()
        assert [len(source.get_random_bytes(n)) for n in (0, 1, 33)] == [0, 1, 33]

    def test_reads_os_urandom(self) -> None:
        with patch("recurrent_decoder.entropy.system.os.urandom", return_value=b"\xab" * 4) as m:
            assert SystemEntropySource().get_random_bytes(4) == b"\xab" * 4
        m.assert_called_once_with(4)

    def test_uniform_uses_top_53_bits(self) -> None:
        source = SystemEntropySource()
        with patch.object(source, "get_random_bytes", return_value=b"\xff" * 8):
            assert source.uniform() == (2**53 - 1) / 2**53
        with patch.object(source, "get_random_bytes", return_value=b"\x00" * 8):
            assert source.uniform() == 0.0

    def test_uniform_in_unit_interval(self) -> None:
        source = SystemEntropySource()
        assert all(0.0 <= source.uniform() < 1.0 for _ in range(200))

    def test_usable_after_close(self) -> None:
        source = SystemEntropySource()
        source.close()
        assert len(source.get_random_bytes(8)) == 8
