from __future__ import annotations

import unittest

from circles.errors import InvalidInputError
from utils.addressing import is_name_handle, normalize_address, normalize_input, truncate_address

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class NormalizeInputTests(unittest.TestCase):
    def test_lowercase_address_is_checksummed(self) -> None:
        self.assertEqual(normalize_input(f"  {CHECKSUMMED.lower()}  "), CHECKSUMMED)

    def test_checksummed_address_is_kept(self) -> None:
        self.assertEqual(normalize_input(CHECKSUMMED), CHECKSUMMED)

    def test_blank_input_is_empty(self) -> None:
        for raw in ("", "   ", None):
            with self.assertRaises(InvalidInputError) as ctx:
                normalize_input(raw)
            self.assertEqual(ctx.exception.reason, "empty")

    def test_name_handle_is_lowercased(self) -> None:
        self.assertEqual(normalize_input(" Alice.ETH "), "alice.eth")
        self.assertEqual(normalize_input("bob.circles.garden"), "bob.circles.garden")

    def test_garbage_is_invalid_address(self) -> None:
        for raw in ("hello", "0x1234", "0x" + "g" * 40):
            with self.assertRaises(InvalidInputError) as ctx:
                normalize_input(raw)
            self.assertEqual(ctx.exception.reason, "invalid_address")

    def test_bad_checksum_is_rejected(self) -> None:
        broken = CHECKSUMMED[:2] + CHECKSUMMED[2].swapcase() + CHECKSUMMED[3:]
        with self.assertRaises(InvalidInputError):
            normalize_input(broken)


class AddressHelperTests(unittest.TestCase):
    def test_normalize_address_is_case_insensitive_key(self) -> None:
        self.assertEqual(normalize_address(CHECKSUMMED), normalize_address(CHECKSUMMED.lower()))
        self.assertEqual(normalize_address(None), "")

    def test_truncate_address(self) -> None:
        self.assertEqual(truncate_address(CHECKSUMMED), "0x5aAe...eAed")
        self.assertEqual(truncate_address("0xabc"), "0xabc")
        self.assertEqual(truncate_address(""), "")

    def test_is_name_handle(self) -> None:
        self.assertTrue(is_name_handle("vitalik.eth"))
        self.assertFalse(is_name_handle("no dots here"))
        self.assertFalse(is_name_handle(".eth"))


if __name__ == "__main__":
    unittest.main()
