import unittest

from recovery.encoding import convert_bytes_for_json, decode_binary_value, encode_binary_value


class TestBinaryValues(unittest.TestCase):
    def test_round_trip_is_unpadded(self):
        raw = bytes(range(1, 40))
        encoded = encode_binary_value(raw)
        self.assertNotIn("=", encoded)
        self.assertNotIn("+", encoded)
        self.assertNotIn("/", encoded)
        self.assertEqual(decode_binary_value(encoded), raw)

    def test_decode_accepts_padding_and_bytes(self):
        self.assertEqual(decode_binary_value("AQI="), b"\x01\x02")
        self.assertEqual(decode_binary_value(bytearray(b"\x01")), b"\x01")

    def test_decode_rejects_invalid_values(self):
        for value in (None, "", "ab+c", "a/b", 12, "a b"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    decode_binary_value(value)

    def test_encode_rejects_text(self):
        with self.assertRaises(ValueError):
            encode_binary_value("AQ")

    def test_convert_bytes_for_json_recurses(self):
        converted = convert_bytes_for_json({"id": b"\x01", "nested": [b"\x02", {"x": 1}]})
        self.assertEqual(converted, {"id": "AQ", "nested": ["Ag", {"x": 1}]})
