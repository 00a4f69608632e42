import math

from carverify.lib.cbor import loads
from carverify.lib.cid import parse_cid

from .. import TestBase


class TestCBORDecoder(TestBase):
    """
    Tests based on examples from RFC 8949, Appendix A:
    https://www.rfc-editor.org/rfc/rfc8949.html#appendix-A
    """

    def _decode(self, hex_input: str):
        return loads(bytes.fromhex(hex_input))

    def test_unsigned_integers(self):
        self.assertEqual(self._decode('00'), 0)
        self.assertEqual(self._decode('17'), 23)
        self.assertEqual(self._decode('1818'), 24)
        self.assertEqual(self._decode('1903e8'), 1000)
        self.assertEqual(self._decode('1a000f4240'), 1000000)
        self.assertEqual(self._decode('1bffffffffffffffff'), 18446744073709551615)

    def test_negative_integers(self):
        self.assertEqual(self._decode('20'), -1)
        self.assertEqual(self._decode('3863'), -100)
        self.assertEqual(self._decode('3bffffffffffffffff'), -18446744073709551616)

    def test_bignums(self):
        self.assertEqual(self._decode('c249010000000000000000'), 18446744073709551616)
        self.assertEqual(self._decode('c349010000000000000000'), -18446744073709551617)

    def test_floats(self):
        self.assertEqual(self._decode('f93c00'), 1.0)
        self.assertEqual(self._decode('fa47c35000'), 100000.0)
        self.assertEqual(self._decode('fb3ff199999999999a'), 1.1)
        self.assertTrue(math.isinf(self._decode('f97c00')))

    def test_simple_values(self):
        self.assertIs(self._decode('f4'), False)
        self.assertIs(self._decode('f5'), True)
        self.assertIsNone(self._decode('f6'))
        self.assertIsNone(self._decode('f7'))

    def test_strings(self):
        self.assertEqual(self._decode('40'), B'')
        self.assertEqual(self._decode('4401020304'), B'\x01\x02\x03\x04')
        self.assertEqual(self._decode('6449455446'), 'IETF')
        self.assertEqual(self._decode('62c3bc'), 'ü')
        self.assertEqual(self._decode('5f42010243030405ff'), B'\x01\x02\x03\x04\x05')
        self.assertEqual(self._decode('7f657374726561646d696e67ff'), 'streaming')

    def test_containers(self):
        self.assertEqual(self._decode('83010203'), [1, 2, 3])
        self.assertEqual(self._decode('8301820203820405'), [1, [2, 3], [4, 5]])
        self.assertEqual(self._decode('a201020304'), {1: 2, 3: 4})
        self.assertEqual(self._decode('a26161016162820203'), {'a': 1, 'b': [2, 3]})
        self.assertEqual(self._decode('9f018202039f0405ffff'), [1, [2, 3], [4, 5]])
        self.assertEqual(self._decode('bf61610161629f0203ffff'), {'a': 1, 'b': [2, 3]})

    def test_link(self):
        cid = parse_cid('bafkreifjjcie6lypi6ny7amxnfftagclbuxndqonfipmb64f2km2devei4')
        data = bytes(cid)
        encoded = B'\xA1\x64link\xD8\x2A\x58' + bytes((len(data) + 1,)) + B'\0' + data
        self.assertEqual(loads(encoded), {'link': cid})

    def test_link_without_zero_prefix(self):
        cid = parse_cid('bafkreifjjcie6lypi6ny7amxnfftagclbuxndqonfipmb64f2km2devei4')
        data = bytes(cid)
        with self.assertRaises(ValueError):
            loads(B'\xD8\x2A\x58' + bytes((len(data),)) + data)

    def test_invalid(self):
        for hex_input in (
            '',        # no item
            '1c',      # reserved additional information
            'ff',      # lone break
            '0000',    # trailing data
            '62c3',    # truncated string
            'c101',    # unsupported tag
            'a1810101',  # container as map key
            'f8ff',    # unassigned simple value
        ):
            with self.assertRaises((ValueError, EOFError), msg=hex_input):
                self._decode(hex_input)

    def test_nesting_limit(self):
        with self.assertRaises(ValueError):
            self._decode('81' * 300 + '00')
