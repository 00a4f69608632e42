import hashlib

from carverify.lib.cid import CID, PathRequest, decode_cid, parse_cid, split_cid

from .. import TestBase

HELLO = B'hello world\n'
HELLO_CID = 'bafkreifjjcie6lypi6ny7amxnfftagclbuxndqonfipmb64f2km2devei4'
EMPTY_CID = 'bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku'


class TestContentIdentifier(TestBase):

    def test_parse_raw_v1(self):
        cid = parse_cid(HELLO_CID)
        self.assertEqual(cid.version, 1)
        self.assertEqual(cid.codec.name, 'raw')
        self.assertEqual(cid.hashfun.name, 'sha2-256')
        self.assertEqual(cid.raw_digest, hashlib.sha256(HELLO).digest())
        self.assertEqual(str(cid), HELLO_CID)

    def test_construct_matches_text(self):
        cid = CID('base32', 1, 'raw', ('sha2-256', hashlib.sha256(B'').digest()))
        self.assertEqual(str(cid), EMPTY_CID)
        self.assertEqual(cid, parse_cid(EMPTY_CID))
        self.assertEqual(hash(cid), hash(parse_cid(EMPTY_CID)))

    def test_binary_form(self):
        cid = parse_cid(HELLO_CID)
        data = bytes(cid)
        self.assertEqual(data[:4], B'\x01\x55\x12\x20')
        decoded = decode_cid(data)
        self.assertEqual(decoded, cid)
        self.assertEqual(str(decoded), HELLO_CID)

    def test_text_forms_are_rendered_in_base32(self):
        cid = parse_cid(HELLO_CID)
        for base in ('base16', 'base58btc', 'base64url'):
            parsed = parse_cid(cid.encode(base))
            self.assertEqual(parsed, cid, msg=base)
            self.assertEqual(str(parsed), HELLO_CID, msg=base)

    def test_version_0_example(self):
        text = 'QmXjYBY478Cno4jzdCcPy4NcJYFrwHZ51xaCP8vUwN9MGm'
        cid = parse_cid(text)
        self.assertEqual(cid.version, 0)
        self.assertEqual(cid.codec.name, 'dag-pb')
        self.assertEqual(str(cid), text)
        self.assertEqual(bytes(cid)[:2], B'\x12\x20')
        self.assertEqual(decode_cid(bytes(cid)), cid)

    def test_equality_is_exact(self):
        digest = hashlib.sha256(HELLO).digest()
        raw = CID('base32', 1, 'raw', ('sha2-256', digest))
        pb = CID('base32', 1, 'dag-pb', ('sha2-256', digest))
        self.assertNotEqual(raw, pb)
        self.assertNotEqual(raw, parse_cid(EMPTY_CID))

    def test_invalid_identifiers(self):
        for text in (
            '',
            'bafkrei',
            'xafkreifjjcie6lypi6ny7amxnfftagclbuxndqonfipmb64f2km2devei4',
            'Qm' + '0' * 44,
        ):
            with self.assertRaises(ValueError, msg=text):
                parse_cid(text)
        with self.assertRaises(ValueError):
            decode_cid(B'\x02\x55\x12\x20' + bytes(32))

    def test_split_from_frame(self):
        cid = parse_cid(HELLO_CID)
        parsed, rest = split_cid(memoryview(bytes(cid) + HELLO))
        self.assertEqual(parsed, cid)
        self.assertEqual(bytes(rest), HELLO)

    def test_split_version_0(self):
        cid = parse_cid('QmXjYBY478Cno4jzdCcPy4NcJYFrwHZ51xaCP8vUwN9MGm')
        parsed, rest = split_cid(memoryview(bytes(cid) + B'tail'))
        self.assertEqual(parsed, cid)
        self.assertEqual(bytes(rest), B'tail')

    def test_split_truncated(self):
        data = bytes(parse_cid(HELLO_CID))
        for size in (0, 2, 4, 20, len(data) - 1):
            with self.assertRaises(ValueError, msg=size):
                split_cid(memoryview(data[:size]))


class TestPathRequest(TestBase):

    def test_root_only(self):
        request = PathRequest.parse(HELLO_CID)
        self.assertEqual(request.root, parse_cid(HELLO_CID))
        self.assertEqual(request.segments, ())

    def test_segments(self):
        request = PathRequest.parse(F'{HELLO_CID}/subdir/hello.txt')
        self.assertEqual(request.segments, ('subdir', 'hello.txt'))
        self.assertEqual(str(request), F'{HELLO_CID}/subdir/hello.txt')

    def test_ipfs_prefix_and_empty_segments(self):
        request = PathRequest.parse(F'/ipfs/{HELLO_CID}//subdir/')
        self.assertEqual(request.segments, ('subdir',))

    def test_root_in_other_base(self):
        root = parse_cid(HELLO_CID).encode('base58btc')
        request = PathRequest.parse(F'{root}/a')
        self.assertEqual(str(request), F'{HELLO_CID}/a')

    def test_invalid(self):
        with self.assertRaises(ValueError):
            PathRequest.parse('/subdir/hello.txt')
        with self.assertRaises(ValueError):
            PathRequest.parse('')
