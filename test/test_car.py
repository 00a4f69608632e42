import io

from carverify.car import CARV2_PRAGMA, Block, CarReader, iter_blocks
from carverify.errors import FailureKind
from carverify.lib.cid import CID

from . import TestBase
from .builder import car_v1, car_v2, cbor_dumps, frame, make_cid, varint


class TestCarReader(TestBase):

    def setUp(self):
        super().setUp()
        self.data = [B'hello world\n', B'verified content', B'']
        self.blocks = [(make_cid(d), d) for d in self.data]
        self.root = self.blocks[0][0]

    def test_header_and_blocks(self):
        reader = CarReader(car_v1([self.root], self.blocks))
        self.assertEqual(reader.header.version, 1)
        self.assertEqual(reader.header.roots, [self.root])
        blocks = list(reader)
        self.assertEqual(blocks, [Block(c, d) for c, d in self.blocks])
        self.assertIsInstance(blocks[0].cid, CID)

    def test_sources(self):
        archive = car_v1([self.root], self.blocks)
        for source in (
            io.BytesIO(archive),
            memoryview(archive),
            [archive[k:k + 7] for k in range(0, len(archive), 7)],
        ):
            self.assertEqual([b.data for b in iter_blocks(source)], self.data)

    def test_header_only(self):
        self.assertEqual(list(CarReader(car_v1([self.root], []))), [])

    def test_blocks_are_not_verified(self):
        cid = make_cid(B'claimed')
        self.assertEqual(list(iter_blocks(car_v1([cid], [(cid, B'actual')]))), [Block(cid, B'actual')])

    def test_carv2(self):
        for padding in (0, 13):
            archive = car_v2([self.root], self.blocks, padding=padding, index=B'\x80\x80\x80 garbage index')
            self.assertTrue(archive.startswith(CARV2_PRAGMA))
            reader = CarReader(io.BytesIO(archive))
            self.assertEqual(reader.header.version, 1)
            self.assertEqual(reader.header.roots, [self.root])
            self.assertIsNotNone(reader.header.v2)
            self.assertEqual(reader.header.v2.data_offset, 51 + padding)
            self.assertEqual([b.data for b in reader], self.data)

    def _assert_malformed(self, archive, **kwargs):
        def consume():
            list(CarReader(archive, **kwargs))
        return self.assertFailsWith(FailureKind.MALFORMED_ARCHIVE, consume)

    def test_malformed_headers(self):
        def header(value):
            data = cbor_dumps(value)
            return varint(len(data)) + data
        for archive in (
            B'',
            B'\x80',
            B'\x05\xA1',
            B'\x00',
            header([1, 2]),
            header({'version': 3, 'roots': [self.root]}),
            header({'version': 1, 'roots': []}),
            header({'version': 1, 'roots': ['not a cid']}),
            header({'version': 1}),
            header({'version': 2}),
            header({'version': True, 'roots': [self.root]}),
        ):
            self._assert_malformed(archive)

    def test_truncated_frame(self):
        archive = car_v1([self.root], self.blocks[:2])
        for cut in (1, 5, 40):
            self._assert_malformed(archive[:-cut])

    def test_truncated_varint(self):
        self._assert_malformed(car_v1([self.root], self.blocks) + B'\x81')

    def test_zero_length_frame(self):
        self._assert_malformed(car_v1([self.root], self.blocks) + B'\x00')

    def test_invalid_identifier(self):
        body = B'\x01\x55\x12\x20\x00'
        self._assert_malformed(car_v1([self.root], []) + varint(len(body)) + body)
        body = B'\x03\x55\x12\x20' + bytes(32)
        self._assert_malformed(car_v1([self.root], []) + varint(len(body)) + body)

    def test_frame_size_limit(self):
        big = B'x' * 500
        archive = car_v1([self.root], [(make_cid(big), big)])
        error = self._assert_malformed(archive, max_frame_size=200)
        self.assertIn('exceeds', str(error))
        self.assertEqual(list(CarReader(archive, max_frame_size=600))[0].data, big)

    def test_trailing_data_after_frames(self):
        archive = car_v1([self.root], self.blocks) + frame(self.root, self.data[0])
        self.assertEqual(len(list(iter_blocks(archive))), 4)
