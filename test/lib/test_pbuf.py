from carverify.lib.cid import CID
from carverify.lib.pbuf import DataType, PBNode, ProtoBufReader, UnixFSData, WireType

from .. import TestBase
from ..builder import make_cid, pb_bytes, pb_link, pb_node, pb_varint, unixfs_data


class TestProtoBuf(TestBase):

    def test_read_fields(self):
        data = pb_varint(1, 150) + pb_bytes(2, B'testing')
        fields = list(ProtoBufReader(memoryview(data)).read_fields())
        self.assertEqual(len(fields), 2)
        self.assertEqual(fields[0], (1, WireType.VARINT, 150))
        nr, wt, value = fields[1]
        self.assertEqual((nr, wt, bytes(value)), (2, WireType.LEN, B'testing'))

    def test_invalid_wire_type(self):
        with self.assertRaises(ValueError):
            list(ProtoBufReader(memoryview(B'\x0E\x00')).read_fields())
        with self.assertRaises(ValueError):
            list(ProtoBufReader(memoryview(B'\x0B')).read_fields())

    def test_pbnode(self):
        a = make_cid(B'a')
        b = make_cid(B'b')
        data = pb_node([pb_link(a, 'first', 1), pb_link(b, 'second')], B'\x08\x01')
        node = PBNode.Parse(memoryview(data))
        self.assertEqual(node.Data, B'\x08\x01')
        self.assertEqual([link.Name for link in node.Links], ['first', 'second'])
        self.assertEqual([link.Hash for link in node.Links], [a, b])
        self.assertIsInstance(node.Links[0].Hash, CID)
        self.assertEqual(node.Links[0].Tsize, 1)
        self.assertIsNone(node.Links[1].Tsize)
        self.assertEqual(bytes(node), data)

    def test_pbnode_field_order_is_irrelevant(self):
        a = make_cid(B'a')
        data = pb_bytes(1, B'\x08\x01') + pb_bytes(2, pb_link(a, 'x'))
        node = PBNode.Parse(memoryview(data))
        self.assertEqual(node.Data, B'\x08\x01')
        self.assertEqual(node.Links[0].Hash, a)

    def test_pbnode_errors(self):
        a = make_cid(B'a')
        for data in (
            pb_bytes(3, B''),
            pb_varint(1, 1),
            pb_bytes(2, pb_bytes(2, B'name')),
            pb_bytes(2, pb_link(a) + pb_bytes(1, bytes(a))),
            pb_bytes(2, pb_bytes(1, B'\x01\x55')),
            pb_bytes(1, B'') + pb_bytes(1, B''),
        ):
            with self.assertRaises((ValueError, EOFError)):
                PBNode.Parse(memoryview(data))

    def test_unixfs_data(self):
        data = unixfs_data(DataType.File, B'inline', 30, [10, 14])
        unixfs = UnixFSData.Parse(memoryview(data))
        self.assertEqual(unixfs.Type, DataType.File)
        self.assertEqual(unixfs.Data, B'inline')
        self.assertEqual(unixfs.filesize, 30)
        self.assertEqual(unixfs.blocksizes, [10, 14])

    def test_unixfs_packed_blocksizes(self):
        data = unixfs_data(DataType.File, blocksizes=[300, 1, 2], packed=True)
        self.assertEqual(UnixFSData.Parse(memoryview(data)).blocksizes, [300, 1, 2])

    def test_unixfs_shard_and_unknown_fields(self):
        data = unixfs_data(DataType.HAMTShard, B'\xFF', hash_type=0x22, fanout=256) + pb_varint(7, 0o644)
        unixfs = UnixFSData.Parse(memoryview(data))
        self.assertEqual(unixfs.Type, DataType.HAMTShard)
        self.assertEqual(unixfs.hashType, 0x22)
        self.assertEqual(unixfs.fanout, 256)

    def test_unixfs_errors(self):
        with self.assertRaises(ValueError):
            UnixFSData.Parse(memoryview(pb_bytes(2, B'data')))
        with self.assertRaises(ValueError):
            UnixFSData.Parse(memoryview(pb_varint(1, 9)))
