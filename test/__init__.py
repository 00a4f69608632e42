import logging
import random
import unittest

import carverify


__all__ = ['carverify', 'TestBase']


class TestBase(unittest.TestCase):

    def generate_random_buffer(self, size):
        return bytes(random.randrange(0, 0x100) for _ in range(size))

    def generate_random_text(self, size):
        import string
        return ''.join(string.printable[
            random.randrange(0, len(string.printable))] for _ in range(size)).encode('UTF8')

    def setUp(self):
        random.seed(0xBAADF00D)  # guarantee deterministic 'random' buffers
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def assertContains(self, container, member, msg=None):
        self.assertIn(member, container, msg)

    def assertFailsWith(self, kind, callable, *args, **kwargs):
        """
        Assert that calling the function raises a `carverify.errors.VerificationError` of the given
        kind and return the error.
        """
        with self.assertRaises(carverify.VerificationError) as context:
            callable(*args, **kwargs)
        self.assertEqual(context.exception.kind, kind)
        return context.exception
