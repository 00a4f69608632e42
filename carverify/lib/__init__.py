"""
Library modules that are independent of the verification logic: binary readers, the multiformats
encodings, decoders for CBOR and protocol buffers, the murmur3 hash, optional dependency handling,
and the configuration through environment variables.
"""
