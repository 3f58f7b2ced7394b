# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import json, struct, bech32
from enum import IntEnum
from hashlib import sha512
from binascii import b2a_hex
from typing import List
from coincurve import PublicKey
from coincurve.ecdsa import der_to_cdata, cdata_to_der, serialize_compact, deserialize_compact
from .constants import *
from .exceptions import InvalidArgument, MalformedResponse

# show bytes as hex in a string
B2A = lambda x: b2a_hex(x).decode('ascii')

# order of the secp256k1 group
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

def harden(index: int) -> int:
    # plain addition: stays a positive number even with the top bit set
    return HARDENED + index

def check_account_index(index):
    # bool is an int in python, but never what caller meant
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidArgument("Input must be an integer")
    if not (0 <= index < HARDENED):
        raise InvalidArgument("Index is out of range")
    return index

def encode_path(account_index: int, words: int = 3) -> bytes:
    # m/44'/234'/account' as LE32 words, plus two zero words for 5-word dialect
    check_account_index(account_index)
    assert words in (3, 5), words

    rv = struct.pack('<3I', harden(BIP44_PURPOSE), harden(IOV_COIN_TYPE), harden(account_index))
    if words == 5:
        rv += struct.pack('<2I', 0, 0)

    return rv

def decode_path(raw: bytes) -> List[int]:
    # inverse of encode_path; list of the LE32 words
    if len(raw) % 4:
        raise ValueError("path length must be a multiple of 4")
    return list(struct.unpack('<%dI' % (len(raw) // 4), raw))

def encode_prefix(prefix: str) -> bytes:
    # length byte, then the ascii of the human readable part
    if not isinstance(prefix, str):
        raise InvalidArgument("Prefix must be a string")
    if not (PREFIX_MIN_LENGTH <= len(prefix) <= PREFIX_MAX_LENGTH):
        raise InvalidArgument(f"Prefix length must be between {PREFIX_MIN_LENGTH} "
                                f"and {PREFIX_MAX_LENGTH}, got {len(prefix)}")
    try:
        raw = prefix.encode('ascii')
    except UnicodeEncodeError:
        raise InvalidArgument("Prefix must be ascii")

    return bytes([len(raw)]) + raw


class ChunkPosition(IntEnum):
    # values are the payload type byte placed in P1
    INIT = 0
    ADD = 1
    LAST = 2

def chunk_position(idx: int, count: int) -> ChunkPosition:
    # purely where it sits in sequence; first wins over last for a single chunk
    assert 0 <= idx < count
    if idx == 0:
        return ChunkPosition.INIT
    if idx == count - 1:
        return ChunkPosition.LAST
    return ChunkPosition.ADD

def split_message(message: bytes, size: int = CHUNK_SIZE) -> List[bytes]:
    # ceil(len/size) pieces, last one may be short, none for empty message
    return [message[pos:pos+size] for pos in range(0, len(message), size)]

def sign_get_chunks(account_index: int, message: bytes, words: int = 3,
                        prefix: bytes = b'', size: int = CHUNK_SIZE) -> List[bytes]:
    # first chunk always holds the path (maybe after prefix), rest is message
    return [prefix + encode_path(account_index, words)] + split_message(message, size)

def canonical_json(obj) -> str:
    # sorted keys at every level, no whitespace: same bytes each time
    return json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False)

def message_to_bytes(message) -> bytes:
    # what we will send to the device for signing
    if isinstance(message, (bytes, bytearray, memoryview)):
        return bytes(message)
    if isinstance(message, str):
        return message.encode('utf-8')
    if isinstance(message, (dict, list)):
        return canonical_json(message).encode('utf-8')

    raise InvalidArgument(f"Cannot sign message of type {type(message).__name__}")

def der_to_compact(der: bytes) -> bytes:
    # DER signature from device => 64 bytes r||s, with low-S
    try:
        sig = serialize_compact(der_to_cdata(der))
    except ValueError:
        raise MalformedResponse("Signature is not valid DER", raw_msg=B2A(der))

    r, s = sig[0:32], int.from_bytes(sig[32:64], 'big')
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r + s.to_bytes(32, 'big')

def verify_signature(curve: str, pubkey: bytes, message: bytes, sig: bytes) -> bool:
    # check a signature from the device against the pubkey it gave us
    # - ed25519 apps sign the sha512 of the message
    # - secp256k1 apps sign sha256 of the message
    if curve == 'ed25519':
        from cryptography.exceptions import InvalidSignature
        from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

        try:
            Ed25519PublicKey.from_public_bytes(pubkey).verify(sig, sha512(message).digest())
            return True
        except InvalidSignature:
            return False

    if curve == 'secp256k1':
        if len(sig) != 64:
            return False
        der = cdata_to_der(deserialize_compact(sig))
        return PublicKey(pubkey).verify(der, message)

    raise ValueError(f"Unknown curve: {curve}")

def render_pubkey(pubkey: bytes, hrp: str) -> str:
    # bech32 of raw pubkey bytes, like "starpub1..."
    return bech32.bech32_encode(hrp, bech32.convertbits(pubkey, 8, 5))

# EOF
