#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Parsing of device responses, no device needed.
#
import pytest

from coincurve import PrivateKey
from iovledger.constants import SW_DATA_INVALID, SW_BAD_KEY_HANDLE
from iovledger.decoders import *
from iovledger.exceptions import MalformedResponse
from iovledger.status import ErrorState
from iovledger.utils import der_to_compact, verify_signature, SECP256K1_ORDER

OK = b'\x90\x00'

def der_int(n):
    # minimal big-endian, with leading zero if top bit set
    b = n.to_bytes(33, 'big').lstrip(b'\x00') or b'\x00'
    if b[0] & 0x80:
        b = b'\x00' + b
    return b'\x02' + bytes([len(b)]) + b

def der_sig(r, s):
    body = der_int(r) + der_int(s)
    return b'\x30' + bytes([len(body)]) + body

def test_split_status():
    assert split_status(b'abc\x90\x00') == (b'abc', 0x9000)
    assert split_status(b'\x6a\x80') == (b'', 0x6a80)

    for short in [b'', b'\x90']:
        with pytest.raises(MalformedResponse) as err:
            split_status(short)
        assert 'too short' in str(err.value)

def test_version():
    v = decode_version(bytes([0, 1, 2, 3, 0]) + OK)
    assert v.ok
    assert v.return_code == 0x9000
    assert v.error_message == "No errors"
    assert v.test_mode is False
    assert (v.major, v.minor, v.patch) == (1, 2, 3)
    assert v.version == '1.2.3'
    assert v.device_locked is False
    assert v.target_id is None

    v = decode_version(bytes([0xff, 0, 9, 10, 1]) + b'\x31\x10\x00\x04' + OK,
                            has_target_id=True)
    assert v.test_mode is True
    assert v.device_locked is True
    assert v.version == '0.9.10'
    assert v.target_id == '31100004'

    # target id absent, even if dialect would have it
    v = decode_version(bytes(5) + OK, has_target_id=True)
    assert v.target_id is None

def test_version_short():
    with pytest.raises(MalformedResponse):
        decode_version(bytes([0, 1, 2]) + OK)

    # status code alone is too short as well
    with pytest.raises(MalformedResponse):
        decode_version(b'\x6e\x00')

def test_version_error():
    r = decode_version(bytes(4) + b'\x69\x86')
    assert isinstance(r, ErrorState)
    assert r.return_code == 0x6986
    assert r.error_message == "Transaction rejected"

def test_app_info():
    resp = bytes([1, 3]) + b'IOV' + bytes([5]) + b'0.1.2' + bytes([1, 0x86]) + OK
    a = decode_app_info(resp)
    assert a.ok
    assert a.app_name == 'IOV'
    assert a.app_version == '0.1.2'
    assert a.flag_len == 1
    assert a.flags_value == 0x86
    assert a.flag_recovery is False
    assert a.flag_signed_mcu_code is True
    assert a.flag_onboarded is True
    assert a.flag_pin_validated is True

    a = decode_app_info(bytes([1, 3]) + b'BOL' + bytes([3]) + b'1.0' + bytes([1, 1]) + OK)
    assert a.app_name == 'BOL'
    assert a.flag_recovery is True
    assert not (a.flag_signed_mcu_code or a.flag_onboarded or a.flag_pin_validated)

def test_app_info_format():
    r = decode_app_info(bytes([2, 3]) + b'IOV' + bytes([1]) + b'1' + bytes([1, 0]) + OK)
    assert isinstance(r, ErrorState)
    assert r.ok is False
    assert r.return_code == 0x9001
    assert r.error_message == "response format ID not recognized"

    with pytest.raises(MalformedResponse):
        decode_app_info(bytes([1, 10]) + b'IOV' + OK)

def test_address():
    pub = bytes(range(32))
    r = decode_address(pub + b'iov1abcdef' + OK)
    assert r.ok
    assert r.pubkey == pub
    assert r.address == 'iov1abcdef'

    pub = b'\x02' + bytes(32)
    r = decode_address(pub + b'star1xyz' + OK, pubkey_len=33)
    assert r.pubkey == pub
    assert r.address == 'star1xyz'

    r = decode_address(b'\x6e\x00')
    assert r.return_code == 0x6e00

    with pytest.raises(MalformedResponse):
        decode_address(bytes(20) + OK)

    with pytest.raises(MalformedResponse):
        decode_address(bytes(32) + b'\xff\xfe' + OK)

def test_signature():
    sig = bytes(range(64))
    r = decode_signature(sig + OK)
    assert r.ok
    assert r.signature == sig
    assert r.error_message == "No errors"

    # nothing to return, device still said ok
    r = decode_signature(OK)
    assert isinstance(r, ErrorState)
    assert r.ok is False
    assert r.return_code == SW_DATA_INVALID
    assert r.error_message == "No signature in response"

    r = decode_signature(OK, der_encoded=True)
    assert r.error_message == "No signature in response"

def test_signature_soft_errors():
    r = decode_signature(b'Unexpected data type\x6a\x80')
    assert isinstance(r, ErrorState)
    assert r.return_code == SW_BAD_KEY_HANDLE
    assert r.error_message == "Bad key handle : Unexpected data type"

    # no diagnostic given
    r = decode_signature(b'\x6a\x80')
    assert r.error_message == "Bad key handle"

    # only when told it is a soft code
    codes = frozenset({SW_DATA_INVALID, SW_BAD_KEY_HANDLE})
    r = decode_signature(b'JSON Missing chain_id\x69\x84', soft_codes=codes)
    assert r.error_message == "Data is invalid : JSON Missing chain_id"

    r = decode_signature(b'JSON Missing chain_id\x69\x84')
    assert r.error_message == "Data is invalid"

    r = decode_signature(b'\x69\x86')
    assert r.error_message == "Transaction rejected"

def test_chunk_ack():
    assert decode_chunk_ack(OK) is None
    assert decode_chunk_ack(b'junk' + OK) is None

    r = decode_chunk_ack(b'\x69\x85')
    assert r.return_code == 0x6985

    r = decode_chunk_ack(b'JSON Invalid\x69\x84', soft_codes={SW_DATA_INVALID})
    assert r.error_message == "Data is invalid : JSON Invalid"

def test_der_signature():
    pk = PrivateKey(b'\x01' * 32)
    pub = pk.public_key.format(compressed=True)
    msg = b'{"chain_id":"iov-mainnet-2"}'

    der = pk.sign(msg)
    compact = der_to_compact(der)
    assert len(compact) == 64
    assert verify_signature('secp256k1', pub, msg, compact)
    assert not verify_signature('secp256k1', pub, msg + b' ', compact)

    r = decode_signature(der + OK, der_encoded=True)
    assert r.signature == compact

    # high-S version of same signature comes out low-S
    r_val = int.from_bytes(compact[0:32], 'big')
    s_val = int.from_bytes(compact[32:64], 'big')
    assert s_val <= SECP256K1_ORDER // 2

    high = der_sig(r_val, SECP256K1_ORDER - s_val)
    assert high != der
    assert der_to_compact(high) == compact

def test_der_garbage():
    with pytest.raises(MalformedResponse):
        der_to_compact(b'\x30\x02\x01\x00')

    with pytest.raises(MalformedResponse):
        decode_signature(bytes(10) + OK, der_encoded=True)

# EOF
