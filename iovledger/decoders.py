#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# decoders.py
#
# Turn raw responses (payload + 2-byte status word) into result records.
#
# - pure functions, no device access here
# - device-reported problems come back as ErrorState, not exceptions
# - only raise when there are too few bytes to make any sense of it
#
from dataclasses import dataclass
from typing import Optional, Tuple
from iovledger.constants import *
from iovledger.exceptions import MalformedResponse
from iovledger.status import ErrorState, describe, error_state, is_success
from iovledger.utils import B2A, der_to_compact


@dataclass(frozen=True)
class VersionInfo:
    return_code: int
    error_message: str
    test_mode: bool
    major: int
    minor: int
    patch: int
    device_locked: bool
    target_id: Optional[str] = None

    ok = True

    @property
    def version(self):
        return f'{self.major}.{self.minor}.{self.patch}'

@dataclass(frozen=True)
class AppInfo:
    return_code: int
    error_message: str
    app_name: str
    app_version: str
    flag_len: int
    flags_value: int
    flag_recovery: bool
    flag_signed_mcu_code: bool
    flag_onboarded: bool
    flag_pin_validated: bool

    ok = True

@dataclass(frozen=True)
class AddressInfo:
    return_code: int
    error_message: str
    pubkey: bytes
    address: str

    ok = True

@dataclass(frozen=True)
class SignatureResult:
    return_code: int
    error_message: str
    signature: bytes

    ok = True


def split_status(response: bytes) -> Tuple[bytes, int]:
    # separate payload and status word (big endian, last two bytes)
    if len(response) < 2:
        raise MalformedResponse("Response too short to cut status code",
                                    raw_msg=B2A(response))
    return bytes(response[:-2]), (response[-2] << 8) | response[-1]

def soft_error(sw, payload):
    # payload is a message from the app, explaining what it didn't like
    msg = describe(sw)
    if payload:
        msg += ' : ' + payload.decode('ascii', errors='replace')
    return ErrorState(return_code=sw, error_message=msg)

def decode_version(response: bytes, has_target_id=False):
    # test_mode, major, minor, patch, locked [, target_id BE32]
    if len(response) < 6:
        raise MalformedResponse(f"Response data too short: {B2A(response)}",
                                    raw_msg=B2A(response))

    payload, sw = split_status(response)
    if not is_success(sw):
        return error_state(sw)

    target_id = None
    if has_target_id and len(payload) >= 9:
        target_id = '%08x' % int.from_bytes(payload[5:9], 'big')

    return VersionInfo(return_code=sw, error_message=describe(sw),
                        test_mode=(payload[0] != 0),
                        major=payload[1], minor=payload[2], patch=payload[3],
                        device_locked=(payload[4] == 1),
                        target_id=target_id)

def decode_app_info(response: bytes):
    # format_id(=1), len+app_name, len+app_version, flag_len, flags
    payload, sw = split_status(response)
    if not is_success(sw):
        return error_state(sw)

    if not payload or payload[0] != APP_INFO_FORMAT_ID:
        # not fatal, just a newer (or older) dashboard than we know
        return error_state(SW_BUSY, "response format ID not recognized")

    try:
        pos = 1
        ln = payload[pos]
        app_name = payload[pos+1:pos+1+ln].decode('ascii')
        pos += 1 + ln

        ln = payload[pos]
        app_version = payload[pos+1:pos+1+ln].decode('ascii')
        pos += 1 + ln

        flag_len = payload[pos]
        flags = payload[pos+1]
    except IndexError:
        raise MalformedResponse("App info response truncated", raw_msg=B2A(response))

    return AppInfo(return_code=sw, error_message=describe(sw),
                    app_name=app_name, app_version=app_version,
                    flag_len=flag_len, flags_value=flags,
                    flag_recovery=bool(flags & APP_FLAG_RECOVERY),
                    flag_signed_mcu_code=bool(flags & APP_FLAG_SIGNED_MCU_CODE),
                    flag_onboarded=bool(flags & APP_FLAG_ONBOARDED),
                    flag_pin_validated=bool(flags & APP_FLAG_PIN_VALIDATED))

def decode_address(response: bytes, pubkey_len=32):
    # fixed size pubkey, then ascii address for the rest
    payload, sw = split_status(response)
    if not is_success(sw):
        return error_state(sw)

    if len(payload) < pubkey_len:
        raise MalformedResponse(f"Expected {pubkey_len} byte pubkey, got {len(payload)} bytes",
                                    raw_msg=B2A(response))

    try:
        addr = payload[pubkey_len:].decode('ascii')
    except UnicodeDecodeError:
        raise MalformedResponse("Address is not ascii", raw_msg=B2A(response))

    return AddressInfo(return_code=sw, error_message=describe(sw),
                        pubkey=payload[0:pubkey_len], address=addr)

def decode_signature(response: bytes, soft_codes=frozenset({SW_BAD_KEY_HANDLE}),
                        der_encoded=False):
    # signature bytes before the status word, unless device complained
    payload, sw = split_status(response)

    if sw in soft_codes:
        return soft_error(sw, payload)

    if not is_success(sw):
        return error_state(sw)

    if not payload:
        # success, but nothing signed (ie. path chunk was the only chunk)
        return error_state(SW_DATA_INVALID, "No signature in response")

    sig = der_to_compact(payload) if der_encoded else payload

    return SignatureResult(return_code=sw, error_message=describe(sw), signature=sig)

def decode_chunk_ack(response: bytes, soft_codes=frozenset()):
    # reply to a non-final sign chunk: only the status word matters
    payload, sw = split_status(response)
    if is_success(sw):
        return None

    if sw in soft_codes:
        return soft_error(sw, payload)

    return error_state(sw)

# EOF
