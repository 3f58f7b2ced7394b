#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# proto.py
#
# Implement the higher-level protocol for the IOV/Starname Ledger apps.
#
#
from iovledger.constants import *
from iovledger.dialects import Dialect, ED25519_SIMPLE
from iovledger.exceptions import DeviceStatusError
from iovledger.status import ErrorState, error_state
from iovledger.utils import encode_path, encode_prefix, check_account_index
from iovledger.utils import sign_get_chunks, chunk_position, message_to_bytes
from iovledger.decoders import decode_version, decode_app_info, decode_address
from iovledger.decoders import decode_signature, decode_chunk_ack

class LedgerApp:
    #
    # Protocol wrapper for one of the device apps. Call methods on this instance
    # to get work done. Every method returns either a result record or an
    # ErrorState; they only raise for bad arguments or broken transports.
    #
    def __init__(self, transport, dialect: Dialect = ED25519_SIMPLE, prefix=None):
        if transport is None:
            raise ValueError("Transport has not been defined")

        self.tr = transport
        self.dialect = dialect

        if prefix is not None and not dialect.uses_prefix:
            raise ValueError(f"Dialect {dialect.name} does not take a prefix")

        self.prefix = prefix if prefix is not None else dialect.default_prefix
        # check it now, not on first use
        self._prefix_bytes = encode_prefix(self.prefix) if self.prefix is not None else b''

    def __repr__(self):
        return '<%s %s via %r>' % (self.__class__.__name__, self.dialect.name, self.tr)

    def close(self):
        # optional? cleanup connection
        self.tr.close()
        del self.tr

    def send(self, ins, p1=0, p2=0, data=b'', acceptable=(SW_OKAY,), cla=None):
        # Send a command to the app, get whole response (with status word).
        # - status words the transport rejects become ErrorState
        try:
            return self.tr.send(self.dialect.cla if cla is None else cla,
                                    ins, p1, p2, data, acceptable)
        except DeviceStatusError as exc:
            return error_state(exc.code)

    def _path(self, account_index):
        return encode_path(account_index, self.dialect.path_words)

    def get_version(self):
        # test mode, version, lock state of the app
        with self.tr.lock:
            resp = self.send(self.dialect.ins_get_version)

        if isinstance(resp, ErrorState):
            return resp

        return decode_version(resp, has_target_id=self.dialect.has_target_id)

    def get_app_info(self):
        # name and version of whatever app is open, plus device flags
        with self.tr.lock:
            resp = self.send(INS_GET_APP_INFO, cla=CLA_APP_INFO)

        if isinstance(resp, ErrorState):
            return resp

        return decode_app_info(resp)

    def get_address(self, account_index, require_confirmation=False):
        # pubkey and address for m/44'/234'/index'
        # - P1=1 makes device show the address and wait for user OK
        data = self._path(account_index)
        if self.dialect.uses_prefix:
            data = self._prefix_bytes + data

        with self.tr.lock:
            resp = self.send(self.dialect.ins_get_address, p1=(1 if require_confirmation else 0),
                                data=data)

        if isinstance(resp, ErrorState):
            return resp

        return decode_address(resp, pubkey_len=self.dialect.pubkey_len)

    def sign(self, account_index, message):
        # Send message in chunks, device shows it and user approves.
        # - message can be bytes, text, or a dict (=> canonical JSON)
        # - stops at first chunk the device doesn't like, reports that status
        # - no resume: on any failure, caller starts over from the beginning
        check_account_index(account_index)
        message = message_to_bytes(message)

        chunks = sign_get_chunks(account_index, message, words=self.dialect.path_words,
                        prefix=(self._prefix_bytes if self.dialect.prefix_in_sign else b''))

        with self.tr.lock:
            for idx, chunk in enumerate(chunks):
                result = self._sign_send_chunk(idx, len(chunks), chunk)
                if isinstance(result, ErrorState):
                    break

        return result

    def _sign_send_chunk(self, idx, count, chunk):
        # one round trip of the signing sequence
        d = self.dialect
        if d.tagged_chunks:
            p1, p2 = chunk_position(idx, count), 0
        else:
            # older app counts from one
            p1, p2 = idx + 1, count

        resp = self.send(d.ins_sign, p1=p1, p2=p2, data=chunk, acceptable=d.sign_status_codes)
        if isinstance(resp, ErrorState):
            return resp

        if idx < count - 1:
            return decode_chunk_ack(resp, soft_codes=d.soft_sign_codes)

        return decode_signature(resp, soft_codes=d.soft_sign_codes, der_encoded=d.der_signatures)

# EOF
