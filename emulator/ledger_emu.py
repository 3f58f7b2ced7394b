#!/usr/bin/env python3
#
# (c) Copyright 2022 by Coinkite Inc. All rights reserved.
#
# Emulate a Ledger device running one of the IOV / Starname apps.
#
# - keys come from a fixed seed, NOT the BIP-32/SLIP-10 derivation the real apps use
# - addresses are bech32(hrp, sha256(pubkey)[0:20]): fine for testing, not for money
#
import os, struct, json, click, traceback
from hashlib import sha256, sha512
import bech32

from coincurve import PrivateKey
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from iovledger.constants import *
from iovledger.dialects import DIALECTS, get_dialect
from iovledger.transport import LedgerTransportABC
from iovledger.utils import B2A, ChunkPosition, canonical_json, decode_path, harden

# Print more?
DEBUG = True

# every emulated device has same keys unless told otherwise
DEFAULT_SEED = b'iovledger emulator seed'

# version we claim to be
APP_VERSION = (0, 12, 1)

# Nano S
TARGET_ID = 0x31100004

# first bytes of every weave transaction
WEAVE_MAGIC = b'\x00\xca\xfe\x00'

# chain id that only a mainnet (non-test mode) device will sign for
MAINNET_CHAIN_ID = 'iov-mainnet'

# provides status word, plus optional payload (diagnostic text)
class EmuError(RuntimeError):
    def __init__(self, code, payload=b''):
        self.code = code
        self.payload = payload
        super().__init__('%04x' % code)

def render_address(pubkey, hrp):
    # make the text string used as an address (emulator's own rule)
    return bech32.bech32_encode(hrp, bech32.convertbits(sha256(pubkey).digest()[0:20], 8, 5))

class LedgerState:
    '''
        Whole-device state, for one dialect of the app.
    '''
    def __init__(self, dialect, seed=DEFAULT_SEED, test_mode=False, locked=False):
        self.dialect = dialect
        self.seed = seed
        self.test_mode = test_mode
        self.locked = locked

        # False means the user presses "reject" for everything
        self.approve = True

        self._reset_sign()

    def _reset_sign(self):
        self.sign_path = None
        self.sign_buf = b''
        self.sign_next = None

    def __repr__(self):
        tm = ' TESTNET' if self.test_mode else ''
        return f'<LEDGER: {self.dialect.name}{tm} v{".".join(map(str, APP_VERSION))}>'

    def keypair(self, raw_path):
        # returns (signing object, pubkey bytes) for a serialized path
        secret = sha512(self.seed + raw_path).digest()[0:32]

        if self.dialect.curve == 'ed25519':
            pk = Ed25519PrivateKey.from_private_bytes(secret)
            pub = pk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        else:
            pk = PrivateKey(secret)
            pub = pk.public_key.format(compressed=True)

        return pk, pub

    def _split_prefix(self, data):
        # [len+hrp] + path, hrp only for dialects which take it
        if not self.dialect.uses_prefix:
            return ('tiov' if self.test_mode else 'iov'), data

        if not data or len(data) < 1 + data[0]:
            raise EmuError(0x6700)
        ln = data[0]
        hrp = data[1:1+ln].decode('ascii')
        return hrp, data[1+ln:]

    def _check_path(self, raw):
        # must be m/44'/234'/n'[/0/0] in our width
        if len(raw) != 4 * self.dialect.path_words:
            raise EmuError(0x6700)

        words = decode_path(raw)
        if words[0:2] != [harden(BIP44_PURPOSE), harden(IOV_COIN_TYPE)]:
            raise EmuError(0x6802)
        if words[2] < HARDENED:
            raise EmuError(0x6802)

        return raw

    #
    # Commands.
    #

    def exchange(self, apdu):
        # process one APDU, return response with status word
        cla, ins, p1, p2, ln = apdu[0:5]
        data = bytes(apdu[5:])

        try:
            if len(data) != ln:
                raise EmuError(0x6700)

            if cla == CLA_APP_INFO and ins == INS_GET_APP_INFO:
                resp = self.cmd_app_info()
            elif cla != self.dialect.cla:
                raise EmuError(0x6e00)
            elif ins == self.dialect.ins_get_version:
                resp = self.cmd_version()
            elif self.locked:
                raise EmuError(0x6986)
            elif ins == self.dialect.ins_get_address:
                resp = self.cmd_address(p1, data)
            elif ins == self.dialect.ins_sign:
                resp = self.cmd_sign(p1, p2, data)
            else:
                raise EmuError(0x6d00)

            sw = SW_OKAY
        except EmuError as exc:
            resp, sw = exc.payload, exc.code

        if DEBUG:
            print(f"{cla:02x}:{ins:02x} p1={p1} p2={p2} ({ln} bytes) => {sw:04x} ({len(resp)} bytes)")

        return resp + struct.pack('>H', sw)

    def cmd_app_info(self):
        name = b'IOV' if self.dialect.curve == 'ed25519' else b'Starname'
        ver = '.'.join(map(str, APP_VERSION)).encode('ascii')
        flags = APP_FLAG_ONBOARDED | APP_FLAG_PIN_VALIDATED

        return bytes([APP_INFO_FORMAT_ID, len(name)]) + name \
                + bytes([len(ver)]) + ver + bytes([1, flags])

    def cmd_version(self):
        rv = bytes([int(self.test_mode)]) + bytes(APP_VERSION) + bytes([int(self.locked)])
        if self.dialect.has_target_id:
            rv += struct.pack('>I', TARGET_ID)
        return rv

    def cmd_address(self, p1, data):
        hrp, raw = self._split_prefix(data)
        _, pub = self.keypair(self._check_path(raw))

        if p1 and not self.approve:
            # showed it on screen, user said no
            raise EmuError(0x6986)

        return pub + render_address(pub, hrp).encode('ascii')

    def cmd_sign(self, p1, p2, data):
        # collect chunks, sign on last one
        d = self.dialect

        if d.tagged_chunks:
            if p1 == ChunkPosition.INIT:
                self._reset_sign()
                _, raw = self._split_prefix(data) if d.prefix_in_sign else (None, data)
                self.sign_path = self._check_path(raw)
                return b''

            if self.sign_path is None or p1 not in (ChunkPosition.ADD, ChunkPosition.LAST):
                raise EmuError(0x6985)

            self.sign_buf += data
            if p1 == ChunkPosition.ADD:
                return b''
        else:
            # chunk index (from one) and count
            if p1 == 1:
                self._reset_sign()
                self.sign_path = self._check_path(data)
                self.sign_next = 2
            elif self.sign_path is None or p1 != self.sign_next:
                self._reset_sign()
                raise EmuError(0x6985)
            else:
                self.sign_buf += data
                self.sign_next += 1

            if p1 != p2:
                return b''

        path, msg = self.sign_path, self.sign_buf
        self._reset_sign()

        return self._do_sign(path, msg)

    def _do_sign(self, path, msg):
        if self.dialect.curve == 'ed25519':
            self._check_weave_tx(msg)
        else:
            self._check_json_tx(msg)

        if not self.approve:
            raise EmuError(0x6986)

        pk, _ = self.keypair(path)
        if self.dialect.curve == 'ed25519':
            return pk.sign(sha512(msg).digest())

        # DER, over sha256(msg)
        return pk.sign(msg)

    def _check_weave_tx(self, msg):
        if not msg.startswith(WEAVE_MAGIC):
            raise EmuError(SW_BAD_KEY_HANDLE, b'Unexpected data type')

        ln = msg[4] if len(msg) > 4 else 0
        chain_id = msg[5:5+ln].decode('ascii', errors='replace')
        if (chain_id == MAINNET_CHAIN_ID) == self.test_mode:
            # wrong network for this device
            raise EmuError(SW_DATA_INVALID)

    def _check_json_tx(self, msg):
        try:
            obj = json.loads(msg.decode('utf-8'))
        except ValueError:
            raise EmuError(SW_DATA_INVALID, b'JSON Invalid')

        if not isinstance(obj, dict) or 'chain_id' not in obj:
            raise EmuError(SW_DATA_INVALID, b'JSON Missing chain_id')

        if canonical_json(obj).encode('utf-8') != msg:
            raise EmuError(SW_DATA_INVALID, b'JSON Dictionaries are not sorted')

    def emulate(self, pipename):
        # Using a unix socket as connector, run as an emulator for the device.
        import atexit, socket

        # manage unix socket cleanup for client
        def sock_cleanup():
            if os.path.exists(pipename):
                os.unlink(pipename)
        sock_cleanup()
        atexit.register(sock_cleanup)

        pipe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)

        pipe.bind(pipename)
        pipe.listen()
        while 1:
            print(f"Waiting for new connection on: {pipename}")
            con, addr = pipe.accept()

            print(f"Connected.")

            while 1:
                msg = con.recv(512)
                if not msg: break

                if len(msg) < 5:
                    print(f"Runt APDU: {B2A(msg)}")
                    resp = struct.pack('>H', 0x6700)
                else:
                    try:
                        resp = self.exchange(msg)
                    except Exception as exc:
                        # shouldn't happen
                        print(f"FAILED: APDU {B2A(msg)} => {exc}")
                        traceback.print_exc()
                        resp = struct.pack('>H', 0x6f00)

                con.sendall(resp)

            con.close()

class EmulatorTransport(LedgerTransportABC):
    #
    # Talk to an in-process emulated device. Keeps a log of APDUs sent.
    #
    is_emulator = True
    name = 'in-process emulator'

    def __init__(self, device):
        super().__init__()
        self.device = device
        self.sent = []

    def _exchange(self, apdu):
        self.sent.append(apdu)
        return self.device.exchange(apdu)


@click.group()
@click.option('--quiet', '-q', is_flag=True, help='Less debugging')
@click.option('--dialect', '-d', default='secp256k1', type=click.Choice(list(DIALECTS)),
                help='Which app to be')
@click.option('--test-mode', '-t', is_flag=True, help='Operate in test mode (testnet)')
@click.option('--seed', '-s', default=None, help='Seed text for keys', metavar="TEXT")
@click.pass_context
def main(ctx, quiet, dialect, test_mode, seed):
    global DEBUG
    DEBUG = not quiet

    ctx.obj = LedgerState(get_dialect(dialect), test_mode=test_mode,
                            seed=(seed.encode('utf-8') if seed else DEFAULT_SEED))

@main.command('emulate')
@click.option('--pipe', '-p', type=str, default=EMULATOR_PIPE, help='Unix pipe for comms', metavar="PATH")
@click.pass_obj
def emulate_device(dev, pipe):
    '''
        Emulate a device, reachable over a Unix socket.
    '''
    print(dev)
    dev.emulate(pipe)

@main.command('selftest')
@click.pass_obj
def basic_test(dev):
    '''
        Run the basic commands against the emulated device, in-process.
    '''
    from iovledger.proto import LedgerApp
    from iovledger.utils import verify_signature, message_to_bytes

    app = LedgerApp(EmulatorTransport(dev), dialect=dev.dialect)

    print(app.get_app_info())
    print(app.get_version())

    addr = app.get_address(0)
    print(addr)

    if dev.dialect.curve == 'ed25519':
        chain = 'iov-lovenet' if dev.test_mode else MAINNET_CHAIN_ID
        msg = WEAVE_MAGIC + bytes([len(chain)]) + chain.encode('ascii') + bytes(300)
    else:
        msg = dict(chain_id='iov-mainnet-2', memo='x' * 300, msgs=[], sequence='1')

    sig = app.sign(0, msg)
    print(sig)
    assert sig.ok, sig.error_message

    assert verify_signature(dev.dialect.curve, addr.pubkey, message_to_bytes(msg), sig.signature)
    print("Signature verifies.")


if __name__ == '__main__':
    main()

# EOF
