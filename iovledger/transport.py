# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# transport.py
#
# Move APDU bytes between desktop and a Ledger device (or our emulator).
#
# The protocol engine only needs LedgerTransportABC.send(); everything else
# here is about finding devices and framing bytes for USB.
#
import os, struct, threading
from .constants import *
from .exceptions import DeviceStatusError, MalformedResponse, TransportFailure
from .utils import B2A

# Change this to see traffic details
VERBOSE = False

def find_devices():
    #
    # Search for connected Ledger devices, and yield a transport for each.
    #
    # - generator function.
    #

    # emulation running on a Unix socket
    try:
        sim = LedgerUnixTransport.find_simulator()
        if sim:
            yield sim
    except TransportFailure as exc:
        # stale socket file, emulator not running
        if VERBOSE:
            print(f"Skipping emulator: {exc}")

    for path in LedgerHIDTransport.enumerate():
        try:
            yield LedgerHIDTransport(path)
        except TransportFailure as exc:
            # busy: some other program has it open
            if VERBOSE:
                print(f"Skipping {path!r}: {exc}")
            continue

def find_first():
    # operate on the first device we can find
    for tr in find_devices():
        return tr

    return None

def wrap_command_apdu(channel: int, apdu: bytes, packet_size: int = HID_PACKET_SIZE) -> bytes:
    # Split APDU into HID reports: each has channel, tag and sequence number,
    # first one also carries the total length. Zero padded to whole packets.
    if packet_size < 8:
        raise ValueError("Packet size too small for Ledger framing")

    rv = b''
    seq = 0
    offset = 0
    remain = struct.pack('>H', len(apdu)) + apdu
    while offset < len(remain):
        hdr = struct.pack('>HBH', channel, HID_TAG_APDU, seq)
        here = remain[offset:offset + packet_size - len(hdr)]
        pkt = hdr + here
        rv += pkt + bytes(packet_size - len(pkt))
        offset += len(here)
        seq += 1

    return rv

def unwrap_response_apdu(channel: int, data: bytes, packet_size: int = HID_PACKET_SIZE):
    # Reassemble response from HID reports. Returns None if more reports needed.
    # - raises on bad channel/tag/sequence
    if len(data) < 7:
        return None

    body = b''
    expect = None
    seq = 0
    for offset in range(0, len(data), packet_size):
        pkt = data[offset:offset+packet_size]
        if len(pkt) < 5:
            return None

        chan, tag, got_seq = struct.unpack('>HBH', pkt[0:5])
        if chan != channel:
            raise TransportFailure("Invalid channel")
        if tag != HID_TAG_APDU:
            raise TransportFailure("Invalid tag")
        if got_seq != seq:
            raise TransportFailure("Invalid sequence")

        if seq == 0:
            expect, = struct.unpack('>H', pkt[5:7])
            body += pkt[7:]
        else:
            body += pkt[5:]

        seq += 1
        if len(body) >= expect:
            return body[0:expect]

    return None


class LedgerTransportABC:
    #
    # Abstract base class. Low level details about talking to the device.
    #
    name = '???'
    is_emulator = False

    def __init__(self):
        # one request in flight per device; engine holds this for whole operations
        self.lock = threading.RLock()

    def _exchange(self, apdu):
        # send complete APDU, return complete response (payload + status word)
        raise NotImplementedError

    def close(self):
        # release resources
        pass

    def __repr__(self):
        return '<%s: %s>' % (self.__class__.__name__, self.name)

    def exchange(self, apdu):
        if VERBOSE:
            print(f">> {B2A(apdu)}")

        with self.lock:
            resp = bytes(self._exchange(bytes(apdu)))

        if VERBOSE:
            print(f"<< {B2A(resp)}")

        return resp

    def send(self, cla, ins, p1=0, p2=0, data=b'', acceptable=(SW_OKAY,)):
        # Build APDU, send it, and check status word is one we can handle.
        # - returns whole response, including status word at end
        # - acceptable=None means any status word is returned to caller
        data = bytes(data)
        if len(data) > 255:
            raise ValueError("APDU data too long")

        apdu = bytes([cla, ins, p1, p2, len(data)]) + data
        resp = self.exchange(apdu)

        if len(resp) < 2:
            raise MalformedResponse("Response too short to cut status code", raw_msg=B2A(resp))

        sw = (resp[-2] << 8) | resp[-1]
        if acceptable is not None and sw not in acceptable:
            raise DeviceStatusError(sw)

        return resp

class LedgerHIDTransport(LedgerTransportABC):
    #
    # For talking to a real device over USB.
    #

    @classmethod
    def enumerate(cls):
        # paths of Ledger devices, only the interface we can talk APDU over
        import hid

        for d in hid.enumerate(LEDGER_VENDOR_ID, 0):
            if d.get('interface_number') == 0 or d.get('usage_page') == LEDGER_USAGE_PAGE:
                yield d['path']

    def __init__(self, path, timeout_ms=HID_TIMEOUT_MS):
        import hid
        super().__init__()

        self.name = path.decode('ascii', errors='replace') if isinstance(path, bytes) else str(path)
        self.timeout_ms = timeout_ms
        try:
            self._dev = hid.device()
            self._dev.open_path(path)
        except (OSError, IOError) as exc:
            raise TransportFailure(f"Unable to open HID device: {exc}")

    def close(self):
        # release resources
        self._dev.close()
        del self._dev

    def _exchange(self, apdu):
        framed = wrap_command_apdu(HID_CHANNEL, apdu)

        try:
            for pos in range(0, len(framed), HID_PACKET_SIZE):
                # leading zero is the HID report number
                if self._dev.write(b'\x00' + framed[pos:pos+HID_PACKET_SIZE]) < 0:
                    raise TransportFailure("HID write failed")

            data = b''
            while 1:
                got = self._dev.read(HID_PACKET_SIZE + 1, self.timeout_ms)
                if not got:
                    # user didn't respond; device is now stuck mid-command
                    raise TransportFailure("Timeout waiting for device")
                data += bytes(got)

                resp = unwrap_response_apdu(HID_CHANNEL, data)
                if resp is not None:
                    return resp
        except (OSError, IOError, ValueError) as exc:
            raise TransportFailure(f"HID failure: {exc}")

class LedgerUnixTransport(LedgerTransportABC):
    #
    # Emulation running over a Unix socket.
    #
    is_emulator = True

    @classmethod
    def find_simulator(cls):
        fn = os.environ.get('IOVLEDGER_EMULATOR', EMULATOR_PIPE)
        if os.path.exists(fn):
            return cls(fn)
        return None

    def __init__(self, pipename):
        import socket
        super().__init__()

        self.name = pipename
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            self.sock.connect(pipename)
        except OSError as exc:
            raise TransportFailure(f"Emulator not answering: {exc}")

    def close(self):
        self.sock.close()

    def _exchange(self, apdu):
        # send and receive response back
        self.sock.sendall(apdu)
        resp = self.sock.recv(4096)

        if not resp:
            # closed socket causes this
            raise TransportFailure("Emu crashed?")

        return resp

# EOF
