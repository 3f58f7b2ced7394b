#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# USB HID framing, APDU status handling, and the emulator socket.
#
import pytest, os, time, threading

from iovledger.constants import HID_CHANNEL, HID_PACKET_SIZE
from iovledger.exceptions import MalformedResponse, DeviceStatusError, TransportFailure
from iovledger.transport import wrap_command_apdu, unwrap_response_apdu, LedgerUnixTransport
from iovledger.transport import find_devices

def test_wrap_short():
    apdu = bytes.fromhex('2200000000')
    got = wrap_command_apdu(HID_CHANNEL, apdu)

    assert len(got) == HID_PACKET_SIZE
    assert got[0:12] == bytes.fromhex('0101050000' '0005' '2200000000')
    assert got[12:] == bytes(HID_PACKET_SIZE - 12)

def test_wrap_multi():
    apdu = bytes(i & 0xff for i in range(100))
    got = wrap_command_apdu(HID_CHANNEL, apdu)

    assert len(got) == 2 * HID_PACKET_SIZE
    p0, p1 = got[0:64], got[64:128]

    assert p0[0:7] == bytes.fromhex('0101050000' '0064')
    assert p0[7:] == apdu[0:57]

    assert p1[0:5] == bytes.fromhex('0101050001')
    assert p1[5:5+43] == apdu[57:]
    assert p1[5+43:] == bytes(64 - 5 - 43)

    # response framing is the same
    assert unwrap_response_apdu(HID_CHANNEL, got) == apdu

@pytest.mark.parametrize('ln', [0, 1, 57, 58, 116, 117, 260])
def test_unwrap_lengths(ln):
    body = bytes((i * 7) & 0xff for i in range(ln))
    framed = wrap_command_apdu(HID_CHANNEL, body)

    assert unwrap_response_apdu(HID_CHANNEL, framed) == body

    if len(framed) > HID_PACKET_SIZE:
        # not all reports arrived yet
        assert unwrap_response_apdu(HID_CHANNEL, framed[0:HID_PACKET_SIZE]) is None

def test_unwrap_partial():
    assert unwrap_response_apdu(HID_CHANNEL, b'') is None
    assert unwrap_response_apdu(HID_CHANNEL, b'\x01\x01\x05') is None

def test_unwrap_bad():
    framed = bytearray(wrap_command_apdu(HID_CHANNEL, bytes(100)))

    with pytest.raises(TransportFailure) as err:
        unwrap_response_apdu(0x0202, bytes(framed))
    assert 'channel' in str(err.value)

    bad = bytearray(framed)
    bad[2] = 0x06
    with pytest.raises(TransportFailure) as err:
        unwrap_response_apdu(HID_CHANNEL, bytes(bad))
    assert 'tag' in str(err.value)

    bad = bytearray(framed)
    bad[64+4] = 5
    with pytest.raises(TransportFailure) as err:
        unwrap_response_apdu(HID_CHANNEL, bytes(bad))
    assert 'sequence' in str(err.value)

def test_send(scripted):
    tr = scripted(b'\x01\x02\x90\x00', b'\x90', b'\x6e\x00', b'\x6a\x80', b'xy\x69\x84')

    assert tr.send(0x22, 0, 1, 2, b'abc') == b'\x01\x02\x90\x00'
    assert tr.sent[0] == bytes([0x22, 0, 1, 2, 3]) + b'abc'

    with pytest.raises(MalformedResponse):
        tr.send(0x22, 0)

    with pytest.raises(DeviceStatusError) as err:
        tr.send(0x22, 0)
    assert err.value.code == 0x6e00

    assert tr.send(0x22, 0, acceptable={0x9000, 0x6a80}) == b'\x6a\x80'
    assert tr.send(0x22, 0, acceptable=None) == b'xy\x69\x84'

    with pytest.raises(ValueError):
        tr.send(0x22, 0, data=bytes(256))

    # nothing sent for that
    assert len(tr.sent) == 5

def test_no_simulator(monkeypatch, tmp_path):
    monkeypatch.setenv('IOVLEDGER_EMULATOR', str(tmp_path / 'nothing-here'))
    assert LedgerUnixTransport.find_simulator() is None

@pytest.fixture
def emu_socket(monkeypatch):
    # real emulator, on a unix socket, in a background thread
    import ledger_emu
    from iovledger.dialects import SECP256K1_BECH32

    ledger_emu.DEBUG = False
    pipe = f'/tmp/iovledger-test-{os.getpid()}'
    dev = ledger_emu.LedgerState(SECP256K1_BECH32)

    threading.Thread(target=dev.emulate, args=(pipe,), daemon=True).start()

    for retry in range(50):
        if os.path.exists(pipe):
            try:
                LedgerUnixTransport(pipe).close()
                break
            except TransportFailure:
                pass
        time.sleep(0.1)
    else:
        raise pytest.fail("emulator did not start")

    monkeypatch.setenv('IOVLEDGER_EMULATOR', pipe)
    return pipe

def test_emulator_socket(emu_socket):
    from iovledger.proto import LedgerApp
    from iovledger.dialects import SECP256K1_BECH32

    tr = next(find_devices())
    assert isinstance(tr, LedgerUnixTransport)
    assert tr.is_emulator
    assert tr.name == emu_socket

    app = LedgerApp(tr, dialect=SECP256K1_BECH32)
    assert app.get_version().ok
    assert app.get_address(0).address.startswith('star1')

    r = app.sign(0, dict(chain_id='iov-mainnet-2', memo='x' * 600))
    assert r.ok
    assert len(r.signature) == 64

    app.close()

# EOF
