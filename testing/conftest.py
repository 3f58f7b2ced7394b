#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import pytest

from iovledger.dialects import DIALECTS, get_dialect
from iovledger.transport import LedgerTransportABC

def pytest_addoption(parser):
    parser.addoption("--dialect", action="store", type=str,
                     default='ed25519-simple', choices=list(DIALECTS),
                     help="Dialect of app on device under test")
    parser.addoption("--seeded", action="store_true", default=False,
                     help="Device has the test mnemonic loaded")
    parser.addoption("--interactive", action="store_true", default=False,
                     help="Someone is there to approve on device")

@pytest.fixture(scope='session')
def dialect(request):
    return get_dialect(request.config.getoption("--dialect"))

@pytest.fixture(scope='session')
def dev(dialect):
    # a connected Ledger (or the emulator on its socket), app open
    from iovledger.proto import LedgerApp
    from iovledger.transport import find_devices

    for tr in find_devices():
        assert isinstance(tr, LedgerTransportABC)
        return LedgerApp(tr, dialect=dialect)
    else:
        raise pytest.fail('no device / emulator found')

@pytest.fixture
def make_emu():
    # in-process emulated device for a dialect, and an app talking to it
    import ledger_emu
    from iovledger.proto import LedgerApp

    ledger_emu.DEBUG = False

    def doit(dialect, prefix=None, **kws):
        state = ledger_emu.LedgerState(dialect, **kws)
        tr = ledger_emu.EmulatorTransport(state)
        return LedgerApp(tr, dialect=dialect, prefix=prefix), state, tr

    return doit

class ScriptedTransport(LedgerTransportABC):
    #
    # Replies with canned responses, in order. Keeps a log of APDUs sent.
    #
    name = 'scripted'
    is_emulator = True

    def __init__(self, *responses):
        super().__init__()
        self.responses = list(responses)
        self.sent = []

    def _exchange(self, apdu):
        self.sent.append(apdu)
        return self.responses.pop(0)

@pytest.fixture
def scripted():
    return ScriptedTransport

# EOF
