#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Exceptions
#

class LedgerRuntimeError(RuntimeError):
    def __init__(self, msg, code=None, raw_msg=None):
        self.code = code
        self.raw_msg = raw_msg if raw_msg is not None else msg
        super().__init__(msg)

class InvalidArgument(ValueError):
    # caller gave us something out of contract; nothing was sent to device
    pass

class MalformedResponse(LedgerRuntimeError):
    # device (or transport) gave us too few bytes to work with
    pass

class DeviceStatusError(LedgerRuntimeError):
    # transport got a status word that wasn't acceptable for the command
    def __init__(self, code, msg=None):
        from iovledger.status import describe
        super().__init__(msg or describe(code), code)

class TransportFailure(LedgerRuntimeError):
    # disconnected, timeout, framing problems: no status word to report
    pass

# EOF
