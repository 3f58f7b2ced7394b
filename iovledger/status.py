#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# status.py
#
# Status words (last two bytes of every response) and what they mean.
#
from dataclasses import dataclass
from iovledger.constants import SW_OKAY

STATUS_DESCRIPTIONS = {
    # transport level (U2F)
    1: "U2F: Unknown",
    2: "U2F: Bad request",
    3: "U2F: Configuration unsupported",
    4: "U2F: Device Ineligible",
    5: "U2F: Timeout",
    14: "Timeout",

    # device apps
    0x9000: "No errors",
    0x9001: "Device is busy",
    0x6802: "Error deriving keys",
    0x6400: "Execution Error",
    0x6700: "Wrong Length",
    0x6982: "Empty Buffer",
    0x6983: "Output buffer too small",
    0x6984: "Data is invalid",
    0x6985: "Conditions not satisfied",
    0x6986: "Transaction rejected",
    0x6a80: "Bad key handle",
    0x6b00: "Invalid P1/P2",
    0x6d00: "Instruction not supported",
    0x6e00: "Ledger app does not seem to be open",
    0x6f00: "Unknown error",
    0x6f01: "Sign/verify error",
}

def describe(code: int) -> str:
    # never fails: unknown codes get a generic text
    try:
        return STATUS_DESCRIPTIONS[code]
    except KeyError:
        return f"Unknown Status Code: {code}"

def is_success(code: int) -> bool:
    return code == SW_OKAY


@dataclass(frozen=True)
class ErrorState:
    '''
        What the device said instead of doing the work. Returned, not raised.
    '''
    return_code: int
    error_message: str

    @property
    def ok(self):
        return False

def error_state(code, message=None):
    return ErrorState(return_code=code, error_message=message or describe(code))

# EOF
