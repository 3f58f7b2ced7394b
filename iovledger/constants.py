#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# System constants.
#

# BIP-44 purpose and the registered coin type for IOV (SLIP-44)
BIP44_PURPOSE = 44
IOV_COIN_TYPE = 234

# high bit set in LE32 indicating hardened BIP-32 path component
HARDENED = 0x8000_0000

# Largest message slice the device apps accept in one APDU
CHUNK_SIZE = 250

# human readable prefix limits (bech32 HRP is 1..83, apps want at least 3)
PREFIX_MIN_LENGTH = 3
PREFIX_MAX_LENGTH = 83

# APDU CLA bytes
CLA_IOV = 0x22              # IOV ed25519 app
CLA_COSMOS = 0x55           # Cosmos-style secp256k1 app (Starname)
CLA_APP_INFO = 0xb0         # generic instruction, any Ledger app

# APDU INS bytes
INS_GET_VERSION = 0x00
INS_GET_ADDR_ED25519 = 0x01
INS_SIGN_ED25519 = 0x02
INS_GET_ADDR_SECP256K1 = 0x04
INS_SIGN_SECP256K1 = 0x02
INS_GET_APP_INFO = 0x01

# Correct ADPU response from all commands: 90 00
SW_OKAY = 0x9000
SW_BUSY = 0x9001
SW_DATA_INVALID = 0x6984
SW_BAD_KEY_HANDLE = 0x6a80

# only response format defined for the app-info instruction
APP_INFO_FORMAT_ID = 1

# flag bits in app-info response
APP_FLAG_RECOVERY = 0x01
APP_FLAG_SIGNED_MCU_CODE = 0x02
APP_FLAG_ONBOARDED = 0x04
APP_FLAG_PIN_VALIDATED = 0x80

# Ledger USB details
LEDGER_VENDOR_ID = 0x2c97
LEDGER_USAGE_PAGE = 0xffa0
HID_CHANNEL = 0x0101
HID_TAG_APDU = 0x05
HID_PACKET_SIZE = 64

# how long to wait on HID reads (ms); user may need to confirm on device
HID_TIMEOUT_MS = 120_000

# emulator running on a Unix socket
EMULATOR_PIPE = '/tmp/ledger-pipe'

# EOF
