#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#

__version__ = '0.3.0'

__all__ = [ 'proto', 'exceptions', 'transport', 'constants', 'utils',
            'status', 'decoders', 'dialects' ]

# find connected devices
from iovledger.transport import find_devices, find_first

# protocol engine, wants a transport and a dialect
from iovledger.proto import LedgerApp
from iovledger.dialects import ED25519_SIMPLE, ED25519_CHAIN_AWARE, SECP256K1_BECH32
