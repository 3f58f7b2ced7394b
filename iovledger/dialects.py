#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# dialects.py
#
# The device apps grew several incompatible wire layouts over time. Each one
# is described here, and the single protocol engine (proto.py) reads these
# values rather than having a class per app.
#
from dataclasses import dataclass
from typing import Optional, FrozenSet
from iovledger.constants import *

@dataclass(frozen=True)
class Dialect:
    name: str
    cla: int
    curve: str                          # 'ed25519' or 'secp256k1'
    path_words: int                     # 3 => 12 bytes, 5 => 20 bytes
    ins_get_version: int
    ins_get_address: int
    ins_sign: int
    pubkey_len: int
    default_prefix: Optional[str]       # None: app does not take a prefix
    prefix_in_sign: bool                # prefix goes in front of path in 1st sign chunk
    tagged_chunks: bool                 # P1 = INIT/ADD/LAST, else P1/P2 = index/count
    has_target_id: bool
    soft_sign_codes: FrozenSet[int]     # accepted during sign, payload is a diagnostic
    der_signatures: bool                # device returns DER, we give compact

    @property
    def uses_prefix(self):
        return self.default_prefix is not None

    @property
    def sign_status_codes(self):
        return frozenset({SW_OKAY}) | self.soft_sign_codes


# Original IOV app: ed25519, bech32 HRP picked on device from its test mode.
ED25519_SIMPLE = Dialect(
    name='ed25519-simple',
    cla=CLA_IOV,
    curve='ed25519',
    path_words=3,
    ins_get_version=INS_GET_VERSION,
    ins_get_address=INS_GET_ADDR_ED25519,
    ins_sign=INS_SIGN_ED25519,
    pubkey_len=32,
    default_prefix=None,
    prefix_in_sign=False,
    tagged_chunks=False,
    has_target_id=False,
    soft_sign_codes=frozenset({SW_BAD_KEY_HANDLE}),
    der_signatures=False,
)

# Later IOV app builds: caller provides the HRP, chunks are tagged.
ED25519_CHAIN_AWARE = Dialect(
    name='ed25519-chain',
    cla=CLA_IOV,
    curve='ed25519',
    path_words=3,
    ins_get_version=INS_GET_VERSION,
    ins_get_address=INS_GET_ADDR_ED25519,
    ins_sign=INS_SIGN_ED25519,
    pubkey_len=32,
    default_prefix='iov',
    prefix_in_sign=True,
    tagged_chunks=True,
    has_target_id=True,
    soft_sign_codes=frozenset({SW_BAD_KEY_HANDLE}),
    der_signatures=False,
)

# Starname app, built on the Cosmos app: secp256k1, 5-word path
SECP256K1_BECH32 = Dialect(
    name='secp256k1',
    cla=CLA_COSMOS,
    curve='secp256k1',
    path_words=5,
    ins_get_version=INS_GET_VERSION,
    ins_get_address=INS_GET_ADDR_SECP256K1,
    ins_sign=INS_SIGN_SECP256K1,
    pubkey_len=33,
    default_prefix='star',
    prefix_in_sign=False,
    tagged_chunks=True,
    has_target_id=True,
    soft_sign_codes=frozenset({SW_DATA_INVALID, SW_BAD_KEY_HANDLE}),
    der_signatures=True,
)

DIALECTS = {d.name: d for d in (ED25519_SIMPLE, ED25519_CHAIN_AWARE, SECP256K1_BECH32)}

def get_dialect(name):
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValueError(f"Unknown dialect: {name} (pick from: {', '.join(DIALECTS)})")

# EOF
