#!/usr/bin/env python
#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# To use this, install with:
#
#   pip install --editable '.[cli]'
#
# That will create the command "iovledger" in your path.
#
#
import click, sys, time, json
from functools import wraps

from iovledger.utils import B2A, render_pubkey, verify_signature, message_to_bytes
from iovledger.dialects import DIALECTS, get_dialect
from iovledger.exceptions import LedgerRuntimeError
from iovledger.proto import LedgerApp
from iovledger.status import ErrorState
from iovledger.transport import find_devices
from iovledger import __version__

# dict of options that apply to all commands
global global_opts
global_opts = dict()

# Cleanup display (supress traceback) for user-feedback exceptions
_sys_excepthook = sys.excepthook
def my_hook(ty, val, tb):
    if issubclass(ty, (LedgerRuntimeError, RuntimeError)):
        print("FATAL: %s" % val, file=sys.stderr)
    else:
        return _sys_excepthook(ty, val, tb)
sys.excepthook=my_hook

def fail(msg):
    # show message and stop
    click.echo(f"FAILURE: {msg}", err=True)
    sys.exit(1)

def expect_ok(result):
    # device said no: show why and stop
    if isinstance(result, ErrorState):
        fail(f"{result.error_message} (0x{result.return_code:04x})")
    return result

def get_app():
    # Pick a device to work with, and wrap the app protocol around it
    global global_opts
    wait_for_it = global_opts.get('wait', False)
    dialect = get_dialect(global_opts.get('dialect') or 'ed25519-simple')
    prefix = global_opts.get('prefix')

    if global_opts.get('verbose', False):
        import iovledger.transport as tt
        tt.VERBOSE = True

    first = True
    while 1:
        for tr in find_devices():
            try:
                return LedgerApp(tr, dialect=dialect, prefix=prefix)
            except ValueError as exc:
                tr.close()
                fail(str(exc))

        if not wait_for_it:
            fail("No Ledger found. Is it plugged in and unlocked?")

        if first:
            click.echo("Waiting for device...")
            first = False

        time.sleep(1)

def dump_dict(d):
    for k,v in d.items():
        if isinstance(v, (bytes, bytearray)):
            v = B2A(v)

        click.echo('%s: %s' % (k, v))

def display_errors(f):
    # clean-up display of errors from device
    @wraps(f)
    def wrapper(*args, **kws):
        try:
            return f(*args, **kws)
        except (LedgerRuntimeError, ValueError) as exc:
            fail(str(exc))
    return wrapper

# Accept any prefix of a command name.
#
# from <https://click.palletsprojects.com/en/8.0.x/advanced/?#command-aliases>
class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        matches = [x for x in self.list_commands(ctx)
                   if x.startswith(cmd_name)]
        if not matches:
            return None
        elif len(matches) == 1:
            return click.Group.get_command(self, ctx, matches[0])
        ctx.fail(f"Abiguous command. Pick one of: {' | '.join(sorted(matches))}")

    def resolve_command(self, ctx, args):
        # always return the full command name
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name, cmd, args


#
# Options we want for all commands
#
@click.group(cls=AliasedGroup)
@click.option('--dialect', '-d', default='ed25519-simple', type=click.Choice(list(DIALECTS)),
                    help="Which app/protocol dialect the device speaks")
@click.option('--prefix', '-p', default=None, metavar="HRP",
                    help="Address prefix, for apps which take one (ie. star, iov, tiov)")
@click.option('--wait', '-w', is_flag=True,
                    help="Waits until a device is connected.")
@click.option('--verbose', '-v', is_flag=True,
                    help="Show traffic with device.")
@click.option('--pdb', is_flag=True,
                    help="Prepare patient for surgery to remove bugs.")
@click.version_option(version=__version__)
def main(**kws):
    '''
    Get addresses and signatures from IOV / Starname apps on a Ledger device.

    You can use "addr", or "a" for "address": any distinct prefix for all commands.
    '''
    # implement PDB option here
    if kws.pop('pdb', False):
        import pdb
        def doit(ex_cls, ex, tb):
            pdb.pm()
        sys.excepthook = doit

    # global options, mostly not considered here
    global global_opts
    global_opts.update(kws)


@main.command('debug')
def interactive_debug():
    "Start interactive (local) debug session."
    import code

    A = get_app()
    S = A.send

    cli = code.InteractiveConsole(locals=dict(globals(), **locals()))
    cli.interact(banner="""\
Go for it: 'A' is the app on the connected device, S=A.send ... S(0x00)""", exitmsg='')

@main.command('list')
def list_devices():
    "List all Ledger devices (and emulators) detected."

    count = 0
    for tr in find_devices():
        click.echo(repr(tr))
        tr.close()
        count += 1

    if not count:
        click.echo("(none found)")

@main.command('version')
@display_errors
def get_version():
    "Get the version of the app running on the device, and its mode"

    app = get_app()
    ver = expect_ok(app.get_version())

    click.echo(ver.version)
    click.echo('Test mode: %s' % ('yes' if ver.test_mode else 'no'))
    click.echo('Locked: %s' % ('yes' if ver.device_locked else 'no'))
    if ver.target_id:
        click.echo('Target ID: 0x' + ver.target_id)

@main.command('info')
@display_errors
def get_app_info():
    "Show which app is open, and the device flags"

    app = get_app()
    info = expect_ok(app.get_app_info())

    dump_dict(dict(app_name=info.app_name, app_version=info.app_version,
                    recovery=info.flag_recovery, signed_mcu_code=info.flag_signed_mcu_code,
                    onboarded=info.flag_onboarded, pin_validated=info.flag_pin_validated))

@main.command('address')
@click.argument('index', type=click.IntRange(min=0, max=0x7fff_ffff), default=0, required=False)
@click.option('--confirm', '-c', is_flag=True, help="Show on device screen, wait for approval")
@click.option('--pubkey', '-k', is_flag=True, help="Also show public key")
@display_errors
def get_address(index, confirm, pubkey):
    "Show address for account number INDEX (default: 0)"

    app = get_app()
    resp = expect_ok(app.get_address(index, require_confirmation=confirm))

    click.echo(resp.address)

    if pubkey:
        click.echo(B2A(resp.pubkey))
        hrp = resp.address[0:resp.address.rfind('1')] + 'pub'
        click.echo(render_pubkey(resp.pubkey, hrp))

@main.command('qr')
@click.argument('index', type=click.IntRange(min=0, max=0x7fff_ffff), default=0, required=False)
@click.option('--outfile', '-o', metavar="filename.png",
                        help="Save an SVG or PNG (depends on extension)", default=None,
                        type=click.File('wb'))
@click.option('--error-mode', '-e', default='L', metavar="L|M|H",
            help="Forward error correction level (L = low, H=High=bigger)")
@display_errors
def get_address_qr(index, outfile, error_mode):
    "Show address for account number INDEX as a QR"
    import pyqrcode

    app = get_app()
    addr = expect_ok(app.get_address(index)).address

    # bech32 is case-insensitive, and upper case makes a smaller QR
    q = pyqrcode.create(addr.upper(), error=error_mode, mode='alphanumeric')

    if not outfile:
        print(q.terminal(quiet_zone=2))
        print((' '*12) + addr)
        print()
    else:
        if outfile.name.lower().endswith('.svg'):
            q.svg(outfile, scale=1)
        else:
            q.png(outfile)

        click.echo(f"Wrote {outfile.tell():,} bytes to: {outfile.name}", err=1)

@main.command('sign')
@click.argument('message', type=str)
@click.argument('index', type=click.IntRange(min=0, max=0x7fff_ffff), default=0, required=False)
@click.option('--hex', '-x', 'is_hex', is_flag=True, help="Message is hex (raw transaction bytes)")
@click.option('--json', '-j', 'is_json', is_flag=True, help="Message is JSON, will be sent sorted")
@click.option('--file', '-f', 'is_file', is_flag=True, help="Message argument is a filename")
@click.option('--verify', '-V', is_flag=True, help="Fetch pubkey and check the signature")
@display_errors
def sign_message(message, index, is_hex, is_json, is_file, verify):
    """Sign MESSAGE with key for account number INDEX (default: 0).

    User must approve on the device. Signature is shown in hex.
    """
    if is_file:
        with open(message, 'rb') as fd:
            body = fd.read()
        if not is_hex:
            message = body
        else:
            message = body.decode('ascii')

    if is_hex:
        message = bytes.fromhex(message.strip())
    elif is_json:
        try:
            message = json.loads(message)
        except ValueError as exc:
            fail(f"Bad JSON: {exc}")

    app = get_app()

    if verify:
        pubkey = expect_ok(app.get_address(index)).pubkey

    click.echo("Approve on device...", err=True)
    sig = expect_ok(app.sign(index, message)).signature

    click.echo(B2A(sig))

    if verify:
        ok = verify_signature(app.dialect.curve, pubkey, message_to_bytes(message), sig)
        if not ok:
            fail("Signature does not verify!")
        click.echo("Signature verified.", err=True)

# EOF
