#!/usr/bin/env python3
"""
imactl - sign and validate IMA signatures

Commands:
    sign            Measure files and store a signature in their xattr
    verify          Verify the stored signature of files
    show            Print the signature header stored on files
    keyid           Print the IMA key id of every key in a PEM bundle

Usage:
    imactl sign /usr/bin/tool
    imactl --xattr user.ima sign --hash sha512 ./build/*
    imactl verify /usr/bin/tool
    imactl show --json /usr/bin/tool
    imactl keyid /etc/keys/pubkey_evm.pem

Environment:
    IMA_CONFIG          Path to configuration file
    IMA_PUBKEY          Public key bundle used by verify/keyid
    IMA_PRIVKEY         Private key used by sign
    IMA_XATTR           Attribute name (default security.ima)
    IMA_HASH            Default signing hash (default sha256)
    IMA_VERBOSE         Verbose logging (same as --verbose)
    IMA_TRACE           Trace every candidate key tried (same as --trace)
    IMA_LOG_FILE        Also write logs to this file
    IMA_LOG_JSON        Log in JSON format

Exit status:
    0 success, 1 verification failed, 2 invalid signature/input,
    3 I/O error, 4 configuration error
"""

import argparse
import json
import sys
from typing import Callable, List, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.exceptions import UnsupportedAlgorithm as BackendUnsupportedAlgorithm

from ..config import ImaConfig, load_config
from ..constants import ExitCode
from ..errors import ConfigError, ImaError, UnsupportedAlgorithm
from ..hashes import HashAlgorithm
from ..keys import format_key_id, load_key_pool, load_public_keys, load_signer, public_key_id
from ..logging_config import VERBOSE, get_logger, setup_logging
from ..utils.error_handling import handle_error, report_error
from ..xattr import XattrStore, sign_file, verify_file

logger = get_logger(__name__)

# Errors that are reported per file instead of aborting the run
EXPECTED_ERRORS = (ImaError, InvalidSignature, BackendUnsupportedAlgorithm, OSError)


def _fail(error: Exception, operation: str) -> ExitCode:
    context = handle_error(error, operation)
    report_error(context)
    return context.exit_code


def _for_each_file(paths: List[str], operation: str, action: Callable[[str], None]) -> int:
    """Run action on every path; the result is the worst exit code seen."""
    worst = ExitCode.SUCCESS
    for path in paths:
        try:
            action(path)
        except EXPECTED_ERRORS as e:
            worst = max(worst, _fail(e, f"{operation} {path}"))
    return int(worst)


def cmd_sign(args, config: ImaConfig) -> int:
    """Sign files."""
    try:
        algorithm = HashAlgorithm.from_name(args.hash) if args.hash else config.hash()
        signer = load_signer(config.privkey_path)
    except EXPECTED_ERRORS as e:
        return int(_fail(e, "load signing key"))

    store = XattrStore(config.attr_name)
    key_id = format_key_id(signer.public_key().key_id())

    def action(path: str) -> None:
        sign_file(path, signer, algorithm, store)
        print(f"{path}: signed ({algorithm.value}, key {key_id})")

    return _for_each_file(args.files, "sign", action)


def cmd_verify(args, config: ImaConfig) -> int:
    """Verify files."""
    try:
        pool = load_key_pool(config.pubkey_path)
    except EXPECTED_ERRORS as e:
        return int(_fail(e, "load public keys"))

    logger.log_with_data(VERBOSE, "Loaded public keys", {
        'count': len(pool),
        'path': config.pubkey_path,
    })
    store = XattrStore(config.attr_name)

    def action(path: str) -> None:
        key = verify_file(path, pool, store, strict_version=config.strict_version)
        print(f"{path}: OK (key {format_key_id(key.key_id())})")

    return _for_each_file(args.files, "verify", action)


def cmd_show(args, config: ImaConfig) -> int:
    """Print stored signature headers."""
    store = XattrStore(config.attr_name)

    def action(path: str) -> None:
        signature = store.load(path)
        fields = signature.header.to_dict()
        try:
            fields['hash_algorithm'] = signature.hash_algorithm().value
        except UnsupportedAlgorithm:
            fields['hash_algorithm'] = 'unknown'

        if args.json:
            print(json.dumps({'path': path, **fields}, sort_keys=True))
            return

        print(f"{path}:")
        print(f"  Magic:     0x{fields['magic']:02x}")
        print(f"  Version:   {fields['version']}")
        print(f"  Hash:      {fields['hash_algorithm']} (id {fields['hash_algorithm_id']})")
        print(f"  Key ID:    {fields['key_id']}")
        print(f"  Length:    {fields['signature_length']}")

    return _for_each_file(args.files, "show", action)


def cmd_keyid(args, config: ImaConfig) -> int:
    """Print key ids of a PEM bundle."""
    path = args.pem or config.pubkey_path
    try:
        keys = load_public_keys(path)
    except EXPECTED_ERRORS as e:
        return int(_fail(e, f"keyid {path}"))

    worst = ExitCode.SUCCESS
    for index, key in enumerate(keys):
        try:
            print(f"{format_key_id(public_key_id(key))}  RSA-{key.key_size}")
        except ImaError as e:
            worst = max(worst, _fail(e, f"keyid {path}[{index}]"))
    return int(worst)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='imactl',
        description='Sign and validate IMA signatures',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--pubkey', help='Public key PEM bundle')
    parser.add_argument('--privkey', help='Private key PEM file')
    parser.add_argument('--config', help='Configuration file (YAML or JSON)')
    parser.add_argument('--xattr', help='Extended attribute name (default security.ima)')
    parser.add_argument('--no-strict-version', action='store_true',
                        help='Accept signature versions other than 2')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose logging')
    parser.add_argument('--trace', action='store_true',
                        help='Log every candidate key tried (implies --verbose)')
    parser.add_argument('--json-logs', action='store_true', help='Log in JSON format')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # sign
    sign_parser = subparsers.add_parser('sign', help='Sign files')
    sign_parser.add_argument('--hash', choices=[a.value for a in HashAlgorithm],
                             help='Digest algorithm (default from config)')
    sign_parser.add_argument('files', nargs='+', help='Files to sign')
    sign_parser.set_defaults(func=cmd_sign)

    # verify
    verify_parser = subparsers.add_parser('verify', help='Verify files')
    verify_parser.add_argument('files', nargs='+', help='Files to verify')
    verify_parser.set_defaults(func=cmd_verify)

    # show
    show_parser = subparsers.add_parser('show', help='Show stored signature headers')
    show_parser.add_argument('--json', action='store_true', help='One JSON object per file')
    show_parser.add_argument('files', nargs='+', help='Files to inspect')
    show_parser.set_defaults(func=cmd_show)

    # keyid
    keyid_parser = subparsers.add_parser('keyid', help='Print key ids of a PEM bundle')
    keyid_parser.add_argument('pem', nargs='?', help='PEM bundle (default --pubkey)')
    keyid_parser.set_defaults(func=cmd_keyid)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return int(ExitCode.CONFIG_ERROR)

    try:
        config = load_config(args.config, overrides={
            'pubkey_path': args.pubkey,
            'privkey_path': args.privkey,
            'attr_name': args.xattr,
            'strict_version': False if args.no_strict_version else None,
            'verbose': True if args.verbose else None,
            'trace': True if args.trace else None,
            'json_logs': True if args.json_logs else None,
            'log_file': args.log_file,
        })
    except ConfigError as e:
        print(f"imactl: configuration error: {e}", file=sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        setup_logging(
            verbose=config.verbose,
            trace=config.trace,
            log_file=config.log_file,
            json_format=config.json_logs,
        )
    except OSError as e:
        print(f"imactl: cannot open log file: {e}", file=sys.stderr)
        return int(ExitCode.IO_ERROR)
    logger.verbose(f"Running {args.command} (attr={config.attr_name})")

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
