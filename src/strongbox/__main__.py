# Strongbox - Command Line
#
# Password tools that need no vault:
#   strongbox generate [--length N] [--no-symbols] ...
#   strongbox strength PASSWORD
#   strongbox hash            (reads the master secret with getpass)
#   strongbox verify HASH     (reads the master secret with getpass)

import argparse
import getpass
import sys

from .core.config import get_settings
from .vault.master_secret import MasterSecretVerifier, verify_master_secret
from .vault.password_tools import (
    calculate_strength,
    generate_secure_password,
    strength_description,
)


def _cmd_generate(args) -> int:
    try:
        password = generate_secure_password(
            length=args.length,
            include_uppercase=not args.no_uppercase,
            include_lowercase=not args.no_lowercase,
            include_numbers=not args.no_numbers,
            include_symbols=not args.no_symbols,
            exclude_similar=not args.allow_similar,
        )
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    print(password)
    return 0


def _cmd_strength(args) -> int:
    score = calculate_strength(args.password)
    print(f"{score}/100 ({strength_description(score)})")
    return 0


def _cmd_hash(args) -> int:
    secret = getpass.getpass("Master password: ")
    settings = get_settings()
    verifier = MasterSecretVerifier(
        iterations=settings.pbkdf2_iterations,
        salt_length=settings.master_hash_salt_length,
    )
    print(verifier.hash(secret))
    return 0


def _cmd_verify(args) -> int:
    secret = getpass.getpass("Master password: ")
    if verify_master_secret(secret, args.hash):
        print("OK")
        return 0
    print("Mismatch", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strongbox",
        description="Strongbox - password generation, strength scoring and master password hashing",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    gen = commands.add_parser("generate", help="Generate a secure random password")
    gen.add_argument("--length", type=int, default=16, help="Password length (default: 16)")
    gen.add_argument("--no-uppercase", action="store_true", help="Leave out A-Z")
    gen.add_argument("--no-lowercase", action="store_true", help="Leave out a-z")
    gen.add_argument("--no-numbers", action="store_true", help="Leave out 0-9")
    gen.add_argument("--no-symbols", action="store_true", help="Leave out symbols")
    gen.add_argument(
        "--allow-similar",
        action="store_true",
        help="Allow look-alike characters (i, l, 1, L, o, 0, O)",
    )
    gen.set_defaults(func=_cmd_generate)

    strength = commands.add_parser("strength", help="Score a password from 0 to 100")
    strength.add_argument("password")
    strength.set_defaults(func=_cmd_strength)

    hash_cmd = commands.add_parser("hash", help="Hash a master password for local verification")
    hash_cmd.set_defaults(func=_cmd_hash)

    verify = commands.add_parser("verify", help="Check a master password against a stored hash")
    verify.add_argument("hash", help="Stored pbkdf2_sha256$... hash")
    verify.set_defaults(func=_cmd_verify)

    return parser


def main(argv=None) -> int:
    """Entry point for the ``strongbox`` console script."""
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
