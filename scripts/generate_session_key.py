#!/usr/bin/env python3
"""
Session Signing Key Setup Script

Creates key material for signing session tokens and prints the settings to
put in .env.

Usage:
    python3 scripts/generate_session_key.py                      # HS256 secret
    python3 scripts/generate_session_key.py --eddsa --out keys/  # Ed25519 keypair
"""
import sys
import os
import argparse
import secrets
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def main():
    parser = argparse.ArgumentParser(
        description="Generate a session signing key",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Shared secret (HS256)
    python3 scripts/generate_session_key.py

    # Ed25519 keypair (EdDSA), rotating out the key 'primary'
    python3 scripts/generate_session_key.py --eddsa --out /etc/wotid --kid 2025-06 --previous primary

When rotating, keep the old key in SESSION_PREVIOUS_KEYS until every token
it signed has expired (SESSION_TTL_SECONDS).
        """
    )
    parser.add_argument(
        "--eddsa",
        action="store_true",
        help="Generate an Ed25519 keypair instead of an HS256 secret"
    )
    parser.add_argument(
        "--out",
        default="keys",
        help="Directory for the keypair files (EdDSA only, default: keys)"
    )
    parser.add_argument(
        "--kid",
        default=date.today().strftime("%Y-%m"),
        help="Key identifier written to token headers (default: current month)"
    )
    parser.add_argument(
        "--previous",
        help="Key identifier of the key being replaced (EdDSA only), for SESSION_PREVIOUS_KEYS"
    )

    args = parser.parse_args()

    print("=" * 60)
    print("Session Signing Key")
    print("=" * 60)

    if not args.eddsa:
        secret = secrets.token_urlsafe(48)
        print("\nAdd to .env:\n")
        print("SESSION_SIGNING_ALGORITHM=HS256")
        print(f"SESSION_SIGNING_KEY_ID={args.kid}")
        print(f"SESSION_SIGNING_KEY={secret}")
        print("\n⚠️  Keep this secret out of version control.")
        return 0

    from backend.core.identity.keys import generate_keypair, save_keypair

    out_dir = Path(args.out).expanduser()
    private_key, public_key = generate_keypair()
    private_path, public_path = save_keypair(private_key, public_key, out_dir, name=args.kid)

    print(f"\n✅ Private key: {private_path} (mode 0600)")
    print(f"✅ Public key:  {public_path}")
    print("\nAdd to .env:\n")
    print("SESSION_SIGNING_ALGORITHM=EdDSA")
    print(f"SESSION_SIGNING_KEY_ID={args.kid}")
    print(f"SESSION_SIGNING_KEY_PATH={private_path.resolve()}")
    if args.previous:
        previous_pub = out_dir / f"{args.previous}.pub"
        print(f"SESSION_PREVIOUS_KEYS={args.previous}:{previous_pub.resolve()}")
        if not previous_pub.exists():
            print(f"\n⚠️  {previous_pub} does not exist yet; copy the old public key there.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
