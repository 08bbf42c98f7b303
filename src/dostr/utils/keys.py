"""Nostr key management utilities for dostr.

Every followed source gets its own freshly generated keypair; the bot itself
signs with the key given in the ``SECRET`` environment variable. Secrets are
accepted as 64-char hex or ``nsec1`` bech32 and always written back to the
registry as hex.

Warning:
    Private keys must **never** be logged. The bot secret is held in a
    ``pydantic.SecretStr`` until it is parsed here.

Examples:
    ```python
    keys = generate_keys()
    secret = secret_hex(keys)        # persisted in the registry
    parse_keys(secret).public_key() == keys.public_key()  # True
    ```
"""

from __future__ import annotations

from nostr_sdk import Keys, PublicKey


def parse_keys(secret: str) -> Keys:
    """Parse a hex or ``nsec1`` secret key into ``Keys``.

    Raises:
        ValueError: If *secret* is empty or not a valid secret key.
    """
    value = secret.strip()
    if not value:
        raise ValueError("secret key is empty")
    try:
        return Keys.parse(value)
    except Exception as e:  # nostr_sdk raises its own NostrError type
        raise ValueError(f"invalid secret key: {e}") from None


def parse_public_key(value: str) -> PublicKey:
    """Parse a hex or ``npub1`` public key.

    Raises:
        ValueError: If *value* is not a valid public key.
    """
    try:
        return PublicKey.parse(value.strip())
    except Exception as e:  # nostr_sdk raises its own NostrError type
        raise ValueError(f"invalid public key: {e}") from None


def generate_keys() -> Keys:
    """Generate a fresh random keypair for a newly followed source."""
    return Keys.generate()


def secret_hex(keys: Keys) -> str:
    """Hex encoding of the secret key, as stored in the registry file."""
    return keys.secret_key().to_hex()
