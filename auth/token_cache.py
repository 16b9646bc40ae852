"""Credential Store - MSAL token cache persisted as a JSON file.

The file holds msal's unified cache document (Account, AccessToken,
RefreshToken, IdToken, AppMetadata), so caches written by other MSAL-based
tools can be read here and vice versa. msal owns the records; this module
locates, validates and atomically persists the document.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

import msal

logger = logging.getLogger(__name__)

CredentialType = msal.TokenCache.CredentialType

REQUIRED_SECTIONS = (
    CredentialType.ACCOUNT,
    CredentialType.ACCESS_TOKEN,
    CredentialType.REFRESH_TOKEN,
    CredentialType.ID_TOKEN,
)

# Cached access tokens this close to expiry are not handed out.
# Same threshold msal uses in acquire_token_silent.
EXPIRY_MARGIN = 300

# Fields msal expects to be strings, and which it reads with int()
STRING_FIELDS = (
    "home_account_id",
    "environment",
    "realm",
    "client_id",
    "target",
    "secret",
    "credential_type",
    "authority_type",
    "username",
    "local_account_id",
    "family_id",
)
EPOCH_FIELDS = ("cached_at", "expires_on", "extended_expires_on", "refresh_on", "last_modification_time")

REQUIRED_FIELDS = {
    CredentialType.ACCOUNT: ("home_account_id", "environment"),
    CredentialType.ACCESS_TOKEN: ("home_account_id", "environment", "client_id", "secret", "expires_on"),
    CredentialType.REFRESH_TOKEN: ("home_account_id", "environment", "secret"),
    CredentialType.ID_TOKEN: ("home_account_id", "environment", "secret"),
    CredentialType.APP_METADATA: (),
}


# ---------------------------------------------------------------------------
# File IO
# ---------------------------------------------------------------------------


def resolve_cache_path(paths: list[str]) -> Path:
    """Return the first existing cache path, or the primary path if none exist.

    Args:
        paths: Candidate cache paths, highest priority first.

    Returns:
        The path to read from.
    """
    for p in paths:
        if Path(p).exists():
            return Path(p)
    return Path(paths[0])


def is_well_formed(document: Any) -> bool:
    """Check that the document has every required top-level map."""
    if not isinstance(document, dict):
        return False
    return all(isinstance(document.get(section), dict) for section in REQUIRED_SECTIONS)


def load_cache(paths: list[str]) -> msal.SerializableTokenCache | None:
    """Load the token cache from the highest-priority existing path.

    A missing or corrupt cache is a normal first-run condition, so every
    read or parse failure yields None instead of raising. Individual records
    msal could not handle are dropped with a warning.

    Args:
        paths: Candidate cache paths, highest priority first.

    Returns:
        The deserialized cache, or None if there's no usable cache.
    """
    cache_path = resolve_cache_path(paths)
    if not cache_path.exists():
        logger.info("No token cache at %s", cache_path)
        return None

    try:
        document = json.loads(cache_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning("Ignoring unreadable token cache %s: %s", cache_path, e)
        return None

    if not is_well_formed(document):
        logger.warning("Ignoring malformed token cache %s", cache_path)
        return None

    document.setdefault(CredentialType.APP_METADATA, {})
    dropped = _drop_invalid_records(document)
    if dropped:
        logger.warning("Ignoring %d malformed record(s) in token cache %s", dropped, cache_path)

    cache = msal.SerializableTokenCache()
    _rekey(document, cache.key_makers)
    cache.deserialize(json.dumps(document))
    logger.info("Loaded token cache from %s", cache_path)
    return cache


def save_cache(cache: msal.SerializableTokenCache, paths: list[str]) -> Path:
    """Write the whole cache document to the primary path.

    The document goes to a temp file in the same directory which then
    replaces the target, so readers never see a partial write. Concurrent
    writers are not coordinated; the last one wins.

    Args:
        cache: The token cache.
        paths: Candidate cache paths; only the first is written.

    Returns:
        The path written.
    """
    target = Path(paths[0])
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.{os.getpid()}.tmp")

    content = cache.serialize()
    try:
        fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise

    logger.info("Saved token cache to %s", target)
    return target


def _drop_invalid_records(document: dict[str, Any]) -> int:
    dropped = 0
    for section, required in REQUIRED_FIELDS.items():
        records = document.get(section)
        if not isinstance(records, dict):
            continue
        for key, record in list(records.items()):
            if not _is_valid_record(record, required):
                del records[key]
                dropped += 1
    return dropped


def _is_valid_record(record: Any, required: tuple[str, ...]) -> bool:
    if not isinstance(record, dict):
        return False
    if not all(record.get(name) for name in required):
        return False
    if any(name in record and not isinstance(record[name], str) for name in STRING_FIELDS):
        return False
    return all(name not in record or _is_epoch(record[name]) for name in EPOCH_FIELDS)


def _is_epoch(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        int(value)
    except (TypeError, ValueError):
        return False
    return True


def _rekey(document: dict[str, Any], key_makers: dict[str, Any]) -> None:
    """Store every record under msal's own key.

    Other tools key records differently; msal replaces a record only when the
    keys agree, so without this a rotated token would sit next to the old one.
    """
    for section, make_key in key_makers.items():
        records = document.get(section)
        if isinstance(records, dict):
            document[section] = {make_key(**record): record for record in records.values()}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def add_token_response(
    cache: msal.SerializableTokenCache,
    response: dict[str, Any],
    client_id: str,
    scopes: list[str],
    token_endpoint: str,
    grant_type: str,
    now: int | None = None,
) -> None:
    """Hand a successful token endpoint response to msal for caching.

    msal derives the account from client_info (or the id token) and writes
    the account, access, refresh and id token records.
    """
    cache.add(
        {
            "client_id": client_id,
            "scope": response["scope"].split() if response.get("scope") else scopes,
            "token_endpoint": token_endpoint,
            "grant_type": grant_type,
            "response": response,
        },
        now=now,
    )


def list_accounts(cache: msal.SerializableTokenCache) -> list[dict[str, Any]]:
    """Return account records in document order.

    Some tools store the display name as ``name``; it fills ``display_name``
    when that is empty.
    """
    accounts = []
    for record in cache.search(CredentialType.ACCOUNT):
        account = dict(record)
        account["display_name"] = record.get("display_name") or record.get("name") or ""
        accounts.append(account)
    return accounts


def update_account(
    cache: msal.SerializableTokenCache,
    account: dict[str, Any],
    **fields: str,
) -> None:
    cache.modify(CredentialType.ACCOUNT, account, fields)


def find_access_token(
    cache: msal.SerializableTokenCache,
    account: dict[str, Any],
    client_id: str,
    scopes: list[str],
    now: int,
    margin: int = EXPIRY_MARGIN,
) -> dict[str, Any] | None:
    """Find the usable access token that stays valid the longest.

    A token is usable when it belongs to the account and client, covers every
    requested scope, and ``now + margin < expires_on``.

    Args:
        cache: The token cache.
        account: Account record to match.
        client_id: Application (client) ID.
        scopes: Scopes the caller needs.
        now: Current epoch seconds.
        margin: Safety margin in seconds before expiry.

    Returns:
        The access token record, or None.
    """
    query = {
        "home_account_id": account["home_account_id"],
        "environment": account["environment"],
        "client_id": client_id,
    }
    best = None
    for record in cache.search(CredentialType.ACCESS_TOKEN, target=scopes, query=query, now=now):
        expires_on = int(record["expires_on"])
        if now + margin >= expires_on:
            continue
        if best is None or expires_on > int(best["expires_on"]):
            best = record
    return best


def has_refresh_token(cache: msal.SerializableTokenCache, account: dict[str, Any]) -> bool:
    query = {
        "home_account_id": account["home_account_id"],
        "environment": account["environment"],
    }
    return any(cache.search(CredentialType.REFRESH_TOKEN, query=query))
