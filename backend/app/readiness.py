"""Readiness checks: config, packages, database, chain RPC, relay wallet.

Each check returns ``(passed, message)`` and never raises. The relay wallet is
reported but not required: reads, votes and settlement work without it, only
initialization does not.
"""
import asyncio
import importlib
import logging

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

logger = logging.getLogger(__name__)

CheckResult = tuple[bool, str]
ChecksDict = dict[str, CheckResult]

REQUIRED_CHECKS = frozenset({"config", "packages", "database", "chain"})

# (import name, distribution name)
CRITICAL_PACKAGES = (
    ("uvicorn", "uvicorn"),
    ("sqlalchemy", "sqlalchemy"),
    ("httpx", "httpx"),
    ("aptos_sdk", "aptos-sdk"),
    ("app.main", "app.main"),
)


def check_config() -> CheckResult:
    try:
        from app.settings import get_settings
        s = get_settings()
        if not s.database_url:
            return False, "database_url is empty"
        if not s.movement_rpc_url:
            return False, "movement_rpc_url is empty"
        if not s.movement_contract_address.startswith("0x"):
            return False, "movement_contract_address must start with 0x"
        return True, "ok"
    except Exception as e:
        return False, str(e)


def check_packages() -> CheckResult:
    missing = []
    for module, dist in CRITICAL_PACKAGES:
        try:
            importlib.import_module(module)
        except ImportError as e:
            missing.append(f"{dist} ({e})")
    if missing:
        return False, f"missing: {', '.join(missing)}"
    return True, "ok"


async def _check_database_async(database_url: str) -> CheckResult:
    from app.infra.db.base import database_engine_args

    url, connect_args = database_engine_args(database_url)
    engine = None
    try:
        engine = create_async_engine(url, connect_args=connect_args)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True, "ok"
    except Exception as e:
        return False, str(e)
    finally:
        if engine is not None:
            await engine.dispose()


async def _check_chain_async(rpc_url: str) -> CheckResult:
    """GET the fullnode's ledger info."""
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            r = await client.get(rpc_url.rstrip("/"))
        if r.status_code != 200:
            return False, f"status {r.status_code}"
        return True, f"ok (chain_id {r.json().get('chain_id', '?')}, height {r.json().get('block_height', '?')})"
    except Exception as e:
        return False, str(e)


def check_relay_wallet() -> CheckResult:
    try:
        from app.infra.chain.relay_signer import RelayWallet
        from app.settings import get_settings
        wallet = RelayWallet.from_private_key(get_settings().relay_wallet_private_key)
        if not wallet.is_configured:
            return False, "not configured"
        return True, f"ok ({wallet.address})"
    except Exception as e:
        return False, str(e)


async def run_all_checks_async() -> ChecksDict:
    """All checks from inside a running loop (GET /ready)."""
    from app.settings import get_settings
    s = get_settings()
    db_result, chain_result = await asyncio.gather(
        _check_database_async(s.database_url),
        _check_chain_async(s.movement_rpc_url),
    )
    return {
        "config": check_config(),
        "packages": check_packages(),
        "database": db_result,
        "chain": chain_result,
        "relay_wallet": check_relay_wallet(),
    }


def run_all_checks() -> ChecksDict:
    """All checks from synchronous code (scripts, tests)."""
    return asyncio.run(run_all_checks_async())


def is_ready(checks: ChecksDict | None = None) -> tuple[bool, dict[str, str]]:
    """(ready, name -> message). Ready means every required check that ran passed."""
    if checks is None:
        checks = run_all_checks()
    summary = {name: msg for name, (_, msg) in checks.items()}
    ready = all(passed for name, (passed, _) in checks.items() if name in REQUIRED_CHECKS)
    if not ready:
        failed = sorted(n for n, (passed, _) in checks.items() if n in REQUIRED_CHECKS and not passed)
        logger.warning("Not ready: %s", ", ".join(failed))
    return ready, summary
