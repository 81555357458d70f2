import asyncio
import base64
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import VersionedTransaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import close_account
from spl.token.models import CloseAccountParams

from vacuum.core.config import Settings
from vacuum.core.errors import ConfigurationError, LedgerError
from vacuum.core.helpers import shorten_address
from vacuum.schemas.ledger import AccountInfo, OwnedTokenAccount, TokenAccountInfo

logger = logging.getLogger(__name__)

TOKEN_PROGRAMS = {str(TOKEN_PROGRAM_ID), str(TOKEN_2022_PROGRAM_ID)}

# node-side JSON-RPC errors worth retrying (block/slot not yet available, node unhealthy)
TRANSIENT_RPC_CODES = {-32004, -32005, -32007, -32014}

COMMITMENT = "confirmed"


def load_keypair(path: Union[Path, str]) -> Keypair:
    """Load a solana-keygen JSON keypair file."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise ConfigurationError(
            f"Operator keypair not found at: {resolved}. "
            "Generate one with: solana-keygen new -o operator-keypair.json"
        )
    try:
        data = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Operator keypair at {resolved} is not valid JSON") from exc
    if not isinstance(data, list):
        raise ConfigurationError("Unsupported keypair file format. Expected JSON array of ints.")
    raw = bytes(data)
    if len(raw) == 64:
        return Keypair.from_bytes(raw)
    if len(raw) == 32:
        return Keypair.from_seed(raw)
    raise ConfigurationError(f"Unexpected key file length: {len(raw)} (expected 32 or 64 ints)")


def detect_account_type(info: AccountInfo) -> str:
    """Classify an account by its owning program."""
    if info.owner in TOKEN_PROGRAMS:
        return "token_account"
    if info.owner == str(ASSOCIATED_TOKEN_PROGRAM_ID):
        return "ata"
    if info.owner != str(SYSTEM_PROGRAM_ID):
        return "pda"
    return "unknown"


def _parse_token_info(value: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = value.get("data")
    if not isinstance(data, dict):
        return None
    parsed = data.get("parsed")
    if not isinstance(parsed, dict) or parsed.get("type") != "account":
        return None
    return parsed.get("info")


class SolanaLedger:
    """Async JSON-RPC access to the Solana ledger.

    Reads retry transient failures with exponential backoff; transaction
    submission is never retried.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        confirm_timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self.confirm_timeout = confirm_timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SolanaLedger":
        return cls(
            settings.solana_rpc_url,
            timeout=settings.rpc_timeout_sec,
            max_retries=settings.rpc_max_retries,
            retry_base_delay=settings.rpc_retry_base_delay,
            confirm_timeout=settings.confirm_timeout_sec,
        )

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        body = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        try:
            resp = await self._client.post(self.rpc_url, json=body, headers={"Content-Type": "application/json"})
        except httpx.TransportError as exc:
            raise LedgerError(f"{method} transport error: {exc}", transient=True) from exc
        if resp.status_code == 429 or resp.status_code >= 500:
            raise LedgerError(f"{method} HTTP {resp.status_code}", transient=True)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LedgerError(f"{method} HTTP {resp.status_code}: {resp.text[:200]}") from exc
        payload = resp.json()
        error = payload.get("error")
        if error:
            code = error.get("code")
            raise LedgerError(
                f"{method} failed: {error.get('message', error)}",
                transient=code in TRANSIENT_RPC_CODES,
                code=code,
            )
        return payload.get("result")

    async def _read(self, method: str, params: List[Any]) -> Any:
        for attempt in range(self.max_retries):
            try:
                return await self._rpc(method, params)
            except LedgerError as exc:
                if not exc.transient or attempt + 1 == self.max_retries:
                    raise
                delay = self.retry_base_delay * (2**attempt)
                logger.debug("%s failed (%s); retrying in %.2fs", method, exc, delay)
                await asyncio.sleep(delay)

    # ------------------------------------------------------------------ reads

    async def fetch_account_info(self, address: str) -> Optional[AccountInfo]:
        result = await self._read("getAccountInfo", [str(address), {"encoding": "base64", "commitment": COMMITMENT}])
        value = (result or {}).get("value")
        if value is None:
            return None
        data = value.get("data") or ["", "base64"]
        raw = data[0] if isinstance(data, list) else ""
        return AccountInfo(
            lamports=value["lamports"],
            owner=value["owner"],
            data_len=len(base64.b64decode(raw)) if raw else 0,
            executable=bool(value.get("executable")),
        )

    async def fetch_token_account(self, address: str) -> Optional[TokenAccountInfo]:
        """Live SPL token account state; ``None`` only when the account does not exist.

        An existing account that is not a parsed token account raises
        ``LedgerError`` so callers never mistake it for a closed one.
        """
        result = await self._read(
            "getAccountInfo", [str(address), {"encoding": "jsonParsed", "commitment": COMMITMENT}]
        )
        value = (result or {}).get("value")
        if value is None:
            return None
        if value.get("owner") not in TOKEN_PROGRAMS:
            raise LedgerError(f"{address} is not owned by a token program (owner: {value.get('owner')})")
        info = _parse_token_info(value)
        if not info:
            raise LedgerError(f"{address} token data could not be parsed")
        return TokenAccountInfo(
            mint=info["mint"],
            owner=info["owner"],
            amount=int(info["tokenAmount"]["amount"]),
            lamports=value["lamports"],
            program_id=value["owner"],
        )

    async def fetch_owned_token_accounts(
        self, owner: str, program_id: str = str(TOKEN_PROGRAM_ID)
    ) -> List[OwnedTokenAccount]:
        result = await self._read(
            "getTokenAccountsByOwner",
            [str(owner), {"programId": program_id}, {"encoding": "jsonParsed", "commitment": COMMITMENT}],
        )
        accounts: List[OwnedTokenAccount] = []
        for item in (result or {}).get("value", []):
            account = item.get("account") or {}
            info = _parse_token_info(account)
            if not info:
                continue
            token_amount = info.get("tokenAmount", {})
            accounts.append(
                OwnedTokenAccount(
                    address=item["pubkey"],
                    mint=info["mint"],
                    owner=info["owner"],
                    amount=int(token_amount.get("amount", "0")),
                    ui_amount=token_amount.get("uiAmount"),
                    lamports=account.get("lamports"),
                )
            )
        return accounts

    async def fetch_parsed_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": COMMITMENT}],
        )

    async def fetch_recent_signatures(self, address: str, limit: int = 10) -> List[str]:
        result = await self._read("getSignaturesForAddress", [str(address), {"limit": limit}])
        return [item["signature"] for item in result or []]

    async def fetch_last_activity(self, address: str) -> Optional[datetime]:
        """Block time of the most recent transaction touching ``address``."""
        result = await self._read("getSignaturesForAddress", [str(address), {"limit": 1}])
        if not result:
            return None
        block_time = result[0].get("blockTime")
        if not block_time:
            return None
        return datetime.fromtimestamp(block_time, tz=timezone.utc).replace(tzinfo=None)

    async def get_rent_exempt_minimum(self, data_size: int) -> int:
        return int(await self._read("getMinimumBalanceForRentExemption", [data_size]))

    async def get_latest_blockhash(self) -> Hash:
        result = await self._read("getLatestBlockhash", [{"commitment": COMMITMENT}])
        return Hash.from_string(result["value"]["blockhash"])

    # ----------------------------------------------------------------- writes

    async def close_token_account(
        self,
        account: str,
        destination: str,
        authority: Keypair,
        program_id: str = str(TOKEN_PROGRAM_ID),
    ) -> str:
        """Submit a CloseAccount instruction and wait for confirmation."""
        instruction = close_account(
            CloseAccountParams(
                program_id=Pubkey.from_string(program_id),
                account=Pubkey.from_string(str(account)),
                dest=Pubkey.from_string(str(destination)),
                owner=authority.pubkey(),
            )
        )
        blockhash = await self.get_latest_blockhash()
        message = MessageV0.try_compile(
            payer=authority.pubkey(),
            instructions=[instruction],
            address_lookup_table_accounts=[],
            recent_blockhash=blockhash,
        )
        tx = VersionedTransaction(message, [authority])
        encoded = base64.b64encode(bytes(tx)).decode("ascii")
        signature = await self._rpc(
            "sendTransaction",
            [encoded, {"encoding": "base64", "skipPreflight": False, "preflightCommitment": COMMITMENT}],
        )
        logger.debug("Submitted close for %s: %s", shorten_address(account), signature)
        await self.confirm_transaction(signature)
        return signature

    async def confirm_transaction(self, signature: str, poll_interval: float = 0.5) -> None:
        deadline = time.monotonic() + self.confirm_timeout
        while True:
            result = await self._read("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
            statuses = (result or {}).get("value") or [None]
            status = statuses[0]
            if status:
                if status.get("err") is not None:
                    raise LedgerError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            if time.monotonic() >= deadline:
                raise LedgerError(f"Transaction {signature} not confirmed within {self.confirm_timeout:.0f}s")
            await asyncio.sleep(poll_interval)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SolanaLedger":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
