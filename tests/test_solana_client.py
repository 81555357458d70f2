import json
from datetime import datetime

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from vacuum.core.errors import ConfigurationError, LedgerError
from vacuum.schemas.ledger import AccountInfo
from vacuum.services.solana_client import SolanaLedger, detect_account_type, load_keypair

from tests.conftest import TOKEN_PROGRAM, new_address

ATA_PROGRAM = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM = "11111111111111111111111111111111"


def rpc_ledger(responder, **kwargs):
    """Ledger whose transport answers with ``responder(method, params)``."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        calls.append(body["method"])
        reply = responder(body["method"], body["params"])
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **reply})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return SolanaLedger("https://rpc.test", client=client, **kwargs), calls


def parsed_token_value(owner, amount="0", lamports=2_039_280, program=TOKEN_PROGRAM):
    return {
        "lamports": lamports,
        "owner": program,
        "executable": False,
        "data": {
            "program": "spl-token",
            "parsed": {
                "type": "account",
                "info": {"mint": "MintA", "owner": owner, "tokenAmount": {"amount": amount, "uiAmount": 0.0}},
            },
        },
    }


class TestLoadKeypair:
    """solana-keygen JSON files."""

    def test_full_keypair(self, tmp_path):
        kp = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(kp))))
        assert load_keypair(path).pubkey() == kp.pubkey()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_keypair(tmp_path / "missing.json")

    def test_not_json(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text("garbage")
        with pytest.raises(ConfigurationError):
            load_keypair(path)

    def test_wrong_length(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text(json.dumps([1, 2, 3]))
        with pytest.raises(ConfigurationError, match="Unexpected key file length"):
            load_keypair(path)


class TestDetectAccountType:
    @pytest.mark.parametrize(
        "owner, expected",
        [
            (TOKEN_PROGRAM, "token_account"),
            (ATA_PROGRAM, "ata"),
            (SYSTEM_PROGRAM, "unknown"),
        ],
    )
    def test_known_programs(self, owner, expected):
        assert detect_account_type(AccountInfo(lamports=1, owner=owner)) == expected

    def test_other_program_is_pda(self):
        assert detect_account_type(AccountInfo(lamports=1, owner=new_address())) == "pda"


class TestReads:
    """JSON-RPC reads and their parsing."""

    async def test_account_info(self):
        ledger, _ = rpc_ledger(
            lambda method, params: {
                "result": {"value": {"lamports": 42, "owner": TOKEN_PROGRAM, "data": ["AAAA", "base64"]}}
            }
        )
        info = await ledger.fetch_account_info(new_address())
        assert info.lamports == 42
        assert info.owner == TOKEN_PROGRAM
        assert info.data_len == 3

    async def test_absent_account(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": None}})
        assert await ledger.fetch_account_info(new_address()) is None

    async def test_token_account(self):
        owner = new_address()
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": parsed_token_value(owner, "17")}})
        token = await ledger.fetch_token_account(new_address())
        assert token.owner == owner
        assert token.amount == 17
        assert token.lamports == 2_039_280
        assert token.program_id == TOKEN_PROGRAM

    async def test_absent_token_account_is_none(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": None}})
        assert await ledger.fetch_token_account(new_address()) is None

    async def test_non_token_owner_raises(self):
        value = parsed_token_value(new_address(), program=SYSTEM_PROGRAM)
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": value}})
        with pytest.raises(LedgerError, match="not owned by a token program"):
            await ledger.fetch_token_account(new_address())

    async def test_unparsed_token_data_raises(self):
        value = {"lamports": 2_039_280, "owner": TOKEN_PROGRAM, "data": ["AAAA", "base64"]}
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": value}})
        with pytest.raises(LedgerError, match="could not be parsed"):
            await ledger.fetch_token_account(new_address())

    async def test_owned_token_accounts(self):
        owner = new_address()
        address = new_address()
        ledger, _ = rpc_ledger(
            lambda method, params: {
                "result": {"value": [{"pubkey": address, "account": parsed_token_value(owner, "0")}]}
            }
        )
        [item] = await ledger.fetch_owned_token_accounts(owner)
        assert item.address == address
        assert item.amount == 0
        assert item.lamports == 2_039_280

    async def test_recent_signatures(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": [{"signature": "a"}, {"signature": "b"}]})
        assert await ledger.fetch_recent_signatures(new_address(), limit=2) == ["a", "b"]

    async def test_last_activity(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": [{"signature": "s", "blockTime": 1_700_000_000}]})
        moment = await ledger.fetch_last_activity(new_address())
        assert moment == datetime(2023, 11, 14, 22, 13, 20)
        assert moment.tzinfo is None

    async def test_no_activity(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": []})
        assert await ledger.fetch_last_activity(new_address()) is None


class TestRetries:
    """Transient read failures back off and retry; others surface at once."""

    async def test_rate_limit_retried(self):
        attempts = []

        def responder(method, params):
            attempts.append(method)
            if len(attempts) < 3:
                return httpx.Response(429)
            return {"result": 890_880}

        ledger, calls = rpc_ledger(responder, max_retries=3)
        assert await ledger.get_rent_exempt_minimum(0) == 890_880
        assert len(calls) == 3

    async def test_retries_exhausted(self):
        ledger, calls = rpc_ledger(lambda method, params: httpx.Response(503), max_retries=3)
        with pytest.raises(LedgerError) as excinfo:
            await ledger.fetch_account_info(new_address())
        assert excinfo.value.transient is True
        assert len(calls) == 3

    async def test_invalid_params_not_retried(self):
        ledger, calls = rpc_ledger(
            lambda method, params: {"error": {"code": -32602, "message": "Invalid param"}}, max_retries=3
        )
        with pytest.raises(LedgerError, match="Invalid param") as excinfo:
            await ledger.fetch_account_info(new_address())
        assert excinfo.value.code == -32602
        assert len(calls) == 1


class TestWrites:
    """Close submission and confirmation polling."""

    async def test_send_is_never_retried(self):
        def responder(method, params):
            if method == "getLatestBlockhash":
                return {"result": {"value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 1}}}
            return {"error": {"code": -32005, "message": "Node is behind"}}

        ledger, calls = rpc_ledger(responder, max_retries=3)
        with pytest.raises(LedgerError, match="Node is behind"):
            await ledger.close_token_account(new_address(), new_address(), Keypair())
        assert calls.count("sendTransaction") == 1

    async def test_close_confirms(self):
        def responder(method, params):
            if method == "getLatestBlockhash":
                return {"result": {"value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 1}}}
            if method == "sendTransaction":
                return {"result": "SigOne"}
            return {"result": {"value": [{"confirmationStatus": "confirmed", "err": None}]}}

        ledger, calls = rpc_ledger(responder)
        assert await ledger.close_token_account(new_address(), new_address(), Keypair()) == "SigOne"
        assert calls == ["getLatestBlockhash", "sendTransaction", "getSignatureStatuses"]

    async def test_failed_transaction(self):
        ledger, _ = rpc_ledger(
            lambda method, params: {"result": {"value": [{"confirmationStatus": "confirmed", "err": {"X": 1}}]}}
        )
        with pytest.raises(LedgerError, match="failed"):
            await ledger.confirm_transaction("SigOne")

    async def test_confirmation_timeout(self):
        ledger, _ = rpc_ledger(lambda method, params: {"result": {"value": [None]}}, confirm_timeout=0)
        with pytest.raises(LedgerError, match="not confirmed"):
            await ledger.confirm_transaction("SigOne", poll_interval=0)
