import base64
from types import SimpleNamespace

import pytest
from solders.pubkey import Pubkey

from solholdings.mints import TOKEN_PROGRAM_ID
from solholdings.rpc import LedgerClient, LedgerError
from tests.helpers import OWNER, USDC, mint_account_bytes, token_account_bytes


class DummyAsyncClient:
    def __init__(self, *, accounts=None, account_info=None, exc=None):
        self.accounts = accounts or []
        self.account_info = account_info
        self.exc = exc
        self.calls = []
        self.closed = False

    async def get_token_accounts_by_owner(self, owner, opts):
        self.calls.append(("accounts", owner, opts))
        if self.exc:
            raise self.exc
        return SimpleNamespace(value=self.accounts)

    async def get_account_info(self, pubkey):
        self.calls.append(("info", pubkey))
        if self.exc:
            raise self.exc
        return SimpleNamespace(value=self.account_info)

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_token_accounts_from_solders_style_objects():
    data = token_account_bytes(USDC, OWNER, 7)
    item = SimpleNamespace(pubkey=Pubkey.default(), account=SimpleNamespace(data=data))
    dummy = DummyAsyncClient(accounts=[item])

    accounts = await LedgerClient(dummy).get_token_accounts_by_owner(OWNER, TOKEN_PROGRAM_ID)

    assert len(accounts) == 1
    assert accounts[0].data == data
    assert accounts[0].pubkey == str(Pubkey.default())
    _, owner, opts = dummy.calls[0]
    assert owner == Pubkey.from_string(OWNER)
    assert opts.program_id == Pubkey.from_string(TOKEN_PROGRAM_ID)


@pytest.mark.asyncio
async def test_token_accounts_from_json_payload():
    data = token_account_bytes(USDC, OWNER, 7)
    item = {
        "pubkey": "acct1",
        "account": {"data": [base64.b64encode(data).decode(), "base64"]},
    }
    no_data = {"pubkey": "acct2", "account": {"data": None}}
    dummy = DummyAsyncClient(accounts=[item, no_data])

    accounts = await LedgerClient(dummy).get_token_accounts_by_owner(OWNER, TOKEN_PROGRAM_ID)

    assert [a.pubkey for a in accounts] == ["acct1"]
    assert accounts[0].data == data


@pytest.mark.asyncio
async def test_transport_failure_is_wrapped():
    client = LedgerClient(DummyAsyncClient(exc=OSError("connection reset")))
    with pytest.raises(LedgerError):
        await client.get_token_accounts_by_owner(OWNER, TOKEN_PROGRAM_ID)
    with pytest.raises(LedgerError):
        await client.get_mint_decimals(USDC)


@pytest.mark.asyncio
async def test_invalid_owner_raises_ledger_error():
    with pytest.raises(LedgerError):
        await LedgerClient(DummyAsyncClient()).get_token_accounts_by_owner("bogus", TOKEN_PROGRAM_ID)


@pytest.mark.asyncio
async def test_mint_decimals():
    dummy = DummyAsyncClient(account_info=SimpleNamespace(data=mint_account_bytes(6)))
    assert await LedgerClient(dummy).get_mint_decimals(USDC) == 6


@pytest.mark.asyncio
async def test_missing_or_malformed_mint_account():
    with pytest.raises(LedgerError):
        await LedgerClient(DummyAsyncClient(account_info=None)).get_mint_decimals(USDC)
    short = DummyAsyncClient(account_info=SimpleNamespace(data=bytes(10)))
    with pytest.raises(LedgerError):
        await LedgerClient(short).get_mint_decimals(USDC)


@pytest.mark.asyncio
async def test_context_manager_closes_client():
    dummy = DummyAsyncClient()
    async with LedgerClient(dummy) as client:
        assert isinstance(client, LedgerClient)
    assert dummy.closed
