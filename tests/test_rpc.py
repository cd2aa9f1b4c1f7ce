import asyncio
from unittest.mock import AsyncMock, Mock, patch

import base58
from solana.rpc.types import MemcmpOpts
from solders.pubkey import Pubkey

from defi_infos.rpc import KeyedAccount, MemcmpFilter, RpcAccountSource


def test_list_accounts_builds_size_and_memcmp_filters():
    owner = Pubkey.new_unique()
    program = Pubkey.new_unique()
    listed = Pubkey.new_unique()
    client = Mock()
    client.get_program_accounts = AsyncMock(return_value=Mock(value=[Mock(pubkey=listed, account=Mock(data=b"\x01\x02"))]))

    accounts = asyncio.run(RpcAccountSource(client).list_accounts(program, 106, [MemcmpFilter(34, bytes(owner))]))

    assert accounts == [KeyedAccount(listed, b"\x01\x02")]
    kwargs = client.get_program_accounts.call_args.kwargs
    assert kwargs["encoding"] == "base64"
    assert kwargs["filters"] == [106, MemcmpOpts(offset=34, bytes=base58.b58encode(bytes(owner)).decode())]


def test_list_accounts_without_filters():
    client = Mock()
    client.get_program_accounts = AsyncMock(return_value=Mock(value=[]))

    assert asyncio.run(RpcAccountSource(client).list_accounts(Pubkey.new_unique())) == []
    assert client.get_program_accounts.call_args.kwargs["filters"] is None


def test_get_accounts_chunks_and_preserves_order():
    keys = [Pubkey.new_unique() for _ in range(5)]
    client = Mock()
    client.get_multiple_accounts = AsyncMock(
        side_effect=[
            Mock(value=[Mock(data=b"a"), None]),
            Mock(value=[Mock(data=b"c"), Mock(data=b"d")]),
            Mock(value=[None]),
        ]
    )

    datas = asyncio.run(RpcAccountSource(client, batch_size=2).get_accounts(keys))

    assert datas == [b"a", None, b"c", b"d", None]
    chunks = [call.args[0] for call in client.get_multiple_accounts.call_args_list]
    assert chunks == [keys[0:2], keys[2:4], keys[4:5]]


def test_get_account_missing():
    client = Mock()
    client.get_account_info = AsyncMock(return_value=Mock(value=None))
    assert asyncio.run(RpcAccountSource(client).get_account(Pubkey.new_unique())) is None


def test_from_endpoint():
    with patch("defi_infos.rpc.AsyncClient") as client_cls:
        source = RpcAccountSource.from_endpoint("http://localhost:8899", timeout=5)
    client_cls.assert_called_once_with("http://localhost:8899", timeout=5)
    assert source.client is client_cls.return_value
