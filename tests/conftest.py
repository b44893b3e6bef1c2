import json
from types import SimpleNamespace

import pytest

import airdrop_finder

WALLET = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER_WALLET = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
CONTRACT = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"


class FakeWeb3:
    """Stands in for Web3: records contract calls and returns a canned value."""

    def __init__(self, value):
        self.value = value
        self.calls = []
        self.eth = SimpleNamespace(contract=self._contract)

    def _contract(self, address, abi):
        fake = self

        class Functions:
            def __getattr__(self, name):
                def bind(*args):
                    fake.calls.append((address, name, args, abi))
                    return SimpleNamespace(call=fake._call)
                return bind

        return SimpleNamespace(functions=Functions())

    def _call(self):
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


@pytest.fixture
def fake_web3(monkeypatch):
    def install(value):
        fake = FakeWeb3(value)
        monkeypatch.setattr(airdrop_finder, "make_web3", lambda rpc: fake)
        return fake
    return install


@pytest.fixture
def no_network(monkeypatch):
    def boom(rpc):
        raise AssertionError("network access in a test that must stay offline")
    monkeypatch.setattr(airdrop_finder, "make_web3", boom)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("BASE_RPC", "OP_RPC", "ARBITRUM_RPC", "REPORT_DIR", "REPORTS_DIR",
                "WALLETS_FILE", "SCAN_WEBHOOK_URL", "REWARD_WEBHOOK", "AIRDROPS_CONFIG"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def write_json(tmp_path):
    def write(name, doc):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(doc))
        return str(path)
    return write
