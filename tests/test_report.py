import glob
import json
import os

import pytest
import requests

import airdrop_finder as af
import prepare_report
from conftest import WALLET, OTHER_WALLET, CONTRACT


def read_reports(report_dir):
    paths = sorted(glob.glob(os.path.join(report_dir, "airdrop-report-*.json")))
    out = []
    for p in paths:
        with open(p) as f:
            out.append(json.load(f))
    return out


@pytest.fixture
def workspace(tmp_path, write_json, monkeypatch):
    monkeypatch.chdir(tmp_path)
    snap = write_json("snapshots/alloc.json", {WALLET: "500"})
    config = write_json("config/airdrops.config.json", {"airdrops": [
        {"name": "Allocation", "chain": "optimism", "type": "snapshot",
         "snapshotFile": snap, "decimals": 2, "symbol": "SNAP"},
        {"name": "Rewards", "chain": "base", "type": "contract", "contract": CONTRACT},
    ]})
    wallets = write_json("wallets.json", [WALLET.lower(), OTHER_WALLET])
    return {"config": config, "wallets": wallets, "dir": str(tmp_path)}


def test_report_filename_is_filesystem_safe():
    name = af.report_filename("2026-01-02T03:04:05.678Z")
    assert name == "airdrop-report-2026-01-02T03-04-05-678Z.json"


def test_build_report_shape():
    row = af.ClaimResult(chain="base", airdrop="x", wallet=WALLET, claimable_raw="5")
    report = af.build_report([row], 2, 3, True, generated_at="2026-01-02T03:04:05.678Z")
    assert report == {
        "generatedAt": "2026-01-02T03:04:05.678Z",
        "meta": {"airdropsChecked": 2, "walletsChecked": 3, "resultsCount": 1, "dryRun": True},
        "results": [{"chain": "base", "airdrop": "x", "wallet": WALLET, "claimableRaw": "5",
                     "claimableFormatted": None, "tokenSymbol": None, "decimals": None}],
    }


def test_write_report_creates_directory(tmp_path):
    out = af.write_report({"results": []}, str(tmp_path / "nested" / "reports"), "2026-01-02T03:04:05.678Z")
    assert out.endswith("airdrop-report-2026-01-02T03-04-05-678Z.json")
    with open(out) as f:
        assert json.load(f) == {"results": []}


def test_iso_now_format():
    stamp = af.iso_now()
    assert stamp.endswith("Z") and len(stamp) == len("2026-01-02T03:04:05.678Z")


def test_main_snapshot_scenario(workspace, no_network):
    report_dir = os.path.join(workspace["dir"], "out")
    assert af.main(["--config", workspace["config"], "--wallets-file", workspace["wallets"],
                    "--report-dir", report_dir]) == 0

    [report] = read_reports(report_dir)
    assert report["meta"] == {"airdropsChecked": 2, "walletsChecked": 2, "resultsCount": 1, "dryRun": False}
    assert report["results"] == [{
        "chain": "optimism", "airdrop": "Allocation", "wallet": WALLET, "claimableRaw": "500",
        "claimableFormatted": "5.0", "tokenSymbol": "SNAP", "decimals": 2,
    }]


def test_main_dry_run_is_repeatable(workspace, no_network, monkeypatch):
    monkeypatch.setenv("BASE_RPC", "https://base.example")
    runs = []
    for i in range(2):
        report_dir = os.path.join(workspace["dir"], f"run{i}")
        af.main(["--config", workspace["config"], "--wallets-file", workspace["wallets"],
                 "--report-dir", report_dir, "--dry-run", "--include-zero"])
        runs.extend(read_reports(report_dir))
    assert runs[0]["results"] == runs[1]["results"]
    assert runs[0]["meta"]["dryRun"] is True
    assert [r["claimableRaw"] for r in runs[0]["results"] if r["airdrop"] == "Rewards"] == ["0", "0"]


def test_main_filters_by_chain_and_name(workspace, no_network):
    report_dir = os.path.join(workspace["dir"], "out")
    af.main(["--config", workspace["config"], "--wallet", WALLET, "--chains", "base",
             "--airdrop", "alloc", "--report-dir", report_dir])
    [report] = read_reports(report_dir)
    assert report["meta"]["airdropsChecked"] == 0
    assert report["meta"]["walletsChecked"] == 1
    assert report["results"] == []


def test_main_report_dir_from_env(workspace, no_network, monkeypatch):
    monkeypatch.setenv("REPORTS_DIR", os.path.join(workspace["dir"], "env-reports"))
    af.main(["--config", workspace["config"], "--wallet", WALLET])
    assert len(read_reports(os.path.join(workspace["dir"], "env-reports"))) == 1


def test_main_missing_config_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        af.main(["--config", str(tmp_path / "nope.json")])
    assert "Missing" in str(exc.value.code)


def test_main_invalid_config_exits(write_json):
    path = write_json("bad.json", {"airdrops": [{"name": "c", "type": "contract"}]})
    with pytest.raises(SystemExit) as exc:
        af.main(["--config", path])
    assert "Invalid config" in str(exc.value.code)


def test_webhook_receives_report(workspace, no_network, monkeypatch):
    posted = []

    class Response:
        def raise_for_status(self):
            pass

    def fake_post(url, json=None, timeout=None):
        posted.append((url, json))
        return Response()

    monkeypatch.setattr(af.requests, "post", fake_post)
    monkeypatch.setenv("REWARD_WEBHOOK", "https://hooks.example/airdrops")
    report_dir = os.path.join(workspace["dir"], "out")
    af.main(["--config", workspace["config"], "--wallets-file", workspace["wallets"],
             "--report-dir", report_dir])

    [report] = read_reports(report_dir)
    assert posted == [("https://hooks.example/airdrops", report)]


def test_webhook_failure_does_not_fail_run(workspace, no_network, monkeypatch, caplog):
    def fake_post(url, json=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(af.requests, "post", fake_post)
    monkeypatch.setenv("SCAN_WEBHOOK_URL", "https://hooks.example/airdrops")
    report_dir = os.path.join(workspace["dir"], "out")
    assert af.main(["--config", workspace["config"], "--wallet", WALLET, "--report-dir", report_dir]) == 0
    assert len(read_reports(report_dir)) == 1
    assert "Webhook post failed" in caplog.text


def test_prepare_copies_latest_report(tmp_path):
    reports = tmp_path / "reports"
    reports.mkdir()
    (reports / "airdrop-report-2026-01-01T00-00-00-000Z.json").write_text('{"old": true}')
    (reports / "airdrop-report-2026-02-01T00-00-00-000Z.json").write_text('{"new": true}')
    (reports / "notes.json").write_text("{}")
    out = tmp_path / "web" / "public" / "data" / "latest-report.json"

    latest = prepare_report.prepare(str(reports), str(out))

    assert latest.endswith("2026-02-01T00-00-00-000Z.json")
    assert json.loads(out.read_text()) == {"new": True}


def test_prepare_writes_placeholder_without_reports(tmp_path):
    out = tmp_path / "latest-report.json"
    assert prepare_report.prepare(str(tmp_path / "missing"), str(out)) is None
    assert json.loads(out.read_text()) == {"generatedAt": None, "meta": {}, "results": []}


def test_prepare_main_uses_env_report_dir(tmp_path, monkeypatch):
    reports = tmp_path / "r"
    reports.mkdir()
    (reports / "airdrop-report-2026-03-01T00-00-00-000Z.json").write_text('{"results": []}')
    monkeypatch.setenv("REPORT_DIR", str(reports))
    out = tmp_path / "site" / "latest.json"
    assert prepare_report.main(["--out", str(out)]) == 0
    assert json.loads(out.read_text()) == {"results": []}
