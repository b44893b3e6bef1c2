#!/usr/bin/env python3
"""
Airdrop Finder
Checks a list of wallets against configured airdrop sources and writes a JSON report.

Features
- Reads airdrop definitions from config/airdrops.config.json (or --config).
- Reads wallets from --wallet, --wallets-file, $WALLETS_FILE or data/wallets.json.
- Two airdrop types: "contract" (read-only call through an RPC endpoint) and
  "snapshot" (lookup in a local JSON file, mapping or array shaped).
- Minimum-claimable filtering and decimal formatting on raw integer amounts.
- Writes reports/airdrop-report-<timestamp>.json and optionally POSTs it to a webhook.

Notes
- RPC endpoints come from BASE_RPC, OP_RPC and ARBITRUM_RPC; a .env file is honoured.
- Webhook URL comes from SCAN_WEBHOOK_URL (or REWARD_WEBHOOK).
- --dry-run skips every network call; contract airdrops then report "0".
"""
import os, sys, json, time, re, argparse, logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple, Union

import requests
from dotenv import load_dotenv
from web3 import Web3

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join("config", "airdrops.config.json")
DEFAULT_WALLETS_PATH = os.path.join("data", "wallets.json")
DEFAULT_REPORT_DIR = "reports"
REPORT_PREFIX = "airdrop-report-"

DEFAULT_CHAIN = "base"
DEFAULT_METHOD = "claimable(address)"
DEFAULT_RETURN_TYPE = "uint256"
WALLET_TOKENS = ("wallet", "$wallet")

# chain id -> env var holding its RPC endpoint
RPC_ENV = {
    "base": "BASE_RPC",
    "optimism": "OP_RPC",
    "arbitrum": "ARBITRUM_RPC",
}

INT_RE = re.compile(r"^\s*(?:0[xX][0-9a-fA-F]+|-?\d+)\s*$")
SIG_RE = re.compile(r"^\s*([A-Za-z_$][\w$]*)\s*\((.*)\)\s*$")


class ConfigError(Exception):
    """Raised when the airdrop config cannot be turned into definitions."""


# ===================== DATA MODEL =====================
@dataclass(frozen=True)
class Airdrop:
    """Fields shared by every airdrop type."""
    name: str
    chain: str = DEFAULT_CHAIN
    enabled: bool = True
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    min_claimable: Optional[str] = None
    rate_limit_ms: Optional[float] = None


@dataclass(frozen=True)
class ContractAirdrop(Airdrop):
    contract: str = ""
    method: str = DEFAULT_METHOD
    return_type: str = DEFAULT_RETURN_TYPE
    args: Tuple[Any, ...] = ("wallet",)


@dataclass(frozen=True)
class SnapshotAirdrop(Airdrop):
    """Snapshot lookup.

    Array entries that are objects are matched on ``snapshot_address_field``
    (then ``address``, then ``wallet``) and report ``snapshot_amount_field``
    (then ``amount``, then ``claimable``, then ``"1"``).
    """
    snapshot_file: str = ""
    snapshot_address_field: str = "wallet"
    snapshot_amount_field: str = "amount"


@dataclass(frozen=True)
class UnsupportedAirdrop(Airdrop):
    type_name: Optional[str] = None


@dataclass(frozen=True)
class ClaimResult:
    chain: str
    airdrop: str
    wallet: str
    claimable_raw: str
    claimable_formatted: Optional[str] = None
    token_symbol: Optional[str] = None
    decimals: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain,
            "airdrop": self.airdrop,
            "wallet": self.wallet,
            "claimableRaw": self.claimable_raw,
            "claimableFormatted": self.claimable_formatted,
            "tokenSymbol": self.token_symbol,
            "decimals": self.decimals,
        }


AirdropDefinition = Union[ContractAirdrop, SnapshotAirdrop, UnsupportedAirdrop]


# ===================== UTILITY FUNCTIONS =====================
def iso_now() -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-01-02T03:04:05.678Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def load_json(path: str) -> Any:
    """Parsed JSON document, or None when the file does not exist."""
    if not os.path.isfile(path):
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def parse_amount(value: Any) -> int:
    """Big integer from an int or a decimal/0x-hex string. Raises ValueError otherwise."""
    if isinstance(value, bool):
        raise ValueError(f"not an integer amount: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not INT_RE.match(value):
        raise ValueError(f"not an integer amount: {value!r}")
    s = value.strip()
    if s[:2].lower() == "0x":
        return int(s, 16)
    return int(s, 10)


def amount_str(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def normalize_address(addr: Any) -> Optional[str]:
    """EIP-55 checksum form when valid, lowercase otherwise."""
    if not addr or not isinstance(addr, str):
        return None
    if Web3.is_address(addr):
        return Web3.to_checksum_address(addr)
    return addr.lower()


# ===================== CONFIG =====================
def _optional_int(entry: Dict[str, Any], key: str, name: str) -> Optional[int]:
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigError(f"airdrop {name!r}: {key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"airdrop {name!r}: {key} must be an integer, got {value!r}")


def _optional_threshold(entry: Dict[str, Any], name: str) -> Optional[str]:
    """minClaimable as an integer string; 0 and "0" mean no threshold."""
    value = entry.get("minClaimable")
    if value in (None, "", 0, "0"):
        return None
    if isinstance(value, bool):
        raise ConfigError(f"airdrop {name!r}: minClaimable must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"airdrop {name!r}: minClaimable must be an integer, got {value!r}")
        value = int(value)
    return str(value)


def _optional_ms(entry: Dict[str, Any], name: str) -> Optional[float]:
    value = entry.get("rateLimitMs")
    if value in (None, "", 0):
        return None
    if isinstance(value, bool):
        raise ConfigError(f"airdrop {name!r}: rateLimitMs must be a number")
    try:
        ms = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"airdrop {name!r}: rateLimitMs must be a number, got {value!r}")
    if ms < 0:
        raise ConfigError(f"airdrop {name!r}: rateLimitMs must not be negative")
    return ms or None


def parse_airdrop(entry: Any, base_dir: str) -> AirdropDefinition:
    if not isinstance(entry, dict):
        raise ConfigError(f"airdrop entries must be objects, got {entry!r}")
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"airdrop entry without a name: {entry!r}")

    common = dict(
        name=name,
        chain=str(entry.get("chain") or DEFAULT_CHAIN).lower(),
        enabled=entry.get("enabled") is not False,
        symbol=entry.get("symbol"),
        decimals=_optional_int(entry, "decimals", name),
        min_claimable=_optional_threshold(entry, name),
        rate_limit_ms=_optional_ms(entry, name),
    )

    kind = entry.get("type")
    if kind == "contract":
        contract = entry.get("contract")
        if not isinstance(contract, str) or not contract:
            raise ConfigError(f"airdrop {name!r}: contract address is required")
        args = entry.get("args")
        if args is None:
            args = ["wallet"]
        if not isinstance(args, list):
            raise ConfigError(f"airdrop {name!r}: args must be a list")
        return ContractAirdrop(
            contract=contract,
            method=entry.get("method") or DEFAULT_METHOD,
            return_type=entry.get("returnType") or DEFAULT_RETURN_TYPE,
            args=tuple(args),
            **common,
        )
    if kind == "snapshot":
        snapshot_file = entry.get("snapshotFile")
        if not isinstance(snapshot_file, str) or not snapshot_file:
            raise ConfigError(f"airdrop {name!r}: snapshotFile is required")
        return SnapshotAirdrop(
            snapshot_file=os.path.join(base_dir, snapshot_file),
            snapshot_address_field=entry.get("snapshotAddressField") or "wallet",
            snapshot_amount_field=entry.get("snapshotAmountField") or "amount",
            **common,
        )

    logger.warning("airdrop %r has unsupported type %r; it will be reported as an error", name, kind)
    return UnsupportedAirdrop(type_name=kind, **common)


def load_config(path: str, base_dir: Optional[str] = None) -> List[AirdropDefinition]:
    """Load and validate the airdrop config. Snapshot paths are resolved against base_dir."""
    doc = load_json(path)
    if doc is None:
        raise FileNotFoundError(path)
    if not isinstance(doc, dict):
        raise ConfigError(f"{path}: top level must be an object with an 'airdrops' list")
    entries = doc.get("airdrops") or []
    if not isinstance(entries, list):
        raise ConfigError(f"{path}: 'airdrops' must be a list")
    base_dir = base_dir if base_dir is not None else os.getcwd()
    return [parse_airdrop(e, base_dir) for e in entries if e]


def select_airdrops(airdrops: List[AirdropDefinition],
                    chains: Optional[List[str]] = None,
                    name_filter: Optional[str] = None) -> List[AirdropDefinition]:
    out = []
    for a in airdrops:
        if not a.enabled:
            continue
        if chains and a.chain not in chains:
            continue
        if name_filter and name_filter.lower() not in a.name.lower():
            continue
        out.append(a)
    return out


def load_wallets(wallet: Optional[str] = None, wallets_file: Optional[str] = None) -> List[str]:
    if wallet:
        return [wallet]
    path = wallets_file or os.environ.get("WALLETS_FILE") or DEFAULT_WALLETS_PATH
    wallets = load_json(path) or []
    if not isinstance(wallets, list):
        raise ConfigError(f"{path}: wallet list must be a JSON array")
    return wallets


def rpc_endpoints() -> Dict[str, str]:
    return {chain: os.environ[env] for chain, env in RPC_ENV.items() if os.environ.get(env)}


# ===================== SNAPSHOTS =====================
def load_snapshots(airdrops: List[AirdropDefinition]) -> Dict[str, Any]:
    """Read every referenced snapshot up front; malformed JSON aborts the run."""
    snapshots: Dict[str, Any] = {}
    for a in airdrops:
        if isinstance(a, SnapshotAirdrop) and a.snapshot_file not in snapshots:
            doc = load_json(a.snapshot_file)
            if doc is None:
                logger.warning("snapshot %s for %r not found; treating it as empty", a.snapshot_file, a.name)
            snapshots[a.snapshot_file] = doc
    return snapshots


def _first_present(entry: Dict[str, Any], keys: List[str]) -> Any:
    for k in keys:
        if entry.get(k) is not None:
            return entry[k]
    return None


def resolve_snapshot_value(snapshot: Any, wallet: str, airdrop: SnapshotAirdrop) -> str:
    if not snapshot:
        return "0"
    wallet_lower = wallet.lower()

    if isinstance(snapshot, list):
        address_keys = [airdrop.snapshot_address_field, "address", "wallet"]
        amount_keys = [airdrop.snapshot_amount_field, "amount", "claimable"]
        for entry in snapshot:
            if isinstance(entry, str):
                if entry.lower() == wallet_lower:
                    return "1"
            elif isinstance(entry, dict):
                entry_address = _first_present(entry, address_keys)
                if isinstance(entry_address, str) and entry_address.lower() == wallet_lower:
                    amount = _first_present(entry, amount_keys)
                    return "1" if amount is None else amount_str(amount)
        return "0"

    if isinstance(snapshot, dict):
        for key in (wallet, wallet_lower):
            if snapshot.get(key) is not None:
                return amount_str(snapshot[key])
        return "0"

    return "0"


# ===================== CONTRACT CALLS =====================
def split_types(types: str) -> List[str]:
    """Split 'address,(uint256,bool),uint8' on top-level commas, dropping parameter names."""
    out, depth, cur = [], 0, ""
    for ch in types:
        if ch == "," and depth == 0:
            out.append(cur)
            cur = ""
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        cur += ch
    out.append(cur)
    return [t.strip().split()[0] for t in out if t.strip()]


def build_abi(method_sig: str, return_type: str) -> Tuple[str, List[Dict[str, Any]]]:
    m = SIG_RE.match(method_sig)
    if not m:
        raise ValueError(f"bad method signature: {method_sig!r}")
    name, params = m.group(1), m.group(2)
    ret = return_type.strip()
    if ret.startswith("(") and ret.endswith(")"):
        ret = ret[1:-1]
    abi = [{
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": "", "type": t} for t in split_types(params)],
        "outputs": [{"name": "", "type": t} for t in split_types(ret)],
    }]
    return name, abi


def expand_args(template: Tuple[Any, ...], wallet: str) -> List[Any]:
    return [wallet if arg in WALLET_TOKENS else arg for arg in template]


def coerce_arg(abi_type: str, value: Any) -> Any:
    if abi_type == "address" and isinstance(value, str):
        return Web3.to_checksum_address(value)
    if re.match(r"^u?int\d*$", abi_type) and isinstance(value, str):
        return parse_amount(value)
    return value


def make_web3(rpc: str) -> Web3:
    return Web3(Web3.HTTPProvider(rpc, request_kwargs={"timeout": 20}))


def call_contract_method(rpc: str, contract_addr: str, method_sig: str,
                         return_type: str, args: List[Any]) -> Optional[str]:
    """Call a view method; None on any failure (network, revert, decode)."""
    try:
        name, abi = build_abi(method_sig, return_type)
        types = [i["type"] for i in abi[0]["inputs"]]
        call_args = [coerce_arg(t, a) for t, a in zip(types, args)] + list(args[len(types):])
        w3 = make_web3(rpc)
        contract = w3.eth.contract(address=Web3.to_checksum_address(contract_addr), abi=abi)
        res = getattr(contract.functions, name)(*call_args).call()
    except Exception as e:
        logger.debug("call %s on %s failed: %s", method_sig, contract_addr, e)
        return None

    if return_type == "bool":
        return "1" if res else "0"
    if isinstance(res, (list, tuple)):
        if len(abi[0]["outputs"]) > 1:
            res = res[0] if res else 0
        else:
            return ",".join(amount_str(v) for v in res)
    if isinstance(res, (bytes, bytearray)):
        return "0x" + bytes(res).hex()
    return amount_str(res) if res else "0"


# ===================== RESOLVER =====================
def check_airdrop_for_wallet(airdrop: AirdropDefinition, wallet: str, rpcs: Dict[str, str],
                             dry_run: bool = False,
                             snapshots: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Raw claimable amount as a string, or None when it could not be determined."""
    if isinstance(airdrop, SnapshotAirdrop):
        if snapshots is not None and airdrop.snapshot_file in snapshots:
            snap = snapshots[airdrop.snapshot_file]
        else:
            snap = load_json(airdrop.snapshot_file)
        return resolve_snapshot_value(snap, wallet, airdrop)

    if isinstance(airdrop, ContractAirdrop):
        if dry_run:
            return "0"
        chain = airdrop.chain or DEFAULT_CHAIN
        rpc = rpcs.get(chain)
        if not rpc:
            logger.warning("no RPC endpoint configured for chain %r (%s)", chain, airdrop.name)
            return None
        return call_contract_method(rpc, airdrop.contract, airdrop.method,
                                    airdrop.return_type, expand_args(airdrop.args, wallet))

    return None


# ===================== FILTER / FORMAT =====================
def is_zero(raw: Optional[str]) -> bool:
    return not raw or raw == "0"


def passes_min_claimable(claimable: Optional[str], min_claimable: Optional[str]) -> bool:
    if not min_claimable:
        return True
    try:
        return parse_amount(claimable or "0") >= parse_amount(min_claimable)
    except ValueError:
        return False


def should_include(raw: Optional[str], include_zero: bool, min_claimable: Optional[str]) -> bool:
    if include_zero:
        return True
    return not is_zero(raw) and passes_min_claimable(raw, min_claimable)


def format_units(raw: Any, decimals: Optional[int]) -> Optional[str]:
    """Exact decimal rendering of raw / 10**decimals ('1.5', '2.0'); None if unknown."""
    if raw is None or decimals is None:
        return None
    try:
        value = parse_amount(raw)
        d = int(decimals)
    except (TypeError, ValueError):
        return None
    if d < 0:
        return None
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** d)
    frac_s = str(frac).rjust(d, "0").rstrip("0") if d else ""
    return f"{sign}{whole}.{frac_s or '0'}"


# ===================== SCAN =====================
def scan(airdrops: List[AirdropDefinition], wallets: List[str], rpcs: Dict[str, str],
         dry_run: bool = False, include_zero: bool = False, min_claimable: Optional[str] = None,
         snapshots: Optional[Dict[str, Any]] = None, sleep=time.sleep) -> List[ClaimResult]:
    """Check every (airdrop, wallet) pair in order and keep the rows that pass the filter."""
    results: List[ClaimResult] = []
    for airdrop in airdrops:
        for wallet in wallets:
            normalized = normalize_address(wallet)
            print(f"Checking {airdrop.name} on {airdrop.chain} for {normalized} ... ", end="", flush=True)
            if normalized is None:
                print("error")
                logger.warning("skipping invalid wallet entry %r", wallet)
                continue
            raw = check_airdrop_for_wallet(airdrop, normalized, rpcs, dry_run, snapshots)
            if raw is None:
                print("error")
                continue

            threshold = airdrop.min_claimable or min_claimable
            if should_include(raw, include_zero, threshold):
                print(f"✓ claimable: {raw}")
                results.append(ClaimResult(
                    chain=airdrop.chain,
                    airdrop=airdrop.name,
                    wallet=normalized,
                    claimable_raw=raw,
                    claimable_formatted=format_units(raw, airdrop.decimals),
                    token_symbol=airdrop.symbol,
                    decimals=airdrop.decimals,
                ))
            else:
                print("no")

            if airdrop.rate_limit_ms:
                sleep(airdrop.rate_limit_ms / 1000.0)
    return results


# ===================== REPORT =====================
def build_report(results: List[ClaimResult], airdrops_checked: int, wallets_checked: int,
                 dry_run: bool, generated_at: Optional[str] = None) -> Dict[str, Any]:
    return {
        "generatedAt": generated_at or iso_now(),
        "meta": {
            "airdropsChecked": airdrops_checked,
            "walletsChecked": wallets_checked,
            "resultsCount": len(results),
            "dryRun": dry_run,
        },
        "results": [r.as_dict() for r in results],
    }


def report_filename(started_at: str) -> str:
    return REPORT_PREFIX + re.sub(r"[:.]", "-", started_at) + ".json"


def write_report(report: Dict[str, Any], report_dir: str, started_at: str) -> str:
    os.makedirs(report_dir, exist_ok=True)
    out_path = os.path.join(report_dir, report_filename(started_at))
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
    return out_path


def post_webhook(report: Dict[str, Any], url: str) -> bool:
    try:
        r = requests.post(url, json=report, timeout=20)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.error("Webhook post failed: %s", e)
        return False
    return True


def webhook_url() -> Optional[str]:
    return os.environ.get("SCAN_WEBHOOK_URL") or os.environ.get("REWARD_WEBHOOK") or None


def report_dir_from_env() -> str:
    return os.environ.get("REPORT_DIR") or os.environ.get("REPORTS_DIR") or DEFAULT_REPORT_DIR


def print_summary(report: Dict[str, Any]) -> None:
    meta = report["meta"]
    print(f"# Airdrop Finder - {report['generatedAt']}")
    print(f"# airdrops={meta['airdropsChecked']} wallets={meta['walletsChecked']} "
          f"results={meta['resultsCount']} dry_run={meta['dryRun']}")
    for r in report["results"]:
        amount = r["claimableFormatted"] or r["claimableRaw"]
        symbol = r["tokenSymbol"] or ""
        print(f"✅ {r['airdrop']} [{r['chain']}] {r['wallet']}  {amount} {symbol}".rstrip())


# ===================== CLI =====================
def parse_chains(value: str) -> List[str]:
    return [s.strip().lower() for s in value.split(",") if s.strip()]


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Airdrop Finder (contract + snapshot sources)")
    ap.add_argument("--config", default="", help="airdrop config JSON (default: $AIRDROPS_CONFIG or config/airdrops.config.json)")
    ap.add_argument("--airdrop", default=None, help="only airdrops whose name contains this text")
    ap.add_argument("--chains", type=parse_chains, default=None, help="comma-separated chain filter, e.g. base,optimism")
    ap.add_argument("--wallet", default=None, help="check a single wallet")
    ap.add_argument("--wallets-file", default=None, help="JSON array of wallets")
    ap.add_argument("--include-zero", action="store_true", help="keep zero results in the report")
    ap.add_argument("--dry-run", action="store_true", help="no network calls; contract airdrops report 0")
    ap.add_argument("--min-claimable", default=None, help="minimum raw amount when the airdrop sets none")
    ap.add_argument("--report-dir", default=None, help="output directory (default: $REPORT_DIR or reports/)")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s - %(levelname)s - %(message)s")

    started_at = iso_now()
    config_path = args.config or os.environ.get("AIRDROPS_CONFIG") or DEFAULT_CONFIG_PATH
    try:
        all_airdrops = load_config(config_path)
        wallets = load_wallets(args.wallet, args.wallets_file)
    except FileNotFoundError:
        raise SystemExit(f"Missing {config_path}")
    except ConfigError as e:
        raise SystemExit(f"Invalid config: {e}")

    airdrops = select_airdrops(all_airdrops, args.chains, args.airdrop)
    snapshots = load_snapshots(airdrops)
    results = scan(airdrops, wallets, rpc_endpoints(),
                   dry_run=args.dry_run,
                   include_zero=args.include_zero,
                   min_claimable=args.min_claimable,
                   snapshots=snapshots)

    report = build_report(results, len(airdrops), len(wallets), args.dry_run)
    out_path = write_report(report, args.report_dir or report_dir_from_env(), started_at)
    print(f"Wrote {out_path}")

    url = webhook_url()
    if url and post_webhook(report, url):
        print("Posted report to webhook")

    print_summary(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
