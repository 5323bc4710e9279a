import os
import tomllib
from pathlib import Path

pkg_root = Path(__file__).parent
config_file = Path(os.getenv("OCTWALLET_CONFIG", pkg_root / "config.toml"))

cfg = tomllib.loads(config_file.read_text())

rpc = cfg.setdefault("rpc", {})
rpc["url"] = os.getenv("OCTWALLET_RPC_URL", rpc.get("url", "https://octra.network"))
rpc["relay_url"] = os.getenv("OCTWALLET_RELAY_URL", rpc.get("relay_url", "")) or None

wallet = cfg.setdefault("wallet", {})
wallet["private_key"] = os.getenv("OCTWALLET_PRIVATE_KEY", wallet.get("private_key", "")) or None
