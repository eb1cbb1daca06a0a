"""
Configuration and data loading/saving for SplitKit
"""
from __future__ import annotations
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from errors import StorageError
from models import Expense, ExpenseShare, Group, Ledger, Member, Settlement
from utils import app_dir, now_iso, new_id

logger = logging.getLogger(__name__)

DEFAULT_CURRENCIES = ["USD", "EUR", "GBP", "INR", "JPY", "AUD", "CAD"]

# First match wins
REMOTE_URL_VARS = ("SUPABASE_URL", "VITE_SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
REMOTE_KEY_VARS = ("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")


@dataclass
class AppConfig:
    """Application settings passed explicitly to stores and the app service"""
    data_dir: str
    db_file: str = "splitkit-db.json"
    default_currency: str = "USD"
    currencies: List[str] = field(default_factory=lambda: list(DEFAULT_CURRENCIES))
    remote_url: Optional[str] = None
    remote_key: Optional[str] = None

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, self.db_file)

    @property
    def settings_path(self) -> str:
        return os.path.join(self.data_dir, "settings.json")

    @property
    def cloud_configured(self) -> bool:
        return bool(self.remote_url and self.remote_key)


def _first_env(names) -> Optional[str]:
    for name in names:
        v = os.environ.get(name)
        if v:
            return v
    return None


def load_config(data_dir: Optional[str] = None) -> AppConfig:
    """
    Build config from data dir, optional settings.json and environment.
    Environment variables win over settings.json for the remote keys.
    """
    base = data_dir or os.environ.get("SPLITKIT_DATA_DIR") or app_dir()
    os.makedirs(base, exist_ok=True)
    cfg = AppConfig(data_dir=base)

    try:
        with open(cfg.settings_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        data = {}
    except (OSError, ValueError) as ex:
        raise StorageError(f"Cannot read {cfg.settings_path}: {ex}") from ex

    cfg.default_currency = data.get("default_currency", cfg.default_currency)
    cfg.currencies = list(data.get("currencies", cfg.currencies))
    if cfg.default_currency not in cfg.currencies:
        cfg.currencies.append(cfg.default_currency)
    cfg.remote_url = _first_env(REMOTE_URL_VARS) or data.get("remote_url")
    cfg.remote_key = _first_env(REMOTE_KEY_VARS) or data.get("remote_key")
    return cfg


def save_settings(cfg: AppConfig) -> None:
    """Write user-editable settings to settings.json in the data dir"""
    data = {
        "default_currency": cfg.default_currency,
        "currencies": cfg.currencies,
        "remote_url": cfg.remote_url,
        "remote_key": cfg.remote_key,
    }
    try:
        with open(cfg.settings_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as ex:
        raise StorageError(f"Cannot write {cfg.settings_path}: {ex}") from ex


def get_default_ledger() -> Ledger:
    """Create demo ledger with one group and two equally split expenses"""
    gid = new_id()
    you, aarav, mira = Member(new_id(), "You"), Member(new_id(), "Aarav"), Member(new_id(), "Mira")
    members = (you, aarav, mira)
    group = Group(id=gid, name="Phuket Villa", currency="INR", members=members)
    when = now_iso()
    e1 = Expense(
        id=new_id(), group_id=gid, title="Airport taxi", amount=900.0, payer_id=you.id, date=when,
        shares=tuple(ExpenseShare(m.id, 300.0) for m in members),
    )
    e2 = Expense(
        id=new_id(), group_id=gid, title="Groceries", amount=2400.0, payer_id=aarav.id, date=when,
        shares=tuple(ExpenseShare(m.id, 800.0) for m in members),
    )
    return Ledger(groups=[group], expenses=[e1, e2], settlements=[])


def group_from_dict(d: dict) -> Group:
    return Group(
        id=d["id"],
        name=d["name"],
        currency=d.get("currency", "USD"),
        members=tuple(Member(**m) for m in d.get("members", [])),
    )


def expense_from_dict(d: dict) -> Expense:
    return Expense(
        id=d["id"],
        group_id=d["group_id"],
        title=d.get("title", ""),
        amount=float(d["amount"]),
        payer_id=d["payer_id"],
        date=d["date"],
        shares=tuple(ExpenseShare(s["member_id"], float(s["amount"])) for s in d.get("shares", [])),
        note=d.get("note"),
    )


def settlement_from_dict(d: dict) -> Settlement:
    return Settlement(**{**d, "amount": float(d["amount"])})


def ledger_to_dict(ledger: Ledger) -> dict:
    """Convert Ledger object to dictionary for JSON serialization"""
    return {
        "version": ledger.version,
        "groups": [asdict(g) for g in ledger.groups],
        "expenses": [asdict(e) for e in ledger.expenses],
        "settlements": [asdict(s) for s in ledger.settlements],
    }


def dict_to_ledger(d: dict) -> Ledger:
    """Convert dictionary from JSON to Ledger object"""
    return Ledger(
        version=d.get("version", 1),
        groups=[group_from_dict(g) for g in d.get("groups", [])],
        expenses=[expense_from_dict(e) for e in d.get("expenses", [])],
        settlements=[settlement_from_dict(s) for s in d.get("settlements", [])],
    )


def load_ledger(path: str) -> Ledger:
    """Load ledger JSON; a missing file yields the demo ledger"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            d = json.load(f)
    except FileNotFoundError:
        logger.info("No database at %s, starting from demo data", path)
        return get_default_ledger()
    except (OSError, ValueError) as ex:
        raise StorageError(f"Cannot read {path}: {ex}") from ex
    try:
        return dict_to_ledger(d)
    except (KeyError, TypeError, ValueError) as ex:
        raise StorageError(f"Malformed database {path}: {ex}") from ex


def save_ledger(ledger: Ledger, path: str) -> None:
    """Write ledger JSON, replacing the file atomically"""
    tmp = f"{path}.tmp"
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(ledger_to_dict(ledger), f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except OSError as ex:
        raise StorageError(f"Cannot write {path}: {ex}") from ex
    logger.debug("Saved %d groups to %s", len(ledger.groups), path)
