from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from adforge.config import settings

logger = logging.getLogger(__name__)

CAMPAIGN_STATUSES = ("draft", "active", "completed", "archived")
# archived is terminal
CAMPAIGN_TRANSITIONS = {
    "draft": {"active", "archived"},
    "active": {"completed", "archived"},
    "completed": {"active", "archived"},
    "archived": set(),
}
AD_STATUSES = ("processing", "completed", "failed")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sha256_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Asset:
    asset_id: str
    kind: str  # product|reference|other
    filename: str
    rel_path: str
    sha256: str
    created_at: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class Ad:
    ad_id: str
    ad_type: str  # image|video
    status: str
    product_name: str
    description: str
    created_at: str
    copy: dict[str, str] = field(default_factory=dict)
    result_url: str | None = None
    thumbnail_url: str | None = None
    provider: str | None = None
    model: str | None = None
    source_asset_id: str | None = None
    share_token: str | None = None
    unlocked: bool = False
    error: str | None = None

    def public_view(self) -> dict[str, Any]:
        return {
            "ad_id": self.ad_id,
            "ad_type": self.ad_type,
            "product_name": self.product_name,
            "copy": self.copy,
            "result_url": self.result_url,
            "thumbnail_url": self.thumbnail_url,
            "created_at": self.created_at,
        }


@dataclass
class Campaign:
    campaign_id: str
    name: str
    objective: str | None
    status: str
    created_at: str
    assets: list[Asset]
    ads: list[Ad]


class CampaignStore:
    """Campaigns on disk: one directory each, metadata in campaign.json."""

    def __init__(self, root_dir: Path | str | None = None) -> None:
        self.root_dir = Path(root_dir or settings.data_dir).resolve()
        self.campaigns_dir = self.root_dir / "campaigns"
        self.campaigns_dir.mkdir(parents=True, exist_ok=True)

    def create_campaign(self, name: str, objective: str | None = None) -> Campaign:
        name = (name or "").strip()
        if not name:
            raise ValueError("campaign name is required")
        campaign_id = _new_id()
        camp_dir = self.campaigns_dir / campaign_id
        (camp_dir / "assets").mkdir(parents=True, exist_ok=True)
        (camp_dir / "runs").mkdir(parents=True, exist_ok=True)

        camp = Campaign(
            campaign_id=campaign_id,
            name=name,
            objective=(objective or "").strip() or None,
            status="draft",
            created_at=_now_iso(),
            assets=[],
            ads=[],
        )
        self._write_campaign(camp)
        logger.info("Created campaign %s (%s)", campaign_id, name)
        return camp

    def list_campaigns(self) -> list[Campaign]:
        out: list[Campaign] = []
        for camp_dir in sorted(self.campaigns_dir.glob("*")):
            if not camp_dir.is_dir():
                continue
            try:
                out.append(self.read_campaign(camp_dir.name))
            except (KeyError, ValueError, TypeError) as exc:
                logger.warning("Skipping unreadable campaign %s: %s", camp_dir.name, exc)
        return out

    def read_campaign(self, campaign_id: str) -> Campaign:
        path = self._campaign_dir(campaign_id) / "campaign.json"
        if not path.exists():
            raise KeyError(campaign_id)
        data = json.loads(path.read_text("utf-8"))
        return Campaign(
            campaign_id=data["campaign_id"],
            name=data["name"],
            objective=data.get("objective"),
            status=data.get("status", "draft"),
            created_at=data["created_at"],
            assets=[Asset(**a) for a in data.get("assets", [])],
            ads=[Ad(**a) for a in data.get("ads", [])],
        )

    def update_campaign_status(self, campaign_id: str, status: str) -> Campaign:
        camp = self.read_campaign(campaign_id)
        if status not in CAMPAIGN_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(CAMPAIGN_STATUSES)}")
        if status != camp.status and status not in CAMPAIGN_TRANSITIONS[camp.status]:
            raise ValueError(f"cannot move campaign from {camp.status} to {status}")
        camp.status = status
        self._write_campaign(camp)
        return camp

    def delete_campaign(self, campaign_id: str) -> None:
        camp_dir = self._campaign_dir(campaign_id)
        if camp_dir.exists():
            shutil.rmtree(camp_dir)
            logger.info("Deleted campaign %s", campaign_id)

    def add_asset(
        self,
        campaign_id: str,
        kind: str,
        filename: str,
        content: bytes,
        metadata: dict[str, Any] | None = None,
    ) -> Asset:
        camp = self.read_campaign(campaign_id)
        asset_id = _new_id()
        # Names reaching the store are already sanitized; basename guards direct callers.
        filename = os.path.basename(filename).replace("..", "_") or "upload.bin"

        rel_path = str(Path("assets") / f"{asset_id}_{filename}")
        abs_path = self._campaign_dir(campaign_id) / rel_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        abs_path.write_bytes(content)

        asset = Asset(
            asset_id=asset_id,
            kind=kind,
            filename=filename,
            rel_path=rel_path,
            sha256=_sha256_bytes(content),
            created_at=_now_iso(),
            metadata=metadata or {},
        )
        camp.assets.append(asset)
        self._write_campaign(camp)
        return asset

    def get_asset(self, campaign_id: str, asset_id: str) -> Asset:
        camp = self.read_campaign(campaign_id)
        match = next((a for a in camp.assets if a.asset_id == asset_id), None)
        if match is None:
            raise KeyError(asset_id)
        return match

    def abs_asset_path(self, campaign_id: str, asset: Asset) -> Path:
        return self._campaign_dir(campaign_id) / asset.rel_path

    def delete_asset(self, campaign_id: str, asset_id: str) -> None:
        camp = self.read_campaign(campaign_id)
        removed = [a for a in camp.assets if a.asset_id == asset_id]
        if not removed:
            return
        camp.assets = [a for a in camp.assets if a.asset_id != asset_id]
        self._write_campaign(camp)
        for a in removed:
            self.abs_asset_path(campaign_id, a).unlink(missing_ok=True)

    def add_ad(self, campaign_id: str, ad: Ad) -> Ad:
        if ad.status not in AD_STATUSES:
            raise ValueError(f"ad status must be one of: {', '.join(AD_STATUSES)}")
        camp = self.read_campaign(campaign_id)
        camp.ads.append(ad)
        self._write_campaign(camp)
        return ad

    def new_ad(self, ad_type: str, product_name: str, description: str, **fields: Any) -> Ad:
        if ad_type not in ("image", "video"):
            raise ValueError("ad_type must be 'image' or 'video'")
        return Ad(
            ad_id=_new_id(),
            ad_type=ad_type,
            status=fields.pop("status", "processing"),
            product_name=product_name,
            description=description,
            created_at=_now_iso(),
            **fields,
        )

    def get_ad(self, campaign_id: str, ad_id: str) -> Ad:
        camp = self.read_campaign(campaign_id)
        match = next((a for a in camp.ads if a.ad_id == ad_id), None)
        if match is None:
            raise KeyError(ad_id)
        return match

    def update_ad(self, campaign_id: str, ad_id: str, **updates: Any) -> Ad:
        if "status" in updates and updates["status"] not in AD_STATUSES:
            raise ValueError(f"ad status must be one of: {', '.join(AD_STATUSES)}")
        camp = self.read_campaign(campaign_id)
        refreshed: list[Ad] = []
        updated: Ad | None = None
        for a in camp.ads:
            if a.ad_id == ad_id:
                updated = replace(a, **updates)
                refreshed.append(updated)
            else:
                refreshed.append(a)
        if updated is None:
            raise KeyError(ad_id)
        camp.ads = refreshed
        self._write_campaign(camp)
        return updated

    def delete_ad(self, campaign_id: str, ad_id: str) -> None:
        camp = self.read_campaign(campaign_id)
        ad = next((a for a in camp.ads if a.ad_id == ad_id), None)
        if ad is None:
            raise KeyError(ad_id)
        camp.ads = [a for a in camp.ads if a.ad_id != ad_id]
        self._write_campaign(camp)
        if ad.source_asset_id:
            self.delete_asset(campaign_id, ad.source_asset_id)

    def share_ad(self, campaign_id: str, ad_id: str) -> Ad:
        ad = self.get_ad(campaign_id, ad_id)
        if ad.status != "completed":
            raise ValueError("only completed ads can be shared")
        if ad.share_token:
            return ad
        return self.update_ad(campaign_id, ad_id, share_token=uuid.uuid4().hex)

    def find_shared_ad(self, token: str) -> Ad:
        if not token:
            raise KeyError(token)
        for camp in self.list_campaigns():
            for ad in camp.ads:
                if ad.share_token == token:
                    return ad
        raise KeyError(token)

    def write_run_manifest(self, campaign_id: str, manifest: dict[str, Any]) -> Path:
        run_id = _new_id()
        path = self._campaign_dir(campaign_id) / "runs" / f"run_{run_id}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        manifest = dict(manifest)
        manifest.setdefault("run_id", run_id)
        manifest.setdefault("created_at", _now_iso())
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        return path

    def _campaign_dir(self, campaign_id: str) -> Path:
        camp_dir = (self.campaigns_dir / campaign_id).resolve()
        if camp_dir.parent != self.campaigns_dir:
            raise ValueError("Refusing to access outside campaigns_dir")
        return camp_dir

    def _write_campaign(self, camp: Campaign) -> None:
        camp_dir = self._campaign_dir(camp.campaign_id)
        camp_dir.mkdir(parents=True, exist_ok=True)
        data = asdict(camp)
        (camp_dir / "campaign.json").write_text(json.dumps(data, indent=2), encoding="utf-8")
