"""
Run store.

Finished runs are always written to a local JSON file first, then offered
to a remote run service when one is configured. A slow or failing remote
never loses a run: the local copy is the fallback.

Saved runs double as ghosts. load_ghost() reads either this store's own
format or the looser exports other tools produce, and normalises the
points to relative timestamps (ms since the first point).
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from tracking.geo import total_distance
from tracking.model import GeoPoint, RunSummary

logger = logging.getLogger(__name__)


class RunStoreError(Exception):
    """A run could not be persisted anywhere."""


@dataclass(frozen=True)
class SaveResult:
    id: str
    source: str                 # "remote" or "local"
    local_id: str


class RunStore:
    """Saves RunSummary objects locally and, optionally, to a remote service."""

    def __init__(
        self,
        data_dir: str = "runs",
        remote_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: float = 2.5,
    ):
        """
        Args:
            data_dir: Directory for local run files (created on first save)
            remote_url: Endpoint accepting a POSTed run as JSON
            api_key: Sent as a bearer token when set
            timeout_s: Total time limit for the remote request
        """
        self.data_dir = Path(data_dir)
        self.remote_url = remote_url.rstrip("/") if remote_url else None
        self.api_key = api_key
        self.timeout_s = timeout_s

    async def save(self, summary: RunSummary) -> SaveResult:
        payload = summary.to_dict()

        try:
            local_id = await asyncio.get_running_loop().run_in_executor(
                None, self._write_local, payload, summary.timestamp
            )
        except OSError as e:
            raise RunStoreError(f"Could not write run to {self.data_dir}: {e}") from e
        logger.info(f"Run saved locally as {local_id}")

        if not self.remote_url:
            return SaveResult(id=local_id, source="local", local_id=local_id)

        try:
            remote_id = await self._post_remote(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Remote save failed, keeping local copy: {e}")
            return SaveResult(id=local_id, source="local", local_id=local_id)

        logger.info(f"Run saved remotely as {remote_id}")
        return SaveResult(id=remote_id, source="remote", local_id=local_id)

    def _write_local(self, payload: Dict[str, Any], timestamp: int) -> str:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        run_id = f"run-{timestamp or int(time.time() * 1000)}"
        path = self.data_dir / f"{run_id}.json"
        suffix = 1
        while path.exists():
            path = self.data_dir / f"{run_id}-{suffix}.json"
            suffix += 1
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path.stem

    async def _post_remote(self, payload: Dict[str, Any]) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.remote_url, headers=headers, json=payload) as response:
                if response.status not in (200, 201):
                    error_text = await response.text()
                    raise ValueError(f"Run service error {response.status}: {error_text}")
                body = await response.json(content_type=None)

        run_id = body.get("id") if isinstance(body, dict) else None
        if not run_id:
            raise ValueError("Run service response carried no id")
        return str(run_id)

    def list_runs(self) -> List[Path]:
        """Local run files, newest first."""
        if not self.data_dir.is_dir():
            return []
        return sorted(self.data_dir.glob("*.json"), key=lambda p: p.stat().st_mtime, reverse=True)


# ===== GHOST LOADING =====

def _point_from_any(raw: Dict[str, Any]) -> Optional[GeoPoint]:
    lat = raw.get("latitude", raw.get("lat"))
    lon = raw.get("longitude", raw.get("lon", raw.get("lng")))
    if lat is None or lon is None:
        return None
    return GeoPoint.from_dict({
        "latitude": lat,
        "longitude": lon,
        "altitude": raw.get("altitude", raw.get("alt")),
        "speed": raw.get("speed"),
        "accuracy": raw.get("accuracy"),
        "timestamp": raw.get("timestamp", raw.get("time")),
    })


def normalize_run(data: Dict[str, Any]) -> Tuple[List[GeoPoint], Dict[str, Any]]:
    """
    Turn a stored run into a ghost route plus its metadata.

    Points come from "points" or "route". Distance comes from "distance"
    (meters) or "distanceKm"; if neither is present it is measured.

    Returns:
        (route with timestamps relative to the first point, meta dict)

    Raises:
        ValueError: no usable points
    """
    raw_points = data.get("points") or data.get("route") or []
    points = [p for p in (_point_from_any(r) for r in raw_points if isinstance(r, dict)) if p is not None]
    if not points:
        raise ValueError("Run has no usable points")

    base = points[0].timestamp
    route = [
        GeoPoint(p.latitude, p.longitude, p.altitude, p.speed, p.accuracy, p.timestamp - base)
        for p in points
    ]

    if data.get("distance") is not None:
        distance = float(data["distance"])
    elif data.get("distanceKm") is not None:
        distance = float(data["distanceKm"]) * 1000
    else:
        distance = total_distance(route)

    # ghostMeta describes what this run raced against, not the run itself
    meta: Dict[str, Any] = {"type": data.get("type", "run")}
    meta["distance"] = distance
    meta["duration"] = data.get("duration", route[-1].timestamp // 1000)
    if data.get("id") is not None:
        meta.setdefault("id", data["id"])
    return route, meta


def load_ghost(path: str) -> Tuple[List[GeoPoint], Dict[str, Any]]:
    """Read a run file from disk and normalise it into a ghost."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a run object")
    route, meta = normalize_run(data)
    meta.setdefault("id", Path(path).stem)
    logger.info(f"Loaded ghost {meta['id']}: {len(route)} points, {meta['distance']:.0f} m")
    return route, meta
