#!/usr/bin/env python3
"""Golden path demo for HoldGate: claim -> confirm -> design -> install -> book."""

from __future__ import annotations

import json
import os
import sys
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


def _require(name: str) -> str:
    value = _env(name)
    if value is None:
        raise RuntimeError(f"{name} is required (run scripts/seed_directory.py to create one)")
    return value


class HttpClient:
    def __init__(self, base_url: str, api_key: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self.headers["X-API-Key"] = api_key

    def request_json(
        self,
        method: str,
        path: str,
        actor_id: str | None = None,
        payload: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        timeout: float = 10.0,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        if query:
            query = {k: v for k, v in query.items() if v is not None}
            if query:
                url = f"{url}?{urlencode(query)}"

        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")

        req = Request(url, data=data, method=method)
        for key, value in self.headers.items():
            req.add_header(key, value)
        if actor_id:
            req.add_header("X-Actor-ID", actor_id)

        try:
            with urlopen(req, timeout=timeout) as response:
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"{method} {url} failed: {exc.code} {exc.reason}: {detail}") from None

        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def main() -> int:
    holdgate_url = _env("HOLDGATE_URL", "http://localhost:8080")
    api_key = _env("HOLDGATE_API_KEY")
    unit_id = _require("HOLDGATE_UNIT_ID")
    agent_id = _require("HOLDGATE_AGENT_ID")
    manager_id = _require("HOLDGATE_MANAGER_ID")
    designer_id = _require("HOLDGATE_DESIGNER_ID")
    fitter_id = _require("HOLDGATE_FITTER_ID")
    date_from = _env("HOLDGATE_DATE_FROM", "2026-01-01")

    client = HttpClient(holdgate_url, api_key=api_key)

    print("Checking health...")
    health = client.request_json("GET", "/v1/health")
    if health.get("status") != "healthy":
        raise RuntimeError(f"Unexpected health response: {health}")

    print("Claiming unit...")
    receipt = client.request_json(
        "POST",
        "/v1/claims",
        actor_id=agent_id,
        payload={
            "unit_id": unit_id,
            "date_from": date_from,
            "duration_months": 3,
            "client": {"name": "Golden Path Foods", "phone": "9000000099"},
        },
    )
    claim_id = str(receipt.get("claim_id"))
    print(f"Claim created: {claim_id} (queue #{receipt.get('queue_position')})")
    if receipt.get("queue_position") != 1:
        raise RuntimeError("Claim is not first in queue; use a unit without other claims.")

    print("Confirming claim...")
    claim = client.request_json(
        "POST",
        f"/v1/claims/{claim_id}/confirm",
        actor_id=agent_id,
        payload={"designer_id": designer_id},
    )
    if claim.get("status") != "confirmed":
        raise RuntimeError(f"Claim not confirmed: {claim}")

    print("Running design stage...")
    for status in ("in_progress", "completed"):
        client.request_json(
            "PUT",
            f"/v1/claims/{claim_id}/design-status",
            actor_id=designer_id,
            payload={"status": status},
        )

    print("Assigning fitter...")
    client.request_json(
        "POST",
        f"/v1/claims/{claim_id}/assign-fitter",
        actor_id=manager_id,
        payload={"fitter_id": fitter_id},
    )
    client.request_json(
        "PUT",
        f"/v1/claims/{claim_id}/fitter-status",
        actor_id=fitter_id,
        payload={"status": "in_progress"},
    )

    print("Submitting installation proof...")
    client.request_json(
        "POST",
        f"/v1/claims/{claim_id}/installation-proof",
        actor_id=fitter_id,
        payload={
            "files": [
                {"filename": "installed.jpg", "url": f"memory://proof/{claim_id}/installed.jpg"}
            ]
        },
    )

    print("Marking unit as booked...")
    booked = client.request_json("POST", f"/v1/units/{unit_id}/finalize", actor_id=agent_id)
    if booked.get("unit", {}).get("status") != "booked":
        raise RuntimeError(f"Unit not booked: {booked}")

    notifications = client.request_json(
        "GET", "/v1/notifications", actor_id=agent_id, query={"limit": 50}
    ).get("notifications", [])
    titles = {n.get("title") for n in notifications}
    if "Unit is Live" not in titles:
        raise RuntimeError(f"Missing expected notifications: {titles}")

    print("Golden path complete: unit booked, agent notified.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise
