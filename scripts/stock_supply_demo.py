#!/usr/bin/env python3
"""Stock-supply walkthrough against the in-memory store.

Run from repo root:

    python scripts/stock_supply_demo.py

A patient broadcasts a B+ request, a blood bank reserves a unit from stock,
and the patient's pickup code is verified at the counter.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Run from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def main() -> None:
    from coordination import CoordinationEngine, CoordinationError
    from identity import AuthUser, ProfileService
    from live import MessageStream
    from store import MemoryStore

    print("=" * 60)
    print("Stock-supply demo (in-memory store)")
    print("=" * 60)

    store = MemoryStore()
    engine = CoordinationEngine(store)
    profiles = ProfileService(engine.users)

    patient = AuthUser(uid="patient-1", email="priya@example.com", display_name="Priya")
    profiles.signup(patient, "patient", blood_group="B+")
    # The first admin is provisioned directly in the store
    engine.users.merge("ops", {"role": "admin", "displayName": "Operations"})
    engine.assign_role("bank-1", "admin", actor_id="ops")
    engine.users.merge("bank-1", {"displayName": "City Blood Bank", "email": "bank@example.com"})
    engine.set_stock_level("bank-1", "B+", 2)
    print(f"\nStock before: B+ = {engine.users.stock('bank-1')['B+']}")

    request_id = engine.broadcast_request("patient-1", "B+", "Emergency")
    print(f"Request {request_id} broadcast by Priya")

    chat = MessageStream(engine.requests, request_id).start()
    code = engine.fulfill_request_by_admin(request_id, "B+", "bank-1")
    print(f"Reserved. Pickup code: {code}")
    print(f"Stock after reservation: B+ = {engine.users.stock('bank-1')['B+']}")

    engine.verify_pickup_code(request_id, code, "bank-1")
    print(f"Handover verified, request is {engine.requests.get(request_id).status.value}")
    print(f"Lives saved by the bank: {engine.users.get('bank-1').lives_saved}")

    try:
        engine.verify_pickup_code(request_id, code, "bank-1")
    except CoordinationError as e:
        print(f"Second verification rejected: {e.reason}")

    print("\nChat:")
    for message in chat.items.value:
        print(f"  [{message.type.value}] {message.text}")
    chat.stop()


if __name__ == "__main__":
    main()
