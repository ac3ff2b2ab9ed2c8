"""
Demonstration: Complete Claim Flow

Walks one visitor through the protocol in-process:
device guard -> HTTP API -> address gate -> device record, then shows the
device block, the address block from a second device, and the window
reopening after 30 days.

Run with: python -m examples.demo_claim_flow
"""

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from claimgate.client import ClaimClient, ClaimFlow, DeviceClaimGuard, MemoryStorage
from claimgate.core import ClaimService, default_catalog
from claimgate.db import InMemoryClaimStore
from claimgate.main import create_app

VISITOR_ADDRESS = "203.0.113.7"


class DemoClock:
    """A clock both sides share so the demo can skip ahead."""

    def __init__(self):
        self.now = datetime(2024, 9, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def show(title, result):
    print(f"  {title}")
    if result.success:
        print(f"    [OK] {result.entry.name}")
        print(f"    Link: {result.entry.linkage}  (code: {result.entry.extraction_code})")
        print(f"    Recorded on device: {result.recorded_locally}")
    else:
        print(f"    [REJECTED] {result.kind.value}: {result.message}")
    print()


def main():
    print("=" * 60)
    print("ClaimGate - Claim Flow Demonstration")
    print("=" * 60)
    print()

    clock = DemoClock()
    catalog = default_catalog()
    store = InMemoryClaimStore()
    service = ClaimService(store, catalog, clock=clock)
    app = create_app(claim_service=service)

    # Every request looks like it came through a proxy for the same visitor
    http = TestClient(app, headers={"X-Forwarded-For": VISITOR_ADDRESS})
    client = ClaimClient("http://testserver", http_client=http)

    laptop = ClaimFlow(DeviceClaimGuard(MemoryStorage(), clock=clock), client, catalog)
    phone = ClaimFlow(DeviceClaimGuard(MemoryStorage(), clock=clock), client, catalog)

    print(f"Catalog: {', '.join(catalog.option_ids())}")
    print()

    show("Laptop claims 'bnu':", laptop.process_claim("bnu"))

    clock.advance(days=10)
    eligibility = laptop.check_eligibility()
    print(f"  Laptop eligibility after 10 days: {eligibility.message}")
    print()
    show("Laptop claims 'yilin' after 10 days:", laptop.process_claim("yilin"))
    show("Phone on the same network claims 'yilin':", phone.process_claim("yilin"))
    show("Phone asks for an unknown edition:", phone.process_claim("no-such-edition"))

    clock.advance(days=21)
    show("Laptop claims 'yilin' after 31 days:", laptop.process_claim("yilin"))

    record = store.get(VISITOR_ADDRESS)
    print(f"Address record: {record.address} -> {record.claimed_option} "
          f"at {record.last_claimed_at.isoformat()}")
    print()
    print("=" * 60)
    print("Demonstration complete.")
    print("=" * 60)

    client.close()
    http.close()


if __name__ == "__main__":
    main()
