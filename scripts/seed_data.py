"""
Seed Data Script - Registers sample assets through the engine
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assetflow.domain.enums import AssetStatus, AssetType, Decision, WorkflowType
from assetflow.domain.models import ActorContext, AssetCreate, WorkflowIntent
from assetflow.engine.engine import WorkflowEngine
from assetflow.repositories import get_store

SEED_REQUESTER = ActorContext(user_id="seed-operator", display_name="Seed Operator", roles=["operator"])
SEED_APPROVER = ActorContext(user_id="seed-admin", display_name="Seed Admin", roles=["admin"])

SAMPLE_ASSETS = [
    AssetCreate(
        asset_id="SRV-001", name="Web Server 01", type=AssetType.SERVER,
        location="Data Center A - Rack 12", department="IT Operations",
        ip_address="192.168.1.10", purchase_price=8500.0, annual_cost=1200.0,
        initial_status=AssetStatus.ONLINE
    ),
    AssetCreate(
        asset_id="NET-001", name="Core Switch 01", type=AssetType.NETWORK,
        location="Data Center A - Network Room", department="Network",
        ip_address="192.168.1.1", purchase_price=15000.0, annual_cost=2000.0,
        initial_status=AssetStatus.ONLINE
    ),
    AssetCreate(
        asset_id="SRV-002", name="Database Server", type=AssetType.SERVER,
        location="Data Center B - Rack 05", department="IT Operations",
        ip_address="192.168.2.20", purchase_price=22000.0, annual_cost=3500.0,
        initial_status=AssetStatus.ONLINE
    ),
    AssetCreate(
        asset_id="WS-001", name="Developer Workstation", type=AssetType.WORKSTATION,
        location="Office Floor 3 - Desk 15", department="Engineering",
        purchase_price=2400.0, annual_cost=300.0,
        initial_status=AssetStatus.OFFLINE
    ),
]


def seed_assets():
    """Register sample assets and put one through a maintenance approval"""
    store = get_store()
    store.ensure_indexes()

    if store.count_assets() > 0:
        print("Store already has assets. Skipping seed.")
        return

    engine = WorkflowEngine(store, require_onboarding_approval=False)
    for asset_create in SAMPLE_ASSETS:
        asset, _ = engine.register_asset(asset_create, SEED_REQUESTER)
        print(f"  Registered {asset.asset_id} ({asset.status.value})")

    workflow = engine.submit(
        WorkflowIntent(
            asset_id="SRV-002",
            workflow_type=WorkflowType.MAINTENANCE,
            reason="Scheduled firmware upgrade"
        ),
        SEED_REQUESTER
    )
    asset, workflow = engine.decide(workflow.workflow_id, Decision.APPROVE, SEED_APPROVER, "Seeded")
    print(f"  {asset.asset_id} moved to {asset.status.value} via {workflow.workflow_id}")

    engine.submit(
        WorkflowIntent(
            asset_id="WS-001",
            workflow_type=WorkflowType.STATUS_CHANGE,
            reason="Workstation assigned to new hire"
        ),
        SEED_REQUESTER
    )
    print("  WS-001 has a pending status change")


if __name__ == "__main__":
    print("Seeding sample assets...")
    seed_assets()
    print("Done!")
