"""Check Xero credentials: obtain a token and read the organisation.

Usage:
    finops-xero-check
    finops-xero-check --tenant-id <id>
"""

import argparse
import asyncio
import sys

from finops.config import ConfigurationError, configure_logging
from finops.xero.client import XeroAPIError, XeroClient


async def check_connection(client: XeroClient) -> tuple[str, str]:
    """Return the organisation's name and id, raising on any failure."""
    await client.fetch_token()
    data = await client.get_organisation()
    organisations = data.get("Organisations") or []
    if not organisations:
        raise XeroAPIError("No organisation returned for this connection")
    org = organisations[0]
    return org.get("Name") or "?", org.get("OrganisationID") or "?"


async def _run(tenant_id: str | None) -> int:
    async with XeroClient(tenant_id=tenant_id) as client:
        try:
            name, org_id = await check_connection(client)
        except (XeroAPIError, ConfigurationError) as e:
            print(f"✗ Xero connection failed: {e}", file=sys.stderr)
            return 1
    print(f"✓ Connected to {name} ({org_id})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify Xero API credentials")
    parser.add_argument("--tenant-id", help="Override XERO_TENANT_ID")
    args = parser.parse_args(argv)

    configure_logging(level="WARNING")
    return asyncio.run(_run(args.tenant_id))


if __name__ == "__main__":
    sys.exit(main())
