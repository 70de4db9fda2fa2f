"""
Command line helper for customers' repair requests
Lists your repairs or downloads a booking confirmation PDF

    python scripts/repair_cli.py list
    python scripts/repair_cli.py pdf <repair_id> [-o out.pdf]

Token comes from --token or REPAIR_API_TOKEN
"""

import argparse
import asyncio
import os
import sys

# add backend to path so we can import stuff
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domain.errors import RepairApiError
from services.repair_api_client import RepairApiClient


async def list_repairs(client: RepairApiClient) -> int:
    response = await client.list_mine()
    repairs = response.get("data") or []
    if not repairs:
        print("no repair requests found")
        return 0

    for repair in repairs:
        boat = repair.get("boatDetails") or {}
        print(
            f"{repair.get('bookingId') or repair.get('_id')}  "
            f"{repair.get('status', 'pending'):<14} "
            f"{repair.get('serviceType', ''):<18} "
            f"{boat.get('boatMake', '')} {boat.get('boatModel', '')}  "
            f"{repair.get('scheduledDateTime') or '-'}"
        )
    return 0


async def download_pdf(client: RepairApiClient, repair_id: str, output: str = None) -> int:
    content = await client.generate_pdf(repair_id)
    path = output or f"repair-confirmation-{repair_id}.pdf"
    with open(path, "wb") as f:
        f.write(content)
    print(f"saved {len(content)} bytes to {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Boat repair requests")
    parser.add_argument("--token", default=os.getenv("REPAIR_API_TOKEN"), help="customer bearer token")
    parser.add_argument("--api-url", default=None, help="repair API base url")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("list", help="list my repair requests")
    pdf = commands.add_parser("pdf", help="download a booking confirmation PDF")
    pdf.add_argument("repair_id")
    pdf.add_argument("-o", "--output", default=None)
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if not args.token:
        print("missing token, pass --token or set REPAIR_API_TOKEN", file=sys.stderr)
        return 2

    client = RepairApiClient(args.token, base_url=args.api_url)
    try:
        if args.command == "list":
            return await list_repairs(client)
        return await download_pdf(client, args.repair_id, args.output)
    except RepairApiError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
