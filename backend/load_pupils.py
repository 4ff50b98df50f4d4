"""
Pupil Loader Script - imports a pupils CSV into the platform via the API.

Logs in as an admin, posts the CSV text to the bulk import endpoint and
prints the generated usernames and PINs. The CSV needs the headers
class_label,first_name,last_name.

Usage:
    python load_pupils.py pupils.csv                          # Uses default URL
    python load_pupils.py pupils.csv http://localhost:8000     # Custom API URL

Admin credentials come from ADMIN_EMAIL and ADMIN_PASSWORD.
"""

import os
import sys

import httpx


def login(client: httpx.Client, email: str, password: str) -> dict:
    """Log in as an admin; the session cookie stays on the client."""
    resp = client.post("/api/teacher/login", json={"email": email, "password": password})
    resp.raise_for_status()
    return resp.json()


def import_csv(client: httpx.Client, csv_text: str) -> dict:
    resp = client.post("/api/admin/pupils/bulk_import", json={"csvText": csv_text})
    resp.raise_for_status()
    return resp.json()


def print_summary(result: dict):
    print("=" * 60)
    print("IMPORT SUMMARY")
    print("=" * 60)
    print(f"  Created:  {result.get('created_count', '?')}")
    print(f"  Skipped:  {result.get('skipped_count', '?')}")
    print("=" * 60)
    print()

    for p in result.get("created", []):
        print(f"  ✅ {p['class_label']:<4} {p['first_name']} {p['last_name']}: "
              f"{p['username']} / PIN {p['pin']}"
              + (f" / temp password {p['tempPassword']}" if p.get("tempPassword") else ""))
    for s in result.get("skipped", []):
        print(f"  ❌ row {s.get('row', '?')}: {s.get('reason', '?')}")
    print()


def main():
    if len(sys.argv) < 2:
        print("Usage: python load_pupils.py <pupils.csv> [api_url]")
        sys.exit(1)

    csv_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("Error: set ADMIN_EMAIL and ADMIN_PASSWORD")
        sys.exit(1)

    if not os.path.exists(csv_file):
        print(f"Error: Could not find {csv_file}")
        sys.exit(1)

    print(f"Loading pupils from: {csv_file}")
    with open(csv_file, "r", encoding="utf-8-sig") as f:
        csv_text = f.read()

    print(f"Sending to: {api_url}")
    print()

    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        try:
            login(client, email, password)
            result = import_csv(client, csv_text)
        except httpx.HTTPStatusError as e:
            print(f"HTTP Error {e.response.status_code}: {e.response.text}")
            sys.exit(1)

    print_summary(result)
    print("✅ Import complete! Hand the usernames and PINs to the class teachers.")


if __name__ == "__main__":
    main()
